"""
Spreadsheet upload and upload-session management.

Uploading a ledger creates one upload session and all of its rows in a
single transaction. Session listings are scoped to the caller.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from starlette.concurrency import run_in_threadpool

from ..database import TravelDataRepository, UploadSessionRepository, User
from ..models import (
    FileHistoryEntry,
    FileHistoryMetadata,
    RestoredSession,
    TravelDataRecord,
    UploadResponse,
    UploadSessionRecord,
    UploadSummary,
)
from ..services.ingest import file_extension, process_upload
from .deps import AppServices, get_current_user, get_services, require_active_user
from .errors import BadRequestError, RecordNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Uploads"])

RECENT_SESSIONS_LIMIT = 10


@router.post("/upload")
async def upload_ledger(
    file: UploadFile = File(None),
    user: User = Depends(require_active_user),
    services: AppServices = Depends(get_services),
):
    """Parse an uploaded ledger and store it as a new session."""
    if file is None or not file.filename:
        raise BadRequestError("No file uploaded")

    max_bytes = services.config.upload_max_bytes
    # Read one byte past the limit so oversize files are detected without
    # buffering them whole
    content = await file.read(max_bytes + 1)
    parsed = await run_in_threadpool(process_upload, content, file.filename, max_bytes)

    async with services.database.session() as session:
        upload = await UploadSessionRepository(session).create(
            filename=file.filename,
            size=len(content),
            user_id=user.id,
            total_records=parsed.total_records,
            opening_balance=parsed.opening_balance,
        )
        rows = await TravelDataRepository(session).bulk_create(
            parsed.entries, session_id=upload.id, owner_id=user.id
        )
        entries = [TravelDataRecord.model_validate(row) for row in rows]

    await services.invalidator.invalidate_session(upload.id)
    logger.info(
        f"User {user.id} uploaded {file.filename}: session {upload.id}, "
        f"{parsed.total_records} rows"
    )

    response = UploadResponse(
        session_id=upload.id,
        filename=file.filename,
        total_records=parsed.total_records,
        opening_balance=parsed.opening_balance,
        entries=entries,
        summary=UploadSummary(**parsed.summary()),
    )
    return response.to_json()


@router.get("/upload-sessions", response_model=List[UploadSessionRecord])
async def list_upload_sessions(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """The caller's most recent upload sessions."""
    async with services.database.session() as session:
        uploads = await UploadSessionRepository(session).list_recent(
            user.id, limit=RECENT_SESSIONS_LIMIT
        )
        return [UploadSessionRecord.model_validate(upload) for upload in uploads]


@router.get("/upload-sessions/latest", response_model=UploadSessionRecord)
async def latest_upload_session(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    async with services.database.session() as session:
        upload = await UploadSessionRepository(session).latest(user.id)
    if upload is None:
        raise RecordNotFoundError("No sessions found")
    return UploadSessionRecord.model_validate(upload)


@router.get("/files/history", response_model=List[FileHistoryEntry])
async def file_history(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """Every session of the caller with its current row count."""
    history = []
    async with services.database.session() as session:
        rows = TravelDataRepository(session)
        for upload in await UploadSessionRepository(session).list_recent(user.id):
            history.append(
                FileHistoryEntry(
                    id=upload.id,
                    filename=upload.filename,
                    original_name=upload.filename,
                    created_at=upload.created_at,
                    metadata=FileHistoryMetadata(
                        total_rows=await rows.count_by_session(upload.id),
                        file_type=file_extension(upload.filename).lstrip(".") or "csv",
                    ),
                )
            )
    return history


@router.post("/files/{session_id}/restore", response_model=RestoredSession)
async def restore_session(
    session_id: str,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """A session and all of its rows, for reloading it in the client."""
    async with services.database.session() as session:
        upload = await UploadSessionRepository(session).get_for_user(session_id, user.id)
        if upload is None:
            raise RecordNotFoundError("Session not found")
        rows = await TravelDataRepository(session).list_all_by_session(upload.id)
        if not rows:
            raise RecordNotFoundError("No data found for this session")

        return RestoredSession(
            session=UploadSessionRecord.model_validate(upload),
            data=[TravelDataRecord.model_validate(row) for row in rows],
        )


@router.delete("/files/{session_id}")
async def delete_session(
    session_id: str,
    user: User = Depends(require_active_user),
    services: AppServices = Depends(get_services),
):
    """Delete a session of the caller and all of its rows."""
    async with services.database.session() as session:
        sessions = UploadSessionRepository(session)
        upload = await sessions.get_for_user(session_id, user.id)
        if upload is None:
            raise RecordNotFoundError("Session not found")
        removed = await TravelDataRepository(session).delete_by_session(upload.id)
        await sessions.delete(upload)

    await services.invalidator.invalidate_session(session_id)
    logger.info(f"User {user.id} deleted session {session_id} ({removed} rows)")
    return {"message": "Session and associated data deleted successfully"}
