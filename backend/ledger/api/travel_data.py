"""
Travel-data resource: create, list a session page by page, patch and delete.

Reads of ``GET /api/travel-data/{session_id}`` go through the read-through
cache; every write invalidates the cached pages of the sessions it touched
once the transaction has committed.
"""

import logging
import math
import re
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import ValidationError

from ..database import TravelDataRepository, User
from ..models import TravelDataCreate, TravelDataPage, TravelDataRecord, TravelDataUpdate
from .deps import AppServices, get_current_user, get_services, require_active_user
from .errors import (
    BadRequestError,
    InvalidIdentifierError,
    PayloadValidationError,
    RecordNotFoundError,
    format_validation_errors,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/travel-data", tags=["Travel Data"])

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


def parse_page_param(raw: Optional[str], default: int) -> int:
    """
    Read a paging parameter leniently.

    A leading integer is used as is (``"3rd"`` reads as 3); anything without
    one, and zero, falls back to the default.
    """
    if raw is None:
        return default
    match = _LEADING_INT.match(raw)
    if not match:
        return default
    return int(match.group(1)) or default


def parse_record_id(raw: str) -> str:
    """Canonical form of a row id; malformed ids raise InvalidIdentifierError."""
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise InvalidIdentifierError("Invalid ID format")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TravelDataRecord)
async def create_travel_data(
    payload: TravelDataCreate,
    user: User = Depends(require_active_user),
    services: AppServices = Depends(get_services),
):
    """Create a row owned by the caller."""
    async with services.database.session() as session:
        row = await TravelDataRepository(session).create(
            payload.model_dump(mode="json"), owner_id=user.id
        )
        record = TravelDataRecord.model_validate(row)

    await services.invalidator.invalidate_session(record.session_id)
    logger.info(f"User {user.id} created travel data {record.id}")
    return record


@router.get("/{session_id}", response_model=TravelDataPage)
async def list_travel_data(
    session_id: str,
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """One page of a session's rows, newest first."""
    page_number = parse_page_param(page, DEFAULT_PAGE)
    size = parse_page_param(page_size, DEFAULT_PAGE_SIZE)
    offset = max((page_number - 1) * size, 0)
    limit = max(size, 0)

    async with services.database.session() as session:
        rows, total = await TravelDataRepository(session).list_by_session(
            session_id, offset=offset, limit=limit
        )
        data = [TravelDataRecord.model_validate(row) for row in rows]

    return TravelDataPage(
        data=data,
        total=total,
        page=page_number,
        page_size=size,
        total_pages=math.ceil(total / size) if size > 0 else 0,
    )


@router.patch("/{record_id}", response_model=TravelDataRecord)
async def update_travel_data(
    record_id: str,
    request: Request,
    user: User = Depends(require_active_user),
    services: AppServices = Depends(get_services),
):
    """
    Partially update a row.

    Only non-null fields are written; the owner never changes.
    """
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise PayloadValidationError(
            "Invalid update payload",
            errors=[{"path": [], "message": "Expected a JSON object", "code": "invalid_type"}],
        )

    try:
        update = TravelDataUpdate.model_validate(body)
    except ValidationError as e:
        raise PayloadValidationError(
            "Invalid update payload", errors=format_validation_errors(e.errors())
        )

    changes = update.sanitized_changes()
    if not changes:
        raise BadRequestError("No valid fields provided for update")

    row_id = parse_record_id(record_id)

    async with services.database.session() as session:
        repository = TravelDataRepository(session)
        existing = await repository.get(row_id)
        if existing is None:
            raise RecordNotFoundError("Travel data not found")
        previous_session = existing.session_id
        row = await repository.update(row_id, changes)
        record = TravelDataRecord.model_validate(row)

    await services.invalidator.invalidate_sessions([previous_session, record.session_id])
    logger.info(f"User {user.id} updated travel data {row_id}: {sorted(changes)}")
    return record


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_travel_data(
    record_id: str,
    user: User = Depends(require_active_user),
    services: AppServices = Depends(get_services),
):
    """Delete a row; a second delete of the same id is a 404."""
    row_id = parse_record_id(record_id)

    async with services.database.session() as session:
        row = await TravelDataRepository(session).delete(row_id)
        if row is None:
            raise RecordNotFoundError("Travel data not found")
        session_id = row.session_id

    await services.invalidator.invalidate_session(session_id)
    logger.info(f"User {user.id} deleted travel data {row_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
