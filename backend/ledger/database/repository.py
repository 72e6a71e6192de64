"""
Repositories for the ledger tables.

Each repository works inside a caller-owned ``AsyncSession``; committing is
left to ``Database.session()`` so a handler decides when its writes become
visible.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import TravelData, UploadSession, User, new_id, utcnow

logger = logging.getLogger(__name__)


class TravelDataRepository:
    """Queries and writes for ledger rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, fields: Dict[str, Any], owner_id: Optional[str]) -> TravelData:
        now = utcnow()
        row = TravelData(**fields)
        row.id = new_id()
        row.user_id = owner_id
        row.created_at = now
        row.updated_at = now
        self.session.add(row)
        await self.session.flush()
        return row

    async def bulk_create(
        self,
        rows: Iterable[Dict[str, Any]],
        session_id: str,
        owner_id: Optional[str],
    ) -> List[TravelData]:
        """Insert many rows into one session in a single flush."""
        now = utcnow()
        created = []
        for fields in rows:
            row = TravelData(**fields)
            row.id = new_id()
            row.session_id = session_id
            row.user_id = owner_id
            row.created_at = now
            row.updated_at = now
            created.append(row)
        self.session.add_all(created)
        await self.session.flush()
        return created

    async def get(self, record_id: str) -> Optional[TravelData]:
        return await self.session.get(TravelData, record_id)

    async def list_by_session(
        self,
        session_id: str,
        offset: int,
        limit: int,
    ) -> Tuple[Sequence[TravelData], int]:
        """
        One page of a session's rows, newest first, and the session total.

        Rows created in the same instant are ordered by id so that pages
        never overlap.
        """
        total = await self.count_by_session(session_id)
        if limit <= 0:
            return [], total

        stmt = (
            select(TravelData)
            .where(TravelData.session_id == session_id)
            .order_by(TravelData.created_at.desc(), TravelData.id.desc())
            .offset(max(offset, 0))
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all(), total

    async def list_all_by_session(self, session_id: str) -> Sequence[TravelData]:
        stmt = (
            select(TravelData)
            .where(TravelData.session_id == session_id)
            .order_by(TravelData.created_at.desc(), TravelData.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_session(self, session_id: str) -> int:
        stmt = select(func.count()).select_from(TravelData).where(TravelData.session_id == session_id)
        return int((await self.session.execute(stmt)).scalar_one())

    async def update(self, record_id: str, changes: Dict[str, Any]) -> Optional[TravelData]:
        """Apply ``changes`` and advance the update timestamp; None if absent."""
        row = await self.get(record_id)
        if row is None:
            return None
        for key, value in changes.items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        await self.session.flush()
        return row

    async def delete(self, record_id: str) -> Optional[TravelData]:
        """Delete a row and return it, or None if it did not exist."""
        row = await self.get(record_id)
        if row is None:
            return None
        await self.session.delete(row)
        await self.session.flush()
        return row

    async def delete_by_session(self, session_id: str) -> int:
        result = await self.session.execute(
            delete(TravelData).where(TravelData.session_id == session_id)
        )
        return result.rowcount or 0


class UploadSessionRepository:
    """Queries and writes for upload sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        filename: str,
        size: int,
        user_id: Optional[str],
        total_records: int = 0,
        opening_balance: Optional[Dict[str, Any]] = None,
    ) -> UploadSession:
        now = utcnow()
        upload = UploadSession(
            id=new_id(),
            filename=filename,
            size=size,
            total_records=total_records,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        if opening_balance is not None:
            upload.opening_balance_date = opening_balance.get('date')
            upload.opening_balance_amount = opening_balance.get('amount')
        self.session.add(upload)
        await self.session.flush()
        return upload

    async def get(self, session_id: str) -> Optional[UploadSession]:
        return await self.session.get(UploadSession, session_id)

    async def get_for_user(self, session_id: str, user_id: str) -> Optional[UploadSession]:
        stmt = select(UploadSession).where(
            UploadSession.id == session_id,
            UploadSession.user_id == user_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_recent(self, user_id: str, limit: Optional[int] = None) -> Sequence[UploadSession]:
        stmt = (
            select(UploadSession)
            .where(UploadSession.user_id == user_id)
            .order_by(UploadSession.created_at.desc(), UploadSession.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return (await self.session.execute(stmt)).scalars().all()

    async def latest(self, user_id: str) -> Optional[UploadSession]:
        sessions = await self.list_recent(user_id, limit=1)
        return sessions[0] if sessions else None

    async def delete(self, upload: UploadSession) -> None:
        await self.session.delete(upload)
        await self.session.flush()


class UserRepository:
    """Queries and writes for accounts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower())
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create(self, email: str, name: str, role: str, status: str) -> User:
        now = utcnow()
        user = User(
            id=new_id(),
            email=email.lower(),
            name=name,
            role=role,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(user)
        await self.session.flush()
        logger.info(f"Created user {user.email} ({user.id})")
        return user

    async def set_status(self, user: User, status: str) -> User:
        user.status = status
        user.updated_at = utcnow()
        await self.session.flush()
        return user
