"""
SQLAlchemy database models for the ledger back office.

This module defines the tables behind the ledger API:
- User: back-office accounts that own upload sessions and rows
- UploadSession: one imported spreadsheet
- TravelData: one ledger row (a booking, payment or adjustment)

Identifiers are UUID strings generated on insert. Timestamps are naive UTC.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

from ..models.enums import FlightStatus, PaymentStatus, UserRole, UserStatus

# Create the declarative base for all models
Base = declarative_base()


def new_id() -> str:
    """Generate a new row identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time without tzinfo, as stored in every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """
    Back-office account.

    Inactive accounts keep read access; every write requires an active one.
    """
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=UserRole.USER.value)
    status = Column(String(16), nullable=False, default=UserStatus.ACTIVE.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}', status='{self.status}')>"


class UploadSession(Base):
    """
    One imported spreadsheet.

    The opening balance, when the sheet carries one above its header, is kept
    in two flat columns.
    """
    __tablename__ = 'upload_sessions'

    id = Column(String(36), primary_key=True, default=new_id)
    filename = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False, default=0)
    opening_balance_date = Column(String(64), nullable=True)
    opening_balance_amount = Column(Float, nullable=True)
    total_records = Column(Integer, nullable=False, default=0)
    user_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_upload_session_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<UploadSession(id='{self.id}', filename='{self.filename}', records={self.total_records})>"


class TravelData(Base):
    """
    One ledger row.

    Rows are grouped by ``session_id`` and listed newest first.
    """
    __tablename__ = 'travel_data'

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), nullable=True, index=True)

    # Ledger columns as imported
    date = Column(String(64), nullable=True)
    voucher = Column(String(128), nullable=True)
    reference = Column(Text, nullable=True)
    narration = Column(Text, nullable=True)
    debit = Column(Float, nullable=True)
    credit = Column(Float, nullable=True)
    balance = Column(Float, nullable=True)

    # Booking details extracted from the narration or edited by hand
    customer_name = Column(String(255), nullable=True)
    route = Column(String(32), nullable=True)
    pnr = Column(String(16), nullable=True)
    flying_date = Column(String(64), nullable=True)
    flight_status = Column(String(16), nullable=False, default=FlightStatus.COMING.value)
    customer_rate = Column(Float, nullable=False, default=0)
    company_rate = Column(Float, nullable=False, default=0)
    profit = Column(Float, nullable=False, default=0)
    payment_status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value)

    user_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_travel_data_session_created', 'session_id', 'created_at'),
    )

    def __repr__(self):
        return f"<TravelData(id='{self.id}', session='{self.session_id}', voucher='{self.voucher}')>"
