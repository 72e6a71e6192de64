"""
Travel-data Pydantic models for the ledger API.

This module contains the request schemas for creating and partially
updating ledger rows, and the response shapes for single rows and
paginated session listings.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import FlightStatus, PaymentStatus


class TravelDataCreate(BaseModel):
    """
    Fields accepted when a row is created by hand.

    Every field is optional; unknown fields, the owner and server-managed
    timestamps are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    session_id: Optional[str] = None
    date: Optional[str] = None
    voucher: Optional[str] = None
    reference: Optional[str] = None
    narration: Optional[str] = None
    debit: Optional[float] = None
    credit: Optional[float] = None
    balance: Optional[float] = None
    customer_name: Optional[str] = None
    route: Optional[str] = None
    pnr: Optional[str] = None
    flying_date: Optional[str] = None
    flight_status: FlightStatus = FlightStatus.COMING
    customer_rate: float = 0
    company_rate: float = 0
    profit: float = 0
    payment_status: PaymentStatus = PaymentStatus.PENDING


class TravelDataUpdate(BaseModel):
    """
    Partial update of a row.

    Every field is optional. The owner is not part of the schema, so it can
    never be reassigned through an update.
    """
    model_config = ConfigDict(extra="ignore")

    session_id: Optional[str] = None
    date: Optional[str] = None
    voucher: Optional[str] = None
    reference: Optional[str] = None
    narration: Optional[str] = None
    debit: Optional[float] = None
    credit: Optional[float] = None
    balance: Optional[float] = None
    customer_name: Optional[str] = None
    route: Optional[str] = None
    pnr: Optional[str] = None
    flying_date: Optional[str] = None
    flight_status: Optional[FlightStatus] = None
    customer_rate: Optional[float] = None
    company_rate: Optional[float] = None
    profit: Optional[float] = None
    payment_status: Optional[PaymentStatus] = None

    def sanitized_changes(self) -> Dict[str, Any]:
        """
        Fields to write: everything the client sent that is not null.

        A null is dropped rather than written, so an update never clears a
        stored value.
        """
        return {
            key: value
            for key, value in self.model_dump(mode="json", exclude_unset=True).items()
            if value is not None
        }


class TravelDataRecord(BaseModel):
    """
    A stored ledger row as returned by the API.

    The identifier is emitted both as ``id`` and ``_id`` for clients written
    against either name.
    """
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    object_id: Optional[str] = Field(default=None, serialization_alias="_id")
    session_id: Optional[str] = None
    date: Optional[str] = None
    voucher: Optional[str] = None
    reference: Optional[str] = None
    narration: Optional[str] = None
    debit: Optional[float] = None
    credit: Optional[float] = None
    balance: Optional[float] = None
    customer_name: Optional[str] = None
    route: Optional[str] = None
    pnr: Optional[str] = None
    flying_date: Optional[str] = None
    flight_status: FlightStatus = FlightStatus.COMING
    customer_rate: float = 0
    company_rate: float = 0
    profit: float = 0
    payment_status: PaymentStatus = PaymentStatus.PENDING
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def mirror_identifier(self) -> "TravelDataRecord":
        self.object_id = self.id
        return self


class TravelDataPage(BaseModel):
    """One page of a session listing."""
    model_config = ConfigDict(populate_by_name=True)

    data: List[TravelDataRecord]
    total: int = Field(..., ge=0)
    page: int
    page_size: int = Field(..., serialization_alias="pageSize")
    total_pages: int = Field(..., serialization_alias="totalPages")
