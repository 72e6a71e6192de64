"""
Upload session Pydantic models.

An upload session groups the rows imported from one spreadsheet.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .travel_data import TravelDataRecord


class OpeningBalance(BaseModel):
    """Opening balance line found above the ledger header."""
    date: str
    amount: float


class UploadSessionRecord(BaseModel):
    """A stored upload session as returned by the API."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    object_id: Optional[str] = Field(default=None, serialization_alias="_id")
    filename: str
    size: int = 0
    opening_balance: Optional[OpeningBalance] = None
    total_records: int = 0
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def collect_opening_balance(cls, data: Any) -> Any:
        # ORM rows keep the opening balance in two flat columns
        if not isinstance(data, dict) and hasattr(data, "opening_balance_amount"):
            amount = data.opening_balance_amount
            data = {
                "id": data.id,
                "filename": data.filename,
                "size": data.size or 0,
                "opening_balance": (
                    {"date": data.opening_balance_date or "", "amount": amount}
                    if amount is not None
                    else None
                ),
                "total_records": data.total_records or 0,
                "user_id": data.user_id,
                "created_at": data.created_at,
                "updated_at": data.updated_at,
            }
        return data

    @model_validator(mode="after")
    def mirror_identifier(self) -> "UploadSessionRecord":
        self.object_id = self.id
        return self


class FileHistoryMetadata(BaseModel):
    total_rows: int
    columns: List[str] = Field(default_factory=list)
    file_type: str = "csv"


class FileHistoryEntry(BaseModel):
    """Upload session summary for the history view."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., serialization_alias="_id")
    filename: str
    original_name: str
    created_at: datetime
    metadata: FileHistoryMetadata


class RestoredSession(BaseModel):
    """A session and all of its rows, for reloading it in the client."""
    session: UploadSessionRecord
    data: List[TravelDataRecord]


class UploadSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_bookings: int = Field(..., serialization_alias="totalBookings")
    total_revenue: float = Field(..., serialization_alias="totalRevenue")
    total_expenses: float = Field(..., serialization_alias="totalExpenses")
    coming_flights: int = Field(..., serialization_alias="comingFlights")


class UploadResponse(BaseModel):
    """Result of a successful spreadsheet upload."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., serialization_alias="sessionId")
    filename: str
    total_records: int = Field(..., serialization_alias="totalRecords")
    opening_balance: Optional[OpeningBalance] = Field(
        default=None, serialization_alias="openingBalance"
    )
    entries: List[TravelDataRecord]
    summary: UploadSummary

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
