"""
Pydantic models for the ledger application.
"""

from .enums import FlightStatus, PaymentStatus, UserRole, UserStatus
from .travel_data import (
    TravelDataCreate,
    TravelDataUpdate,
    TravelDataRecord,
    TravelDataPage,
)
from .upload_session import (
    OpeningBalance,
    UploadSessionRecord,
    FileHistoryEntry,
    FileHistoryMetadata,
    RestoredSession,
    UploadSummary,
    UploadResponse,
)

__all__ = [
    # Enums
    "FlightStatus",
    "PaymentStatus",
    "UserRole",
    "UserStatus",

    # Travel data
    "TravelDataCreate",
    "TravelDataUpdate",
    "TravelDataRecord",
    "TravelDataPage",

    # Upload sessions
    "OpeningBalance",
    "UploadSessionRecord",
    "FileHistoryEntry",
    "FileHistoryMetadata",
    "RestoredSession",
    "UploadSummary",
    "UploadResponse",
]
