"""
Enums for the ledger application.

This module contains the enumeration types shared by the database models,
the API schemas and the upload ingester.
"""

from enum import Enum


class FlightStatus(str, Enum):
    """Travel status of a booked flight."""
    COMING = "Coming"
    GONE = "Gone"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    """Settlement status of a booking."""
    PAID = "Paid"
    PENDING = "Pending"
    PARTIAL = "Partial"


class UserRole(str, Enum):
    """Account roles."""
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account status; inactive accounts can read but not write."""
    ACTIVE = "active"
    INACTIVE = "inactive"
