"""
Python client for the ledger API: the travel-data HTTP wrapper and the
session-scoped record store built on it.
"""

from .api import TravelDataAPI, TravelDataAPIError, normalize_record
from .session_store import SessionDataStore, STATE_KEY

__all__ = [
    "TravelDataAPI",
    "TravelDataAPIError",
    "normalize_record",
    "SessionDataStore",
    "STATE_KEY",
]
