"""
Database package for the ledger back office.

This package provides the async engine and session management, the table
models and the repositories used by the API handlers and the CLI.
"""

from .config import Database
from .models import Base, TravelData, UploadSession, User, new_id, utcnow
from .repository import TravelDataRepository, UploadSessionRepository, UserRepository

__all__ = [
    'Database',
    'Base',
    'TravelData',
    'UploadSession',
    'User',
    'new_id',
    'utcnow',
    'TravelDataRepository',
    'UploadSessionRepository',
    'UserRepository',
]
