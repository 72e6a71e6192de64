"""
HTTP API of the ledger back office.

Routers for travel data, uploads and health, the error taxonomy and the
dependencies that hand services and the caller to route handlers.
"""

from .deps import AppServices, get_current_user, get_services, require_active_user
from .errors import (
    AuthenticationError,
    BadRequestError,
    InvalidIdentifierError,
    LedgerAPIError,
    PayloadValidationError,
    PermissionDeniedError,
    RecordNotFoundError,
    register_exception_handlers,
)

__all__ = [
    "AppServices",
    "get_current_user",
    "get_services",
    "require_active_user",
    "AuthenticationError",
    "BadRequestError",
    "InvalidIdentifierError",
    "LedgerAPIError",
    "PayloadValidationError",
    "PermissionDeniedError",
    "RecordNotFoundError",
    "register_exception_handlers",
]
