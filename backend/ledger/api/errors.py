"""
HTTP error taxonomy and FastAPI exception handlers.

Every handled error is rendered as ``{"message": ..., ...}``. Unexpected
errors are logged with their traceback and answered with a generic 500 so
internals never reach the client.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..services.ingest import FileTooLargeError, IngestError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class LedgerAPIError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = INTERNAL_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.code = code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.code:
            body["code"] = self.code
        body.update(self.extra)
        return body


class AuthenticationError(LedgerAPIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class PermissionDeniedError(LedgerAPIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Permission denied"


class PayloadValidationError(LedgerAPIError):
    """Request body failed schema validation; ``errors`` lists each problem."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request payload"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors=errors or [])


class BadRequestError(LedgerAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class InvalidIdentifierError(LedgerAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid ID format"


class RecordNotFoundError(LedgerAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reduce pydantic error dicts to JSON-safe path/message/code entries."""
    return [
        {
            "path": [str(part) for part in error.get("loc", ())],
            "message": error.get("msg", ""),
            "code": error.get("type", ""),
        }
        for error in errors
    ]


_INGEST_STATUS = {
    UnsupportedFileTypeError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    FileTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
}


async def ledger_error_handler(request: Request, exc: LedgerAPIError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "Invalid request",
            "errors": format_validation_errors(exc.errors()),
        },
    )


async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    status_code = _INGEST_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={"message": str(exc), "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": INTERNAL_ERROR_MESSAGE},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the ledger exception handlers to an application."""
    app.add_exception_handler(LedgerAPIError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IngestError, ingest_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
