"""
Error taxonomy shared by the service and the client, plus the global
exception handlers that keep stack traces away from API clients.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class TrackerError(Exception):
    """Base class for every error raised by the time tracker."""

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TrackerError):
    status_code = 422
    default_message = "Invalid input"


class AuthenticationError(TrackerError):
    status_code = 401
    default_message = "Invalid User ID or Password."


class PermissionDeniedError(TrackerError):
    status_code = 403
    default_message = "Not allowed to access this resource"


class NotFoundError(TrackerError):
    status_code = 404
    default_message = "Record not found"


class ConflictError(TrackerError):
    status_code = 409
    default_message = "Record conflicts with existing state"


class TransientIOError(TrackerError):
    """Network or database failure; the operation may be retried by the user."""

    status_code = 503
    default_message = "Data store temporarily unavailable"


_ERRORS_BY_STATUS: dict[int, type[TrackerError]] = {
    cls.status_code: cls
    for cls in (
        ValidationError,
        AuthenticationError,
        PermissionDeniedError,
        NotFoundError,
        ConflictError,
        TransientIOError,
    )
}


def error_for_status(status_code: int, message: str | None = None) -> TrackerError:
    """Map an HTTP status back onto the taxonomy (5xx → TransientIOError)."""
    if status_code >= 500:
        return TransientIOError(message)
    cls = _ERRORS_BY_STATUS.get(status_code, TrackerError)
    return cls(message)


# ── Handlers ────────────────────────────────────────────────────────
async def _tracker_error_handler(_request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Tracker error: %s", exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "success": False},
        headers=headers,
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(TrackerError, _tracker_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
