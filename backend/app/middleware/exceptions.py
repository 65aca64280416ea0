"""Typed billing errors and the handlers that render them.

Services raise the errors below; nothing in a service builds an HTTP
response.  Every failure leaves the API in the same shape:

    {"error": {"code": "INVOICE_LOCKED", "message": "...", "details": {...}}}

    ValidationFailedError  → 400   bad input, do not retry unchanged
    ResourceNotFoundError  → 404
    ConflictError          → 409   state precondition, resolve then retry
    StorageFailureError    → 503   transient, safe to retry
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FreightLedgerException(Exception):
    """Base for every error the engine reports to callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details


class ValidationFailedError(FreightLedgerException):
    """Input rejected by a business rule (amount, selection, container number)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class ConflictError(FreightLedgerException):
    """State precondition violated; the caller must resolve it first."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class ResourceNotFoundError(FreightLedgerException):
    """Raised as ResourceNotFoundError("Container", id) → CONTAINER_NOT_FOUND."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: str, error_code: str | None = None):
        super().__init__(
            f"{resource} not found: {identifier}",
            error_code or resource.upper().replace(" ", "_") + "_NOT_FOUND",
        )


class StorageFailureError(FreightLedgerException):
    """Store timed out or went away; nothing was committed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "STORAGE_FAILURE"


# ── Rendering ────────────────────────────────────────────────

def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _where(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# Substring of the driver message → (code, message); first match wins
_INTEGRITY_RULES = (
    ("unique", "DUPLICATE_RECORD", "A record with this value already exists"),
    ("foreign key", "FOREIGN_KEY_VIOLATION", "Referenced record does not exist"),
    ("check", "CONSTRAINT_VIOLATION", "Value violates a table constraint"),
)


# ── Handlers ─────────────────────────────────────────────────

async def billing_error_handler(request: Request, exc: FreightLedgerException) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level, "%s %s → %s: %s", request.method, request.url.path, exc.error_code, exc.message,
        extra={**_where(request), "error_code": exc.error_code},
    )
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail, extra=_where(request))
    return error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def request_shape_handler(request: Request, exc: RequestValidationError | ValidationError) -> JSONResponse:
    """Malformed body, query or header → 400 with one entry per bad field."""
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning(
        "Rejected request shape on %s (%d error(s))", request.url.path, len(errors),
        extra={**_where(request), "errors": errors},
    )
    return error_response(
        status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Validation error", {"errors": errors},
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations that slipped past the service checks → 409."""
    driver_message = str(exc.orig).lower()
    code, message = "INTEGRITY_ERROR", "Database constraint violation"
    for needle, rule_code, rule_message in _INTEGRITY_RULES:
        if needle in driver_message:
            code, message = rule_code, rule_message
            break
    logger.error("Integrity error on %s: %s", request.url.path, exc.orig, extra=_where(request))
    return error_response(status.HTTP_409_CONFLICT, code, message)


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc, extra=_where(request))
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DATABASE_UNAVAILABLE",
        "Database temporarily unavailable. Please try again.",
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, never leak it."""
    logger.exception("Unhandled error on %s", request.url.path, extra=_where(request))
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(FreightLedgerException, billing_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_shape_handler)
    app.add_exception_handler(ValidationError, request_shape_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
