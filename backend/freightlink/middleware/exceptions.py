"""Error taxonomy and exception handlers for consistent error responses.

Domain services raise the FreightLinkException subclasses below; the
handlers registered here turn them (and framework/database errors) into
the standard ``{"error": {...}}`` JSON body with proper logging.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class FreightLinkException(Exception):
    """Base exception for FreightLink application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)

    @property
    def details(self) -> dict | None:
        return None


class ValidationFailedError(FreightLinkException):
    """Bad input shape or range.  Carries every failing field, not just the first."""

    def __init__(
        self,
        errors: list[FieldError],
        message: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
    ):
        self.errors = list(errors)
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
        )

    @property
    def details(self) -> dict:
        return {"errors": [asdict(e) for e in self.errors]}


class PastSchedulingError(ValidationFailedError):
    """Planned loading time is not strictly in the future."""

    def __init__(self, message: str = "Loading time must be in the future"):
        super().__init__(
            [FieldError("planned_loading_time", message)],
            message=message,
            error_code="PAST_SCHEDULING",
        )


class WindowExceededError(ValidationFailedError):
    """Loading → delivery window is longer than the configured maximum."""

    def __init__(self, max_hours: float):
        message = f"Delivery window exceeds {max_hours:g} hours"
        super().__init__(
            [FieldError("planned_loading_time", message)],
            message=message,
            error_code="WINDOW_EXCEEDED",
        )


class FieldNotModifiableError(FreightLinkException):
    """Write attempt on fields that the plan's status does not allow."""

    def __init__(self, fields: list[str], plan_status: str, reason: str | None = None):
        self.fields = list(fields)
        self.plan_status = plan_status
        super().__init__(
            message=reason or f"Cannot modify {', '.join(self.fields)} in {plan_status} status",
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FIELD_NOT_MODIFIABLE",
        )

    @property
    def details(self) -> dict:
        return {"fields": self.fields, "status": self.plan_status}


class PermissionDeniedError(FreightLinkException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class ResourceNotFoundError(FreightLinkException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class ConflictError(FreightLinkException):
    """Optimistic-version mismatch.  Nothing was written."""

    def __init__(
        self,
        message: str = "Record was modified by another user. Please refresh and try again.",
        expected_version: int | None = None,
        current_version: int | None = None,
    ):
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
        )

    @property
    def details(self) -> dict | None:
        if self.expected_version is None:
            return None
        return {
            "expected_version": self.expected_version,
            "current_version": self.current_version,
        }


class InvalidTransitionError(FreightLinkException):
    """Requested status change is not an edge of the lifecycle graph."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Cannot transition from {current} to {target}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Build the ``{"error": {"code", "message", "details"?}}`` body."""
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


async def freightlink_exception_handler(
    request: Request,
    exc: FreightLinkException,
) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}", extra=_request_context(request))
    return create_error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Request bodies that do not parse at all (wrong types, missing keys) → 422.

    Range and business-rule failures are raised by the services as
    ValidationFailedError and come back as 400 instead.
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Malformed request on {request.url.path}: {len(errors)} error(s)",
        extra=_request_context(request),
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request body could not be parsed",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


# (substring of the driver message, client message, error code)
_INTEGRITY_VIOLATIONS = (
    ("unique", "A record with this value already exists", "DUPLICATE_RECORD"),
    ("foreign key", "Referenced record does not exist", "FOREIGN_KEY_VIOLATION"),
    ("not null", "Required field is missing", "NULL_VALUE_NOT_ALLOWED"),
)


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Integrity errors that escaped the repository (it maps the expected ones itself)."""
    driver_message = str(getattr(exc, "orig", exc))
    logger.error(
        f"Integrity error on {request.url.path}: {driver_message}",
        extra=_request_context(request),
    )
    for needle, message, error_code in _INTEGRITY_VIOLATIONS:
        if needle in driver_message.lower():
            break
    else:
        message, error_code = "Database constraint violation", "INTEGRITY_ERROR"
    return create_error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, message, error_code)


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error(f"Database unavailable on {request.url.path}: {exc}", extra=_request_context(request))
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.url.path}", extra=_request_context(request))
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    handlers = (
        (FreightLinkException, freightlink_exception_handler),
        (HTTPException, http_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (IntegrityError, database_exception_handler),
        (OperationalError, operational_exception_handler),
        (Exception, general_exception_handler),
    )
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
