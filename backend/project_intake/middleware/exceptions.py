"""Intake error taxonomy and the HTTP error envelope.

Constraint violations are data (lists of messages), never exceptions.
The exceptions here are the defect class: a caller breaking the
contract of the public API (unknown step id, out-of-range navigation
state) or asking for a draft that does not exist.

Every error leaves the API as
    {"error": {"code": "...", "message": "...", "details": {...}}}
with ``details`` only present when there is something to add.
"""

import logging
from typing import Any, Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class IntakeException(Exception):
    """Base class for intake engine defects."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTAKE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownStepError(IntakeException):
    """A step id that is not part of the configured step list."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "UNKNOWN_STEP"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Unknown intake step: {step_id}")


class NavigationInvariantError(IntakeException):
    """Navigation state outside the declared step range."""

    error_code = "NAVIGATION_INVARIANT"


class DraftNotFoundError(IntakeException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "DRAFT_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Intake draft not found: {record_id}")


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Union[dict, None] = None,
) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _request_context(request: Request) -> dict[str, str]:
    return {"path": request.url.path, "method": request.method}


async def intake_exception_handler(request: Request, exc: IntakeException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.error_code}: {exc.message}",
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return error_response(exc.status_code, exc.error_code, exc.message)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}", extra=_request_context(request))
    return error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Wrong types in a request body or an update; reported field by field
    in the same shape as parse violations."""
    violations = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Rejected {len(violations)} field(s) on {request.url.path}",
        extra=_request_context(request),
    )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Some values could not be accepted",
        details={"errors": violations},
    )


async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Draft storage failures outside the fire-and-forget save path
    (loading a draft, readiness probes)."""
    logger.error(f"Draft storage error on {request.url.path}: {exc}", extra=_request_context(request))
    if isinstance(exc, OperationalError):
        return error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_UNAVAILABLE",
            "Draft storage is temporarily unavailable. Please try again.",
        )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "STORAGE_ERROR",
        "The draft could not be read or written.",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", extra=_request_context(request), exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app):
    """Register the intake error handlers with the FastAPI app."""
    app.add_exception_handler(IntakeException, intake_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, storage_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
