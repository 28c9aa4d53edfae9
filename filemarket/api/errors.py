"""Exception handlers translating errors into the JSON error envelope.

Envelope: ``{"error_code", "message", "details", "request_id"}``.
"""

from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from filemarket.domain import (
    ConflictError,
    DependencyError,
    DomainError,
    ExpiredError,
    FeatureDisabledError,
    ForbiddenError,
    InvalidSplitError,
    MisconfiguredListingError,
    NotFoundError,
    NotListedError,
    PaymentIncompleteError,
    RetryLimitExceededError,
    UnauthenticatedEventError,
    ValidationError,
)

logger = structlog.get_logger()

ERROR_STATUS: dict[type[DomainError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    UnauthenticatedEventError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    FeatureDisabledError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ExpiredError: status.HTTP_410_GONE,
    NotListedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PaymentIncompleteError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidSplitError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RetryLimitExceededError: status.HTTP_429_TOO_MANY_REQUESTS,
    MisconfiguredListingError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    DependencyError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: DomainError) -> int:
    """HTTP status for a domain error, resolved through its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(
    request: Request,
    error_code: str,
    message: str,
    details: Any = None,
) -> dict[str, Any]:
    return {
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else {},
        "request_id": getattr(request.state, "request_id", None),
    }


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle domain errors with consistent format."""
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request failed",
        path=request.url.path,
        error_code=exc.error_code,
        status_code=status_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_body(request, exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, error_code, message, details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation failures as 400 VALIDATION_ERROR."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, "VALIDATION_ERROR", "Request validation failed", details),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "INTERNAL_ERROR", "An internal error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
