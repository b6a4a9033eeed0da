"""
Error responses for the HTTP API.

Purpose
-------
Turn domain and infrastructure exceptions into one JSON envelope:

    {"error": {"code": ..., "message": ..., "details": {...}, "retryable": bool}}

Raw exceptions never cross the boundary. Infrastructure failures get a
generic message; their details stay in the logs.

Status Mapping
--------------
- ValidationError, request body validation   -> 422
- AuthenticationError                        -> 401
- NotFoundError                              -> 404
- ConflictError, InvalidOperationError       -> 409
- RateLimitError                             -> 429 (+ Retry-After)
- Persistence/Database/Identity/Redis errors -> 503
- ReconciliationRequiredError, anything else -> 500
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from luminax.core.exceptions import (
    DatabaseUnavailableError,
    ErrorSeverity,
    IdentityServiceError,
    LuminaxInfrastructureException,
    PersistenceError,
    ReconciliationRequiredError,
    RedisConnectionError,
)
from luminax.core.logging.logger import get_logger
from luminax.modules.shared.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidOperationError,
    LuminaxDomainException,
    NotFoundError,
    RateLimitError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

logger = get_logger(__name__)

_DOMAIN_STATUS: Tuple[Tuple[type, int], ...] = (
    (ValidationError, 422),
    (AuthenticationError, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidOperationError, 409),
    (RateLimitError, 429),
)

_INFRA_STATUS: Tuple[Tuple[type, int], ...] = (
    (PersistenceError, 503),
    (DatabaseUnavailableError, 503),
    (IdentityServiceError, 503),
    (RedisConnectionError, 503),
    (ReconciliationRequiredError, 500),
)

_LOG_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}

INFRASTRUCTURE_MESSAGE = "A system error occurred. Please try again in a moment."
RECONCILIATION_MESSAGE = (
    "The outcome of this request could not be confirmed. Check your progress before retrying."
)
UNEXPECTED_MESSAGE = "An unexpected error occurred."


def error_body(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    retryable: bool = False,
) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": jsonable_encoder(details or {}),
            "retryable": retryable,
        }
    }


def _status_for(exc: Exception, table: Tuple[Tuple[type, int], ...], default: int) -> int:
    for exc_type, status in table:
        if isinstance(exc, exc_type):
            return status
    return default


def format_error(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """
    Map an exception onto `(status_code, body)`.

    >>> status, body = format_error(NotFoundError("Quest", 7))
    >>> status, body["error"]["code"]
    (404, 'QUEST_NOT_FOUND')
    """
    if isinstance(exc, LuminaxDomainException):
        status = _status_for(exc, _DOMAIN_STATUS, 400)
        return status, error_body(
            exc.error_code, exc.message, exc.details, is_transient_error(exc)
        )

    if isinstance(exc, LuminaxInfrastructureException):
        status = _status_for(exc, _INFRA_STATUS, 500)
        message = (
            RECONCILIATION_MESSAGE
            if isinstance(exc, ReconciliationRequiredError)
            else INFRASTRUCTURE_MESSAGE
        )
        return status, error_body(exc.error_code, message, retryable=is_transient_error(exc))

    return 500, error_body("INTERNAL_ERROR", UNEXPECTED_MESSAGE)


def _log_failure(request: Request, exc: Exception, status: int) -> None:
    extra = {
        "path": request.url.path,
        "method": request.method,
        "status_code": status,
        "error_type": type(exc).__name__,
    }
    if isinstance(exc, (LuminaxDomainException, LuminaxInfrastructureException)):
        extra["error_code"] = exc.error_code
        logger.log(
            _LOG_LEVELS[get_error_severity(exc)],
            "Request failed: %s",
            exc,
            extra=extra,
            exc_info=should_alert(exc),
        )
    else:
        logger.error("Unhandled exception in request", extra=extra, exc_info=exc)


async def _handle_luminax_exception(request: Request, exc: Exception) -> JSONResponse:
    status, body = format_error(exc)
    _log_failure(request, exc, status)

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse(status_code=status, content=body, headers=headers)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]
    logger.info(
        "Request body rejected",
        extra={"path": request.url.path, "error_count": len(errors)},
    )
    return JSONResponse(
        status_code=422,
        content=error_body("VALIDATION_ERROR", "Request validation failed", {"errors": errors}),
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(f"HTTP_{exc.status_code}", message),
        headers=getattr(exc, "headers", None),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    _log_failure(request, exc, 500)
    return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", UNEXPECTED_MESSAGE))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LuminaxDomainException, _handle_luminax_exception)
    app.add_exception_handler(LuminaxInfrastructureException, _handle_luminax_exception)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(Exception, _handle_unexpected)
