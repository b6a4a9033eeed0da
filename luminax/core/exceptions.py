"""
Infrastructure exceptions.

These describe failures of the machinery around a request (database, Redis,
identity provider, configuration), never a learner's mistake; those are the
domain exceptions in `luminax.modules.shared.exceptions`. The API turns every
exception here into a 5xx response with a generic message. The details stay
in the logs.

Each exception carries `message`, `details`, `severity` (drives the log
level), `is_retryable` and a stable `error_code`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LuminaxInfrastructureException(Exception):
    """Base class; subclasses set the defaults and a fixed error code."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    ERROR_CODE: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or self.ERROR_CODE or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} {self.details}"


class _OperationFailure(LuminaxInfrastructureException):
    """An operation against an external system failed with `original_error`."""

    SUBJECT = "Operation"

    def __init__(self, operation: str, original_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.original_error = original_error
        cause = str(original_error) if original_error is not None else "unexpected response"
        super().__init__(
            f"{self.SUBJECT} failed during {operation}: {cause}",
            details={
                "operation": operation,
                "error_type": type(original_error).__name__ if original_error else None,
            },
        )


class ConfigurationError(LuminaxInfrastructureException):
    """A setting is missing, malformed, or unsafe for the environment."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    ERROR_CODE = "CONFIG_ERROR"

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
        )


class PersistenceError(_OperationFailure):
    """
    The store rejected or failed a read or write.

    Raised after the transaction was rolled back, so nothing was applied and
    the whole request can be retried.
    """

    SUBJECT = "Database"
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "PERSISTENCE_ERROR"


class ReconciliationRequiredError(_OperationFailure):
    """
    The connection dropped while committing; the writes may or may not be
    durable. Not retryable: a blind retry could grant XP twice.
    """

    SUBJECT = "Commit"
    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    ERROR_CODE = "RECONCILIATION_REQUIRED"


class DatabaseUnavailableError(LuminaxInfrastructureException):
    """The circuit breaker is open; calls fail fast without touching the store."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "DATABASE_UNAVAILABLE"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Database unavailable: {reason}", details={"reason": reason})


class IdentityServiceError(_OperationFailure):
    """The identity provider could not verify a token right now (not a bad token)."""

    SUBJECT = "Identity provider"
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "IDENTITY_UNAVAILABLE"


class RedisConnectionError(_OperationFailure):
    SUBJECT = "Redis"
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "REDIS_ERROR"


def is_transient_error(exc: Exception) -> bool:
    return isinstance(exc, LuminaxInfrastructureException) and exc.is_retryable


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, LuminaxInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
