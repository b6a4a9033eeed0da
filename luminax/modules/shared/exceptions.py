"""
Domain exceptions: the request broke a progression rule.

Services raise these before writing anything, or inside a unit of work that
then rolls back, so a domain exception never leaves partial state. The API
maps them onto 4xx responses:

    ValidationError, InvalidAmountError   422  VALIDATION_<FIELD> / INVALID_AMOUNT
    AuthenticationError                   401  AUTHENTICATION_FAILED
    NotFoundError                         404  <RESOURCE>_NOT_FOUND
    ConflictError                         409  <RESOURCE>_CONFLICT
    InvalidOperationError                 409  INVALID_<ACTION>
    RateLimitError                        429  RATE_LIMIT_EXCEEDED

Infrastructure failures are in `luminax.core.exceptions`; the helpers at the
bottom of this module classify exceptions from either tree.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from luminax.core import exceptions as infra
from luminax.core.exceptions import ErrorSeverity

__all__ = [
    "ErrorSeverity",
    "LuminaxDomainException",
    "ValidationError",
    "InvalidAmountError",
    "NotFoundError",
    "ConflictError",
    "AuthenticationError",
    "RateLimitError",
    "InvalidOperationError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]


class LuminaxDomainException(Exception):
    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False

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
        self.error_code = error_code or type(self).__name__

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
        return f"[{self.error_code}] {self.message}"


class ValidationError(LuminaxDomainException):
    """`field` holds the offending input name; it is also in `details["field"]`."""

    def __init__(self, field: str, message: str, error_code: Optional[str] = None) -> None:
        self.field = field
        super().__init__(
            f"{field}: {message}",
            details={"field": field, "problem": message},
            error_code=error_code or f"VALIDATION_{field.upper()}",
        )


class InvalidAmountError(ValidationError):
    """An XP delta that is negative, too large or not an integer."""

    def __init__(
        self, amount: Any, field: str = "amount", reason: Optional[str] = None
    ) -> None:
        self.amount = amount
        super().__init__(
            field,
            reason or f"must be a non-negative integer, got {amount!r}",
            error_code="INVALID_AMOUNT",
        )


class NotFoundError(LuminaxDomainException):
    """
    The resource does not exist, belongs to someone else, or is no longer
    usable (an expired quest). Callers cannot tell these apart on purpose.

    >>> NotFoundError("Quest", 7, reason="expired").error_code
    'QUEST_NOT_FOUND'
    """

    def __init__(
        self,
        resource_type: str,
        identifier: Optional[Any] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        label = resource_type if identifier is None else f"{resource_type} {identifier}"
        super().__init__(
            f"{label} not found" + (f" ({reason})" if reason else ""),
            details={"resource_type": resource_type, "identifier": identifier, "reason": reason},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ConflictError(LuminaxDomainException):
    """A one-time effect would apply twice: duplicate achievement, completed quest, taken name."""

    def __init__(self, resource_type: str, reason: str, **details: Any) -> None:
        self.resource_type = resource_type
        self.reason = reason
        super().__init__(
            f"{resource_type}: {reason}",
            details={"resource_type": resource_type, "reason": reason, **details},
            error_code=f"{resource_type.upper()}_CONFLICT",
        )


class AuthenticationError(LuminaxDomainException):
    def __init__(self, reason: str = "invalid or missing credentials") -> None:
        self.reason = reason
        super().__init__(
            f"Authentication failed: {reason}",
            details={"reason": reason},
            error_code="AUTHENTICATION_FAILED",
        )


class RateLimitError(LuminaxDomainException):
    """Too many requests for `scope` in the current window; retry after `retry_after` seconds."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(self, scope: str, retry_after: float) -> None:
        self.scope = scope
        self.retry_after = retry_after
        super().__init__(
            f"Too many {scope} requests, retry in {retry_after:.0f}s",
            details={"scope": scope, "retry_after": retry_after},
            error_code="RATE_LIMIT_EXCEEDED",
        )


class InvalidOperationError(LuminaxDomainException):
    """The action is not allowed in the current state, e.g. leaving a community you never joined."""

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action.replace('_', ' ')}: {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


def is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, LuminaxDomainException):
        return exc.is_retryable
    return infra.is_transient_error(exc)


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, LuminaxDomainException):
        return exc.severity
    return infra.get_error_severity(exc)


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
