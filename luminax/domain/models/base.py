"""
Base domain building blocks for Luminax.

Domain models hold the progression rules as pure functions and frozen value
objects: no I/O, no sessions, no clock reads unless a time is passed in.
Services translate `DomainValidationError` into the API-facing
`ValidationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class DomainEvent:
    """
    A state change worth telling the rest of the system about.

    Attributes
    ----------
    event_name : str
        Dotted event name (e.g., "progress.leveled_up")
    payload : Dict[str, Any]
        JSON-friendly event data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DomainValidationError(Exception):
    """Raised when a domain rule rejects a value."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_positive(value: int, field_name: str) -> None:
    if not _is_int(value) or value <= 0:
        raise DomainValidationError(
            f"{field_name} must be a positive integer, got {value!r}",
            field=field_name,
        )


def validate_non_negative(value: int, field_name: str) -> None:
    if not _is_int(value) or value < 0:
        raise DomainValidationError(
            f"{field_name} must be a non-negative integer, got {value!r}",
            field=field_name,
        )


def validate_range(value: int, min_val: int, max_val: int, field_name: str) -> None:
    if not _is_int(value) or not (min_val <= value <= max_val):
        raise DomainValidationError(
            f"{field_name} must be between {min_val} and {max_val}, got {value!r}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise DomainValidationError(f"{field_name} cannot be empty", field=field_name)
