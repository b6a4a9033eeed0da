"""
Input Validation Layer for Luminax

Purpose
-------
Single place for low-level input rules shared by the services: numeric
coercion and bounds, string lengths and the shape of opaque user ids.
Every failure raises `ValidationError` (HTTP 422) and is logged at debug
level with the field name, raw value and reason.

Non-Responsibilities
--------------------
- Business rules (the services decide what a valid quest or session is)
- Persistence constraints
"""

from __future__ import annotations

import math
from typing import Any, NoReturn, Optional

from luminax.core.logging.logger import get_logger
from luminax.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

MAX_USER_ID_LENGTH = 64


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless validators. Each returns the validated (and normalized) value
    or raises ValidationError.
    """

    # =========================================================================
    # NUMBERS
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Accepts ints and integral strings. Booleans and fractional numbers
        are rejected rather than truncated.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")
        if isinstance(value, float):
            if not value.is_integer():
                _raise_validation_error(field_name, value, f"Must be a whole number, got {value}")
            value = int(value)

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name, int_value, f"Must be at least {min_value}, got {int_value}"
            )
        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name, int_value, f"Cannot exceed {max_value}, got {int_value}"
            )
        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=1, max_value=max_value)

    @staticmethod
    def validate_non_negative_integer(
        value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=0, max_value=max_value)

    @staticmethod
    def validate_number(
        value: Any,
        field_name: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
    ) -> float:
        """Validate a finite real number (quiz scores may be fractional)."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a number")
        try:
            number = float(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a number, got '{value}'")
        if not math.isfinite(number):
            _raise_validation_error(field_name, value, "Must be a finite number")

        if min_value is not None and number < min_value:
            _raise_validation_error(
                field_name, number, f"Must be at least {min_value}, got {number}"
            )
        if max_value is not None and number > max_value:
            _raise_validation_error(
                field_name, number, f"Cannot exceed {max_value}, got {number}"
            )
        return number

    # =========================================================================
    # STRINGS
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = 1,
        max_length: Optional[int] = None,
    ) -> str:
        """Strip surrounding whitespace, then enforce length bounds."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")

        str_value = value.strip()
        if min_length is not None and len(str_value) < min_length:
            if min_length == 1:
                _raise_validation_error(field_name, str_value, "Cannot be empty")
            _raise_validation_error(
                field_name, str_value, f"Must be at least {min_length} characters"
            )
        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name, str_value, f"Cannot exceed {max_length} characters"
            )
        return str_value

    @staticmethod
    def validate_optional_string(
        value: Any, field_name: str, max_length: Optional[int] = None
    ) -> Optional[str]:
        """None and blank strings both normalize to None."""
        if value is None:
            return None
        str_value = InputValidator.validate_string(
            value, field_name, min_length=None, max_length=max_length
        )
        return str_value or None

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> str:
        """User ids are opaque strings issued by the identity provider."""
        return InputValidator.validate_string(
            value, field_name, min_length=1, max_length=MAX_USER_ID_LENGTH
        )
