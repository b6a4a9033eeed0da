"""Tests for InputValidator."""

import pytest

from luminax.core.validation.input_validator import MAX_USER_ID_LENGTH, InputValidator
from luminax.modules.shared.exceptions import ValidationError


@pytest.mark.unit
class TestValidateInteger:
    @pytest.mark.parametrize("raw,expected", [(5, 5), ("12", 12), (3.0, 3)])
    def test_accepts_whole_numbers(self, raw, expected):
        assert InputValidator.validate_integer(raw, "n") == expected

    @pytest.mark.parametrize("raw", [None, True, 2.5, "abc"])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_integer(raw, "n")

        assert exc_info.value.field == "n"

    def test_bounds(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(0, "limit", min_value=1)
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(101, "limit", max_value=100)

    def test_positive_and_non_negative(self):
        assert InputValidator.validate_non_negative_integer(0, "xp") == 0
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_integer(0, "total_questions")


@pytest.mark.unit
class TestValidateNumber:
    def test_fractional(self):
        assert InputValidator.validate_number("99.5", "score", 0, 100) == 99.5

    @pytest.mark.parametrize("raw", [float("inf"), float("nan"), False, "x", -0.1, 100.01])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            InputValidator.validate_number(raw, "score", 0, 100)


@pytest.mark.unit
class TestValidateStrings:
    def test_strips_whitespace(self):
        assert InputValidator.validate_string("  algebra ", "subject") == "algebra"

    def test_max_length(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("x" * 11, "subject", max_length=10)

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_optional_blank_is_none(self, raw):
        assert InputValidator.validate_optional_string(raw, "notes") is None

    def test_user_id_length(self):
        assert InputValidator.validate_user_id("u" * MAX_USER_ID_LENGTH)
        with pytest.raises(ValidationError):
            InputValidator.validate_user_id("u" * (MAX_USER_ID_LENGTH + 1))

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string(42, "subject")
