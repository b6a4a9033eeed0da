"""Low-level input validation shared by the services."""

from luminax.core.validation.input_validator import InputValidator

__all__ = ["InputValidator"]
