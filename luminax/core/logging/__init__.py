"""Structured logging for Luminax."""
