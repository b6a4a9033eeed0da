"""Luminax: progression backend for a gamified study tracker."""

__version__ = "1.0.0"
