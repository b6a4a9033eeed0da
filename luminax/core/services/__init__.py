"""Application wiring: the ServiceContainer owns every client and service."""

from .container import ServiceContainer

__all__ = ["ServiceContainer"]
