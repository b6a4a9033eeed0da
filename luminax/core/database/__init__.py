"""Persistence: declarative base, engine lifecycle and circuit breaker."""
