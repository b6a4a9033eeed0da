"""
Base Service Foundation

Purpose
-------
Foundation class for the Luminax domain services. Services implement the
progression rules, own their units of work and emit domain events after
commit.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helpers
- The `unit_of_work()` helper so a service call can either open its own
  transaction or join the caller's
- Small validation helpers raising `ValidationError`

What this class does NOT do:
- Own the engine (DatabaseService does)
- Hold module-level clients; every collaborator is injected

Usage
-----
    class QuestTrackerService(BaseService):
        def __init__(self, database, config_manager, event_bus, logger, ledger):
            super().__init__(database, config_manager, event_bus, logger)
            self._ledger = ledger
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from luminax.core.exceptions import ConfigurationError
from luminax.domain.models.base import DomainEvent, DomainValidationError
from luminax.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus

# Largest value a BIGINT key or counter column can hold.
MAX_ROW_ID = 2**63 - 1


class BaseService:
    """
    Base class for all domain services.

    Args:
        database: DatabaseService instance
        config_manager: Tunables
        event_bus: Event bus for post-commit notifications
        logger: Structured logger instance
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._db = database
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    # ------------------------------------------------------------------ #
    # Config
    # ------------------------------------------------------------------ #

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        Retrieve a tunable.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    def get_config_int(self, key: str, default: int) -> int:
        return self._config.get_int(key, default)

    # ------------------------------------------------------------------ #
    # Units of work
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def unit_of_work(
        self,
        session: Optional[AsyncSession],
        operation: str,
    ) -> AsyncIterator[AsyncSession]:
        """
        Yield `session` when the caller already holds a unit of work,
        otherwise open a new transaction for `operation`.
        """
        if session is not None:
            yield session
            return

        async with self._db.get_transaction(operation) as own_session:
            yield own_session

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        async with self._db.get_session() as session:
            yield session

    # ------------------------------------------------------------------ #
    # Events & logging
    # ------------------------------------------------------------------ #

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish after commit. Listener failures are isolated by the bus."""
        await self._events.publish(event_type, {**data, **(context or {})})

    async def publish_events(self, events: Iterable[DomainEvent]) -> None:
        """Publish events collected during a unit of work, in order."""
        for event in events:
            await self.emit_event(
                event.event_name,
                event.payload,
                {"occurred_at": event.occurred_at.isoformat()},
            )

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _is_int(value: Any) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

    def validate_positive_int(
        self, value: Any, name: str, max_value: Optional[int] = MAX_ROW_ID
    ) -> None:
        if not self._is_int(value) or value <= 0:
            raise ValidationError(name, f"must be a positive integer, got {value!r}")
        self._check_max(value, name, max_value)

    def validate_non_negative_int(
        self, value: Any, name: str, max_value: Optional[int] = MAX_ROW_ID
    ) -> None:
        if not self._is_int(value) or value < 0:
            raise ValidationError(name, f"must be a non-negative integer, got {value!r}")
        self._check_max(value, name, max_value)

    @staticmethod
    def _check_max(value: int, name: str, max_value: Optional[int]) -> None:
        if max_value is not None and value > max_value:
            raise ValidationError(name, f"cannot exceed {max_value}, got {value}")

    @staticmethod
    def to_validation_error(exc: DomainValidationError) -> ValidationError:
        """Map a domain rule violation onto the API-facing ValidationError."""
        return ValidationError(exc.field or "value", str(exc))
