"""
In-process publish/subscribe.

Services publish facts after their unit of work has committed
(`activity.recorded`, `progress.leveled_up`, `quest.completed`, ...), so a
listener never runs inside a transaction and cannot roll a write back. The
ServiceContainer owns one bus per application.

    bus = EventBus(config_manager)
    bus.subscribe("progress.*", on_progress, priority=ListenerPriority.LOW)
    await bus.publish("progress.leveled_up", {"user_id": "u-1", "new_level": 3})

Timeouts for the sequential tiers come from
`core.event.listener_timeout.{critical,high}_seconds` unless passed in.
"""

from __future__ import annotations

import inspect
from collections import Counter
from typing import Any, Optional

from luminax.core.config.manager import ConfigManager
from luminax.core.event.registry import ListenerRegistry
from luminax.core.event.scheduler import EventScheduler
from luminax.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from luminax.core.logging.logger import get_logger, set_log_context

logger = get_logger(__name__)

DEFAULT_LISTENER_TIMEOUT_SECONDS = 5.0


class EventBus:
    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._registry = registry or ListenerRegistry()
        self._scheduler = scheduler or EventScheduler()
        self._published: Counter[str] = Counter()
        self._timeouts = {
            ListenerPriority.CRITICAL: self._timeout("critical_seconds", critical_timeout_seconds),
            ListenerPriority.HIGH: self._timeout("high_seconds", high_timeout_seconds),
        }
        logger.info(
            "EventBus initialized",
            extra={"timeouts": {p.name: t for p, t in self._timeouts.items()}},
        )

    def _timeout(self, name: str, override: Optional[float]) -> float:
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return DEFAULT_LISTENER_TIMEOUT_SECONDS

        key = f"core.event.listener_timeout.{name}"
        raw = self._config_manager.get(key, DEFAULT_LISTENER_TIMEOUT_SECONDS)
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning(
                "Listener timeout is not a number, using the default",
                extra={"config_key": key, "value": repr(raw)},
            )
            return DEFAULT_LISTENER_TIMEOUT_SECONDS

    # ------------------------------------------------------------------ #
    # Subscription
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Register `callback(payload)` for an event name or pattern and return
        the listener identifier (needed for `unsubscribe`).

        Raises:
            ValueError: the callback does not take exactly one argument
        """
        try:
            arity = len(inspect.signature(callback).parameters)
        except (TypeError, ValueError):
            arity = 1  # builtins without an introspectable signature
        if arity != 1:
            raise ValueError(
                f"Event listener {getattr(callback, '__qualname__', callback)!r} must take "
                f"exactly one argument (the payload), it takes {arity}"
            )

        listener = EventListener.from_callback(event_name, callback, priority, identifier, once)
        if self._registry.add_listener(event_name, listener, allow_duplicates=allow_duplicates):
            logger.debug(
                "Listener subscribed",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
        else:
            logger.warning(
                "Listener already subscribed, ignoring",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        return self._registry.remove_listener(event_name, identifier)

    def clear(self) -> None:
        removed = self._registry.clear_all()
        logger.info("EventBus cleared", extra={"listeners_removed": removed})

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver `data` to every matching listener and return the results of
        the awaited tiers. A failed listener contributes None.
        """
        self._published[event_name] += 1
        set_log_context(event_name=event_name)

        listeners = self._registry.extract_listeners_for_event(event_name)
        if not listeners:
            return []
        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            timeouts=self._timeouts,
        )

    async def shutdown(self) -> None:
        await self._scheduler.drain()
        self.clear()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return self._registry.get_total_listener_count()
        return self._registry.get_listener_count_for_event(event_name)

    def get_metrics_summary(self) -> dict[str, Any]:
        errors = self._scheduler.errors_by_event
        return {
            "total_events_published": sum(self._published.values()),
            "events_by_type": dict(self._published),
            "total_errors": sum(errors.values()),
            "errors_by_event": dict(errors),
            "total_listeners": self._registry.get_total_listener_count(),
            "background_tasks": self._scheduler.get_background_task_count(),
        }
