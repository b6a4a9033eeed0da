"""
Progress Audit Consumer
=======================

Purpose
-------
Subscribe to the progression events the services publish after commit and
write them to the structured log as an audit trail of XP milestones.

Consumes
--------
- progress.leveled_up  (HIGH)   : {"user_id", "old_level", "new_level", "xp"}
- quest.completed      (NORMAL) : {"user_id", "quest_id", "quest_type", "xp_reward"}
- achievement.awarded  (NORMAL) : {"user_id", "achievement_type", "xp_reward"}
- account.deleted      (HIGH)   : {"user_id"}
- progress.*           (LOW)    : counted only, for the health report

Non-Responsibilities
--------------------
- No writes to the store; the events describe state that already committed
- No business logic

Architecture Notes
------------------
- EventBus callback signature: single argument (payload dict)
- Listener failures are isolated by the bus and never reach the publisher
- The ServiceContainer starts the consumer after the services and stops it
  before the bus shuts down

Example Usage
-------------
>>> consumer = ProgressAuditConsumer(event_bus)
>>> consumer.start()
>>> consumer.get_status()["events_received"]
{}
>>> consumer.stop()
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from luminax.core.event.types import EventNames, EventPayload, ListenerPriority
from luminax.core.logging.logger import get_logger

if TYPE_CHECKING:
    from logging import Logger

    from luminax.core.event.bus import EventBus

logger = get_logger(__name__)

PROGRESS_PATTERN = "progress.*"


class ProgressAuditConsumer:
    """Writes one audit log line per progression milestone."""

    def __init__(self, event_bus: EventBus, log: Optional[Logger] = None) -> None:
        self._event_bus = event_bus
        self.log = log or logger
        self._subscriptions: List[Tuple[str, str]] = []
        self._received: Counter[str] = Counter()

    @property
    def is_running(self) -> bool:
        return bool(self._subscriptions)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        if self.is_running:
            self.log.warning("ProgressAuditConsumer already running")
            return

        handlers: Dict[str, Tuple[Callable[[EventPayload], Any], ListenerPriority]] = {
            EventNames.PROGRESS_LEVELED_UP: (self._on_level_up, ListenerPriority.HIGH),
            EventNames.QUEST_COMPLETED: (self._on_quest_completed, ListenerPriority.NORMAL),
            EventNames.ACHIEVEMENT_AWARDED: (self._on_achievement, ListenerPriority.NORMAL),
            EventNames.ACCOUNT_DELETED: (self._on_account_deleted, ListenerPriority.HIGH),
            PROGRESS_PATTERN: (self._on_progress_event, ListenerPriority.LOW),
        }
        for event_name, (callback, priority) in handlers.items():
            identifier = self._event_bus.subscribe(
                event_name,
                callback,
                priority=priority,
                identifier=f"audit.{event_name}",
            )
            self._subscriptions.append((event_name, identifier))

        self.log.info(
            "ProgressAuditConsumer started",
            extra={"subscriptions": [name for name, _ in self._subscriptions]},
        )

    def stop(self) -> None:
        for event_name, identifier in self._subscriptions:
            self._event_bus.unsubscribe(event_name, identifier)
        self._subscriptions.clear()
        self.log.info(
            "ProgressAuditConsumer stopped",
            extra={"events_received": dict(self._received)},
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "events_received": dict(self._received),
            "total_received": sum(self._received.values()),
        }

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _on_level_up(self, payload: EventPayload) -> None:
        self._received[EventNames.PROGRESS_LEVELED_UP] += 1
        self.log.info(
            f"Level up: {payload.get('old_level')} -> {payload.get('new_level')}",
            extra={
                "audit": "level_up",
                "user_id": payload.get("user_id"),
                "old_level": payload.get("old_level"),
                "new_level": payload.get("new_level"),
                "xp": payload.get("xp"),
            },
        )

    async def _on_quest_completed(self, payload: EventPayload) -> None:
        self._received[EventNames.QUEST_COMPLETED] += 1
        self.log.info(
            "Quest completed",
            extra={
                "audit": "quest_completed",
                "user_id": payload.get("user_id"),
                "quest_id": payload.get("quest_id"),
                "quest_type": payload.get("quest_type"),
                "xp_reward": payload.get("xp_reward"),
            },
        )

    async def _on_achievement(self, payload: EventPayload) -> None:
        self._received[EventNames.ACHIEVEMENT_AWARDED] += 1
        self.log.info(
            "Achievement awarded",
            extra={
                "audit": "achievement_awarded",
                "user_id": payload.get("user_id"),
                "achievement_type": payload.get("achievement_type"),
                "xp_reward": payload.get("xp_reward"),
            },
        )

    async def _on_account_deleted(self, payload: EventPayload) -> None:
        self._received[EventNames.ACCOUNT_DELETED] += 1
        self.log.warning(
            "Account deleted with all progression history",
            extra={"audit": "account_deleted", "user_id": payload.get("user_id")},
        )

    async def _on_progress_event(self, payload: EventPayload) -> None:
        self._received[PROGRESS_PATTERN] += 1
