"""
Event names, listener priorities and subscription matching.

Events are dotted names (`activity.recorded`, `progress.leveled_up`).
A subscription is either an exact name or a shell-style pattern where `*`
matches any run of characters, dots included (`progress.*`, `*.completed`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    """
    Execution tier, lowest value first.

    CRITICAL and HIGH run one at a time under a timeout, NORMAL runs
    concurrently, LOW is scheduled in the background and not awaited.
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


class EventNames:
    ACTIVITY_RECORDED = "activity.recorded"
    PROGRESS_XP_APPLIED = "progress.xp_applied"
    PROGRESS_LEVELED_UP = "progress.leveled_up"
    PROGRESS_STREAK_CHANGED = "progress.streak_changed"
    QUEST_CREATED = "quest.created"
    QUEST_COMPLETED = "quest.completed"
    ACHIEVEMENT_AWARDED = "achievement.awarded"
    COMMUNITY_JOINED = "community.joined"
    ACCOUNT_DELETED = "account.deleted"


@dataclass(slots=True, frozen=True)
class EventListener:
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @property
    def order(self) -> tuple[int, str]:
        return (self.priority.value, self.identifier)

    @classmethod
    def from_callback(
        cls,
        pattern: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> EventListener:
        """Without an explicit identifier, name the listener `module.qualname@pattern`."""
        if identifier is None:
            name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "")
            identifier = f"{getattr(callback, '__module__', '?')}.{name or 'callback'}@{pattern}"
        return cls(callback=callback, priority=priority, identifier=identifier, once=once)


def is_pattern(subscription: str) -> bool:
    return "*" in subscription


def matches(event_name: str, subscription: str) -> bool:
    """
    >>> matches("progress.leveled_up", "progress.*")
    True
    >>> matches("quest.completed", "*.completed")
    True
    >>> matches("activity.recorded", "progress.*")
    False
    """
    if not is_pattern(subscription):
        return event_name == subscription
    return fnmatchcase(event_name, subscription)
