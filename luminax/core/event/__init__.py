"""Post-commit domain events. The ServiceContainer owns the one EventBus."""

from .bus import EventBus
from .types import CallbackType, EventListener, EventNames, EventPayload, ListenerPriority

__all__ = [
    "EventBus",
    "EventNames",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
