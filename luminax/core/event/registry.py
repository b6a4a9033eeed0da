"""
Subscriptions of an EventBus, keyed by the name or pattern they were made for.

All methods are synchronous and run on the event loop thread, so a lookup
and the pruning of `once` listeners happen without an await in between.
"""

from __future__ import annotations

from luminax.core.event.types import EventListener, is_pattern, matches


class ListenerRegistry:
    def __init__(self) -> None:
        self._by_subscription: dict[str, list[EventListener]] = {}

    def add_listener(
        self,
        subscription: str,
        listener: EventListener,
        *,
        allow_duplicates: bool = False,
    ) -> bool:
        """False when a listener with the same identifier already holds this subscription."""
        current = self._by_subscription.setdefault(subscription, [])
        taken = {entry.identifier for entry in current}
        if not allow_duplicates and listener.identifier in taken:
            return False
        current.append(listener)
        current.sort(key=lambda entry: entry.order)
        return True

    def remove_listener(self, subscription: str, identifier: str) -> bool:
        current = self._by_subscription.get(subscription, [])
        kept = [entry for entry in current if entry.identifier != identifier]
        self._store(subscription, kept)
        return len(kept) < len(current)

    def clear_all(self) -> int:
        total = self.get_total_listener_count()
        self._by_subscription.clear()
        return total

    def _store(self, subscription: str, listeners: list[EventListener]) -> None:
        if listeners:
            self._by_subscription[subscription] = listeners
        else:
            self._by_subscription.pop(subscription, None)

    def _subscriptions_for(self, event_name: str) -> list[str]:
        return [
            subscription
            for subscription in self._by_subscription
            if subscription == event_name
            or (is_pattern(subscription) and matches(event_name, subscription))
        ]

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """Listeners due for `event_name` in run order; `once` listeners are removed here."""
        due: list[EventListener] = []
        for subscription in self._subscriptions_for(event_name):
            listeners = self._by_subscription[subscription]
            due.extend(listeners)
            self._store(subscription, [entry for entry in listeners if not entry.once])
        return sorted(due, key=lambda entry: entry.order)

    def get_listener_count_for_event(self, event_name: str) -> int:
        return sum(
            len(self._by_subscription[subscription])
            for subscription in self._subscriptions_for(event_name)
        )

    def get_total_listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._by_subscription.values())
