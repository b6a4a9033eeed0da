"""
Runs the listeners of one publish in priority tiers.

A listener that raises or times out is logged and counted against its event;
its slot in the results is None. Nothing a listener does reaches the
publisher. Plain (non-async) callbacks run in the default executor.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import Counter
from logging import Logger
from typing import Any, Mapping, Optional

from luminax.core.event.types import EventListener, EventPayload, ListenerPriority

_SEQUENTIAL = (ListenerPriority.CRITICAL, ListenerPriority.HIGH)


class EventScheduler:
    def __init__(self) -> None:
        self._background: set[asyncio.Task[Any]] = set()
        self.errors_by_event: Counter[str] = Counter()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        timeouts: Mapping[ListenerPriority, Optional[float]],
    ) -> list[Any]:
        """Results of the awaited tiers (CRITICAL, HIGH, NORMAL) in run order."""
        tiers: dict[ListenerPriority, list[EventListener]] = {p: [] for p in ListenerPriority}
        for listener in listeners:
            tiers[listener.priority].append(listener)

        results: list[Any] = []
        for priority in _SEQUENTIAL:
            timeout = timeouts.get(priority)
            for listener in tiers[priority]:
                results.append(await self._invoke(listener, event_name, payload, logger, timeout))

        results.extend(
            await asyncio.gather(
                *(
                    self._invoke(listener, event_name, payload, logger, None)
                    for listener in tiers[ListenerPriority.NORMAL]
                )
            )
        )

        for listener in tiers[ListenerPriority.LOW]:
            task = asyncio.create_task(
                self._invoke(listener, event_name, payload, logger, None),
                name=f"event-{event_name}-{listener.identifier}",
            )
            # keep a reference until done so the task is not collected mid-flight
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return results

    async def _invoke(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        context = {
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
        }
        try:
            if inspect.iscoroutinefunction(listener.callback):
                call = listener.callback(payload)
            else:
                call = asyncio.get_running_loop().run_in_executor(
                    None, listener.callback, payload
                )
            if timeout and timeout > 0:
                return await asyncio.wait_for(call, timeout=timeout)
            return await call
        except asyncio.TimeoutError:
            self.errors_by_event[event_name] += 1
            logger.error("Event listener timed out", extra={**context, "timeout_seconds": timeout})
        except Exception as exc:
            self.errors_by_event[event_name] += 1
            logger.error(
                "Event listener failed",
                extra={**context, "error_type": type(exc).__name__, "error": str(exc)},
                exc_info=True,
            )
        return None

    def get_background_task_count(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
