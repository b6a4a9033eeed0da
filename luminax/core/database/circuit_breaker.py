"""
Circuit breaker guarding the Luminax database.

When the store keeps failing, further units of work fail fast with
`DatabaseUnavailableError` instead of queueing on a dead connection pool.

States
------
CLOSED     every unit of work is attempted; consecutive failures are counted.
OPEN       units of work are rejected until the recovery timeout elapses.
HALF_OPEN  a bounded number of probe units are let through; one success closes
           the breaker, one failure re-opens it. Probes that end without a
           store verdict (cancelled, or a non-store error) hand their slot
           back, and a probe window with no verdict after the recovery
           timeout starts over.

Thresholds come from `Config.CIRCUIT_BREAKER_*`; constructor arguments
override them (tests use tiny thresholds).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from luminax.core.config.config import Config
from luminax.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    state: CircuitState
    consecutive_failures: int
    total_failures: int
    total_successes: int
    rejected_requests: int


class CircuitBreaker:
    """Async-safe breaker; all state changes happen under one asyncio.Lock."""

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        recovery_timeout_ms: Optional[int] = None,
        half_open_max_requests: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold or int(
            getattr(Config, "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5)
        )
        self._recovery_timeout_ms = recovery_timeout_ms or int(
            getattr(Config, "CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS", 60_000)
        )
        self._half_open_max_requests = half_open_max_requests or int(
            getattr(Config, "CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS", 3)
        )
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0
        self._rejected_requests = 0
        self._half_open_probes = 0
        self._half_open_since: Optional[float] = None
        self._last_failure_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return self._state

    async def allow_request(self) -> bool:
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if not self._recovery_elapsed():
                    self._rejected_requests += 1
                    return False
                self._start_probe_window()
            elif self._probe_window_stale():
                logger.warning(
                    "Half-open probes ended without a result; restarting probe window",
                    extra={"half_open_max_requests": self._half_open_max_requests},
                )
                self._start_probe_window()

            if self._half_open_probes < self._half_open_max_requests:
                self._half_open_probes += 1
                return True

            self._rejected_requests += 1
            return False

    async def release_probe(self) -> None:
        """Return a half-open slot whose unit of work produced no store verdict."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_probes > 0:
                self._half_open_probes -= 1

    async def record_success(self) -> None:
        async with self._lock:
            self._total_successes += 1
            self._consecutive_failures = 0
            if self._state == CircuitState.HALF_OPEN:
                self._set_state(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._total_failures += 1
            self._consecutive_failures += 1
            self._last_failure_at = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._set_state(CircuitState.OPEN)

    async def reset(self) -> None:
        async with self._lock:
            self._set_state(CircuitState.CLOSED)
            self._consecutive_failures = 0
            self._half_open_probes = 0

    def snapshot(self) -> CircuitBreakerSnapshot:
        return CircuitBreakerSnapshot(
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            rejected_requests=self._rejected_requests,
        )

    def _recovery_elapsed(self) -> bool:
        if self._last_failure_at is None:
            return True
        elapsed_ms = (self._clock() - self._last_failure_at) * 1000
        return elapsed_ms >= self._recovery_timeout_ms

    def _start_probe_window(self) -> None:
        self._set_state(CircuitState.HALF_OPEN)
        self._half_open_probes = 0
        self._half_open_since = self._clock()

    def _probe_window_stale(self) -> bool:
        if self._half_open_probes < self._half_open_max_requests:
            return False
        if self._half_open_since is None:
            return True
        elapsed_ms = (self._clock() - self._half_open_since) * 1000
        return elapsed_ms >= self._recovery_timeout_ms

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            "Database circuit breaker state change",
            extra={
                "old_state": old_state.value,
                "new_state": new_state.value,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self._failure_threshold,
                "recovery_timeout_ms": self._recovery_timeout_ms,
            },
        )
