"""
Fixed-window request rate limiter for Luminax.

Purpose
-------
Bound how many write requests a caller can make per window. Counters live in
Redis when it is configured so limits hold across API workers; otherwise (or
when Redis fails and failover is enabled) an in-process window is used.

Design Decisions
----------------
- Fixed window: `INCRBY ratelimit:fw:{key}:{window_id}` then `EXPIRE` on the
  first hit of a window. Window ids are `floor(now / period)`.
- No retries: a retried INCRBY could double-charge a caller.
- Failure policy when Redis errors:
  - `RATE_LIMIT_FAILOVER_TO_MEMORY=true` -> count in memory instead
  - otherwise `core.rate_limiter.fallback_mode` decides: "allow" (fail open,
    default) or "deny" (fail closed)

Configuration
-------------
- RATE_LIMIT_ENABLED, RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS,
  RATE_LIMIT_FAILOVER_TO_MEMORY (static Config)
- core.rate_limiter.fallback_mode (ConfigManager)
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from luminax.core.config.config import Config
from luminax.core.exceptions import RedisConnectionError
from luminax.core.logging.logger import get_logger
from luminax.modules.shared.exceptions import RateLimitError

if TYPE_CHECKING:
    from luminax.core.config.manager import ConfigManager
    from luminax.core.redis.service import RedisService

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    retry_after: float
    backend: str


class _MemoryWindowStore:
    """Per-process fixed-window counters."""

    def __init__(self) -> None:
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._lock = asyncio.Lock()

    async def incr(self, key: str, window_id: int, amount: int) -> int:
        async with self._lock:
            current_window, count = self._windows.get(key, (window_id, 0))
            if current_window != window_id:
                count = 0
            count += amount
            self._windows[key] = (window_id, count)
            return count

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiter:
    """
    Fixed-window limiter with Redis and in-memory backends.

    Args:
        redis_service: RedisService, or None to always count in memory
        config_manager: Tunables (fallback_mode)
        rate: Requests per window (default RATE_LIMIT_REQUESTS)
        period_seconds: Window length (default RATE_LIMIT_WINDOW_SECONDS)
        clock: Wall clock in seconds, injectable for tests
    """

    def __init__(
        self,
        redis_service: Optional[RedisService],
        config_manager: Optional[ConfigManager] = None,
        *,
        rate: Optional[int] = None,
        period_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
        failover_to_memory: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_service
        self._memory = _MemoryWindowStore()
        self._clock = clock

        self._enabled = Config.RATE_LIMIT_ENABLED if enabled is None else enabled
        self._default_rate = rate if rate is not None else Config.RATE_LIMIT_REQUESTS
        self._default_period = (
            period_seconds if period_seconds is not None else Config.RATE_LIMIT_WINDOW_SECONDS
        )
        self._failover_to_memory = (
            Config.RATE_LIMIT_FAILOVER_TO_MEMORY
            if failover_to_memory is None
            else failover_to_memory
        )

        fallback_mode = "allow"
        if config_manager is not None:
            fallback_mode = str(config_manager.get("core.rate_limiter.fallback_mode", "allow"))
        fallback_mode = fallback_mode.strip().lower()
        if fallback_mode not in {"allow", "deny"}:
            logger.warning(
                "Unsupported rate limiter fallback_mode; defaulting to 'allow'",
                extra={"configured_fallback_mode": fallback_mode},
            )
            fallback_mode = "allow"
        self._fallback_mode = fallback_mode

        logger.info(
            "RateLimiter initialized",
            extra={
                "enabled": self._enabled,
                "backend": self.backend,
                "default_rate": self._default_rate,
                "default_period_seconds": self._default_period,
                "fallback_mode": self._fallback_mode,
                "failover_to_memory": self._failover_to_memory,
            },
        )

    @property
    def backend(self) -> str:
        if self._redis is not None and self._redis.is_initialized:
            return "redis"
        return "memory"

    @staticmethod
    def _fixed_window_key(key: str, window_id: int) -> str:
        return f"ratelimit:fw:{key}:{window_id}"

    def _retry_after(self, period: int) -> float:
        now = self._clock()
        return max(0.0, (math.floor(now / period) + 1) * period - now)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def check_limit(
        self,
        key: str,
        rate: Optional[int] = None,
        period_seconds: Optional[int] = None,
        tokens: int = 1,
    ) -> RateLimitDecision:
        """Count `tokens` against `key` and decide whether the call may proceed."""
        effective_rate = rate if rate is not None else self._default_rate
        period = period_seconds if period_seconds is not None else self._default_period

        if not self._enabled:
            return RateLimitDecision(True, 0, effective_rate, 0.0, "disabled")

        window_id = int(self._clock() // period)

        if self.backend == "redis":
            try:
                count = await self._incr_redis(key, window_id, period, tokens)
                return self._decide(key, count, effective_rate, period, "redis")
            except RedisConnectionError as exc:
                logger.error(
                    "Rate limit check failed",
                    extra={
                        "key": key,
                        "fallback_mode": self._fallback_mode,
                        "failover_to_memory": self._failover_to_memory,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                if not self._failover_to_memory:
                    allowed = self._fallback_mode == "allow"
                    logger.warning(
                        "%s operation due to rate limiter failure (fallback mode: %s)",
                        "ALLOWING" if allowed else "DENYING",
                        self._fallback_mode,
                        extra={"key": key},
                    )
                    retry_after = 0.0 if allowed else self._retry_after(period)
                    return RateLimitDecision(allowed, 0, effective_rate, retry_after, "fallback")

        count = await self._memory.incr(key, window_id, tokens)
        return self._decide(key, count, effective_rate, period, "memory")

    async def check_or_raise(
        self,
        key: str,
        rate: Optional[int] = None,
        period_seconds: Optional[int] = None,
        tokens: int = 1,
        *,
        scope: Optional[str] = None,
    ) -> RateLimitDecision:
        """
        Raises:
            RateLimitError: If the window budget is exhausted
        """
        decision = await self.check_limit(key, rate, period_seconds, tokens)
        if not decision.allowed:
            raise RateLimitError(scope or key, decision.retry_after)
        return decision

    async def reset_limit(self, key: str) -> None:
        """Clear the current window for `key` in both backends. Test/admin use."""
        await self._memory.reset(key)
        if self.backend == "redis":
            window_id = int(self._clock() // self._default_period)
            redis_key = self._fixed_window_key(key, window_id)
            await self._redis.delete(redis_key)  # type: ignore[union-attr]

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "backend": self.backend,
            "default_rate": self._default_rate,
            "default_period_seconds": self._default_period,
            "fallback_mode": self._fallback_mode,
            "memory_keys": len(self._memory),
        }

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _incr_redis(self, key: str, window_id: int, period: int, tokens: int) -> int:
        redis_key = self._fixed_window_key(key, window_id)
        count = await self._redis.incr(redis_key, tokens)  # type: ignore[union-attr]
        if count == tokens:
            await self._redis.expire(redis_key, period * 2)  # type: ignore[union-attr]
        return count

    def _decide(
        self, key: str, count: int, rate: int, period: int, backend: str
    ) -> RateLimitDecision:
        allowed = count <= rate
        retry_after = 0.0 if allowed else self._retry_after(period)
        if not allowed:
            logger.info(
                "Rate limit exceeded",
                extra={
                    "key": key,
                    "count": count,
                    "rate": rate,
                    "period_seconds": period,
                    "retry_after": round(retry_after, 2),
                    "backend": backend,
                },
            )
        return RateLimitDecision(allowed, count, rate, retry_after, backend)
