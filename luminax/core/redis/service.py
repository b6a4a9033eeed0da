"""
RedisService: async Redis client lifecycle for Luminax.

Purpose
-------
Own one `redis.asyncio` client per application: connect and verify on
startup, close on shutdown, answer health probes, and expose the couple of
counter operations the rate limiter needs.

Configuration
-------------
- REDIS_URL             : empty string disables Redis entirely
- REDIS_SOCKET_TIMEOUT  : seconds (default 5)

Redis errors are re-raised as `RedisConnectionError` so callers can decide
between failing open and failing closed.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from luminax.core.config.config import Config
from luminax.core.exceptions import RedisConnectionError
from luminax.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Instance-based Redis client holder. One per ServiceContainer."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        socket_timeout: Optional[int] = None,
        client: Optional[AsyncRedis] = None,
    ) -> None:
        self._url = url if url is not None else Config.REDIS_URL
        self._socket_timeout = socket_timeout or Config.REDIS_SOCKET_TIMEOUT
        self._client: Optional[AsyncRedis] = client
        self._is_healthy: bool = client is not None

    @property
    def is_configured(self) -> bool:
        return bool(self._url) or self._client is not None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    def _url_scheme(self) -> str:
        return self._url.split("://")[0] if "://" in self._url else "unknown"

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """
        Connect and PING. Idempotent.

        Raises:
            RedisConnectionError: If the server cannot be reached
        """
        if self._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        if not self._url:
            logger.info("RedisService disabled: REDIS_URL is empty")
            return

        start_time = time.monotonic()
        client: AsyncRedis = AsyncRedis.from_url(
            self._url,
            socket_timeout=self._socket_timeout,
            encoding="utf-8",
            decode_responses=True,
            retry_on_timeout=False,
        )

        try:
            await client.ping()  # type: ignore[misc]
        except (RedisError, OSError) as exc:
            await client.aclose()
            logger.critical(
                "Failed to initialize RedisService",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "url_scheme": self._url_scheme(),
                },
                exc_info=True,
            )
            raise RedisConnectionError("initialize", exc) from exc

        self._client = client
        self._is_healthy = True
        logger.info(
            "RedisService initialized successfully",
            extra={
                "url_scheme": self._url_scheme(),
                "socket_timeout_seconds": self._socket_timeout,
                "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )

    async def shutdown(self) -> None:
        """Close the client. Safe to call when never initialized."""
        client = self._client
        self._client = None
        self._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except (RedisError, OSError) as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    async def health_check(self) -> bool:
        if self._client is None:
            self._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await self._client.ping()  # type: ignore[misc]
            self._is_healthy = bool(pong)
            logger.debug(
                "Redis health check",
                extra={
                    "healthy": self._is_healthy,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
        except (RedisError, OSError) as exc:
            self._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
        return self._is_healthy

    def get_status(self) -> dict[str, Any]:
        return {
            "configured": self.is_configured,
            "initialized": self.is_initialized,
            "healthy": self._is_healthy,
            "url_scheme": self._url_scheme() if self._url else None,
        }

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def client(self) -> AsyncRedis:
        if self._client is None:
            raise RuntimeError("RedisService not initialized. Call initialize() first.")
        return self._client

    async def incr(self, key: str, amount: int = 1) -> int:
        """Atomically increment `key` by `amount` and return the new value."""
        try:
            new_value = await self.client().incrby(key, amount)
        except (RedisError, OSError) as exc:
            self._is_healthy = False
            raise RedisConnectionError(f"INCR:{key}", exc) from exc
        return int(new_value)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self.client().expire(key, ttl_seconds))
        except (RedisError, OSError) as exc:
            self._is_healthy = False
            raise RedisConnectionError(f"EXPIRE:{key}", exc) from exc

    async def delete(self, *keys: str) -> int:
        try:
            return int(await self.client().delete(*keys))
        except (RedisError, OSError) as exc:
            raise RedisConnectionError("DELETE", exc) from exc
