"""
Service Container
=================

Purpose
-------
Builds every infrastructure client and domain service once, wires their
dependencies and tears them down in reverse order. The HTTP app owns one
container for its lifetime (FastAPI lifespan).

Initialization Order
--------------------
1. DatabaseService (+ create_all when DATABASE_AUTO_CREATE)
2. RedisService (skipped when REDIS_URL is empty) and RateLimiter
3. IdentityProvider
4. Domain services: ledger -> quests -> recorder -> ranking, reports,
   communities, account
5. ProgressAuditConsumer subscribed to the event bus

Shutdown Order (Reverse)
------------------------
identity -> redis -> audit consumer -> event bus -> database

Any piece can be injected, which is how tests swap in a temporary SQLite
database, a fixed clock or a stub identity provider.
"""

from __future__ import annotations

import time
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from luminax.core.config.config import Config
from luminax.core.config.manager import ConfigManager
from luminax.core.database.base import Base, utcnow
from luminax.core.database.service import DatabaseService
from luminax.core.event.bus import EventBus
from luminax.core.exceptions import RedisConnectionError
from luminax.core.identity.provider import IdentityProvider, build_identity_provider
from luminax.core.logging.logger import get_logger, get_logging_health
from luminax.core.redis.rate_limiter import RateLimiter
from luminax.core.redis.service import RedisService
from luminax.modules.account import AccountService
from luminax.modules.activity import ActivityRecorderService
from luminax.modules.audit import ProgressAuditConsumer
from luminax.modules.community import CommunityService
from luminax.modules.leaderboard import RankingService
from luminax.modules.progress import ProgressLedgerService
from luminax.modules.quests import QuestTrackerService
from luminax.modules.reports import ProgressReportService

# Registers every table on Base.metadata before create_all
import luminax.database.models  # noqa: F401

if TYPE_CHECKING:
    from logging import Logger

logger = get_logger(__name__)


class ServiceContainer:
    """
    Usage:
        container = ServiceContainer()
        await container.initialize()
        result = await container.recorder.record_study_session(...)
        await container.shutdown()
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        database: Optional[DatabaseService] = None,
        event_bus: Optional[EventBus] = None,
        redis_service: Optional[RedisService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        identity_provider: Optional[IdentityProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        auto_create_schema: Optional[bool] = None,
    ) -> None:
        self._config_manager = config_manager or ConfigManager.from_directory(Config.CONFIG_DIR)
        self._database = database or DatabaseService()
        self._event_bus = event_bus or EventBus(self._config_manager)
        self._redis = redis_service or RedisService()
        self._rate_limiter = rate_limiter
        self._identity = identity_provider
        self._clock = clock
        self._auto_create_schema = (
            Config.DATABASE_AUTO_CREATE if auto_create_schema is None else auto_create_schema
        )
        self._logger: Logger = logger

        self._ledger: Optional[ProgressLedgerService] = None
        self._quests: Optional[QuestTrackerService] = None
        self._recorder: Optional[ActivityRecorderService] = None
        self._ranking: Optional[RankingService] = None
        self._reports: Optional[ProgressReportService] = None
        self._communities: Optional[CommunityService] = None
        self._account: Optional[AccountService] = None
        self._audit: Optional[ProgressAuditConsumer] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            await self._database.initialize()
            if self._auto_create_schema:
                await self._database.create_all(Base.metadata)

            await self._initialize_redis()
            if self._rate_limiter is None:
                self._rate_limiter = RateLimiter(self._redis, self._config_manager)
            if self._identity is None:
                self._identity = build_identity_provider()

            self._ledger = self._create_service("ledger", ProgressLedgerService)
            self._quests = self._create_service(
                "quests", QuestTrackerService, ledger=self._ledger, clock=self._clock
            )
            self._recorder = self._create_service(
                "recorder", ActivityRecorderService, ledger=self._ledger, quests=self._quests
            )
            self._ranking = self._create_service("ranking", RankingService, clock=self._clock)
            self._reports = self._create_service(
                "reports",
                ProgressReportService,
                ledger=self._ledger,
                quests=self._quests,
                clock=self._clock,
            )
            self._communities = self._create_service(
                "communities", CommunityService, ledger=self._ledger
            )
            self._account = self._create_service("account", AccountService, ledger=self._ledger)

            self._audit = ProgressAuditConsumer(self._event_bus)
            self._audit.start()

            self._init_end = time.perf_counter()
            self._initialized = True
            self._logger.info(
                "Service container initialized successfully",
                extra={
                    "total_time_seconds": round(self._init_end - self._init_start, 3),
                    "service_count": len(self._service_init_times),
                    "database_dialect": self._database.dialect_name,
                    "rate_limiter_backend": self._rate_limiter.backend,
                    "identity_provider": type(self._identity).__name__,
                },
            )
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed - API cannot start",
                exc_info=True,
                extra={"error": str(e)},
            )
            await self._database.shutdown()
            raise

    async def _initialize_redis(self) -> None:
        try:
            await self._redis.initialize()
        except RedisConnectionError:
            # Rate limiting degrades to the in-memory window
            self._logger.warning(
                "Redis unavailable at startup; rate limiter will use memory",
                exc_info=True,
            )

    def _create_service(self, name: str, cls: type, **dependencies: Any) -> Any:
        start = time.perf_counter()
        try:
            instance = cls(
                self._database,
                self._config_manager,
                self._event_bus,
                get_logger(f"{cls.__module__}.{cls.__name__}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        """Release clients in reverse order. Safe to call more than once."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        if self._identity is not None:
            await self._identity.shutdown()
        await self._redis.shutdown()
        if self._audit is not None:
            self._audit.stop()
        await self._event_bus.shutdown()
        await self._database.shutdown()

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        database_ok = False
        if self._database.is_initialized:
            database_ok = await self._database.health_check()
        redis_ok: Optional[bool] = None
        if self._redis.is_configured:
            redis_ok = await self._redis.health_check()

        return {
            "status": "ok" if self._initialized and database_ok else "degraded",
            "initialized": self._initialized,
            "database": {
                "healthy": database_ok,
                "circuit_breaker": self._database.get_circuit_breaker_metrics(),
            },
            "redis": {"configured": self._redis.is_configured, "healthy": redis_ok},
            "rate_limiter": self._rate_limiter.get_status() if self._rate_limiter else None,
            "events": self._event_bus.get_metrics_summary(),
            "audit": self._audit.get_status() if self._audit else None,
            "logging": asdict(get_logging_health()),
            "config": self._config_manager.health_snapshot(),
            "service_count": len(self._service_init_times),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    def _require(self, service: Optional[Any]) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    @property
    def config_manager(self) -> ConfigManager:
        return self._config_manager

    @property
    def database(self) -> DatabaseService:
        return self._database

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._require(self._rate_limiter)

    @property
    def identity(self) -> IdentityProvider:
        return self._require(self._identity)

    @property
    def ledger(self) -> ProgressLedgerService:
        return self._require(self._ledger)

    @property
    def quests(self) -> QuestTrackerService:
        return self._require(self._quests)

    @property
    def recorder(self) -> ActivityRecorderService:
        return self._require(self._recorder)

    @property
    def ranking(self) -> RankingService:
        return self._require(self._ranking)

    @property
    def reports(self) -> ProgressReportService:
        return self._require(self._reports)

    @property
    def communities(self) -> CommunityService:
        return self._require(self._communities)

    @property
    def account(self) -> AccountService:
        return self._require(self._account)

    @property
    def audit(self) -> ProgressAuditConsumer:
        return self._require(self._audit)
