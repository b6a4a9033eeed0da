"""
Database Service - async engine and unit-of-work management.

Purpose
-------
Own the AsyncEngine and session factory for one Luminax process and hand out
sessions with strict transaction discipline.

Responsibilities
----------------
- Create and dispose the engine (QueuePool in service, NullPool in tests)
- `get_transaction()`: one unit of work; commit on success, rollback on any
  exception, translate store failures into `PersistenceError`
- `get_session()`: read-only access without commit
- Fail fast through a circuit breaker while the store is down
- Apply a PostgreSQL statement timeout to every unit of work
- Schema bootstrap for development and tests (`create_all` / `drop_all`)

Non-Responsibilities
--------------------
- Migrations
- Domain rules (services own those)

Architecture Notes
------------------
- Instance-based: the ServiceContainer builds one DatabaseService and injects
  it into every service, so tests can run isolated databases side by side.
- Never call `session.commit()` inside service code; leave the block instead.
- Domain exceptions raised inside a unit of work roll it back and propagate
  unchanged. The store answered, so they count as a breaker success; a
  cancelled unit of work hands its half-open slot back.
- A connection lost while committing leaves the outcome unknown; that case
  surfaces as `ReconciliationRequiredError` so callers never retry blindly.

Usage Example
-------------
>>> database = DatabaseService("sqlite+aiosqlite:///./data/luminax.db")
>>> await database.initialize()
>>> async with database.get_transaction() as session:
...     session.add(event)
...     # Automatic commit on exit
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import MetaData, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool, QueuePool

from luminax.core.config.config import Config
from luminax.core.database.circuit_breaker import CircuitBreaker
from luminax.core.exceptions import (
    DatabaseUnavailableError,
    PersistenceError,
    ReconciliationRequiredError,
)
from luminax.core.logging.logger import get_logger
from luminax.modules.shared.exceptions import LuminaxDomainException

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable view of the engine settings for the lifetime of the engine."""

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"

    @property
    def is_postgres(self) -> bool:
        return self.url_scheme.startswith("postgresql")

    @property
    def is_sqlite(self) -> bool:
        return self.url_scheme.startswith("sqlite")


class DatabaseService:
    """
    Async engine and session management for one database.

    Public API
    ----------
    - initialize() / shutdown()
    - get_transaction() -> atomic unit of work (preferred for writes)
    - get_session() -> read-only session
    - health_check() -> `SELECT 1` liveness probe
    - create_all(metadata) / drop_all(metadata)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._url = url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._config_snapshot: Optional[_DatabaseConfigSnapshot] = None
        self._init_lock = asyncio.Lock()
        self._circuit_breaker = circuit_breaker or CircuitBreaker()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    def _build_config_snapshot(self) -> _DatabaseConfigSnapshot:
        database_url = self._url or getattr(Config, "DATABASE_URL", None)
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        pool_class: Type[Pool] = NullPool if Config.is_testing() else QueuePool
        echo = self._echo if self._echo is not None else bool(Config.DATABASE_ECHO)

        return _DatabaseConfigSnapshot(
            url=database_url,
            echo=echo,
            pool_class=pool_class,
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
            pool_timeout=int(Config.DATABASE_POOL_TIMEOUT),
            statement_timeout_ms=int(Config.DATABASE_STATEMENT_TIMEOUT_MS),
        )

    @staticmethod
    def _ensure_sqlite_directory(url: str) -> None:
        database = make_url(url).database
        if database and database != ":memory:" and not database.startswith("file:"):
            Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self) -> None:
        """Create the engine and session factory. Idempotent."""
        async with self._init_lock:
            if self._engine is not None:
                return

            try:
                config = self._build_config_snapshot()

                engine_kwargs: dict[str, Any] = {
                    "echo": config.echo,
                    "poolclass": config.pool_class,
                }
                if config.pool_class == QueuePool and not config.is_sqlite:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": True,
                        }
                    )
                elif config.is_sqlite:
                    # aiosqlite manages its own connection thread
                    engine_kwargs["poolclass"] = NullPool
                    self._ensure_sqlite_directory(config.url)

                self._engine = create_async_engine(config.url, **engine_kwargs)
                if config.is_sqlite:
                    event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
                self._session_factory = async_sessionmaker(
                    bind=self._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                self._config_snapshot = config

                logger.info(
                    "DatabaseService initialized",
                    extra={
                        "url_scheme": config.url_scheme,
                        "pool_class": engine_kwargs["poolclass"].__name__,
                    },
                )

            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call more than once."""
        async with self._init_lock:
            if self._engine is None:
                return

            try:
                await self._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                self._engine = None
                self._session_factory = None
                self._config_snapshot = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def dialect_name(self) -> str:
        return self._require_engine().dialect.name

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None or self._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService is not initialized. Call initialize() first."
            )
        return self._engine

    # ========================================================================
    # Schema Bootstrap
    # ========================================================================

    async def create_all(self, metadata: MetaData) -> None:
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database schema ensured", extra={"tables": len(metadata.tables)})

    async def drop_all(self, metadata: MetaData) -> None:
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)
        logger.warning("Database schema dropped", extra={"tables": len(metadata.tables)})

    # ========================================================================
    # Health Check
    # ========================================================================

    async def health_check(self) -> bool:
        """Return True when `SELECT 1` succeeds. Never raises."""
        if self._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": round((time.perf_counter() - start) * 1000.0, 2)},
            )

    # ========================================================================
    # Sessions
    # ========================================================================

    async def _apply_statement_timeout(self, session: AsyncSession) -> None:
        config = self._config_snapshot
        if config is not None and config.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(config.statement_timeout_ms)}")
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session for read-only work.

        No commit happens on exit; store errors are still converted into
        `PersistenceError` so callers see one failure type.
        """
        self._require_engine()
        assert self._session_factory is not None

        async with self._session_factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "Database error in read session",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                raise PersistenceError("read", exc) from exc

    @asynccontextmanager
    async def get_transaction(
        self, operation: str = "transaction"
    ) -> AsyncGenerator[AsyncSession, None]:
        """
        Atomic unit of work.

        On success the transaction commits. On any exception it rolls back;
        `SQLAlchemyError` becomes `PersistenceError` (retryable, nothing was
        applied), every other exception propagates unchanged.

        Raises
        ------
        DatabaseUnavailableError
            The circuit breaker is open.
        PersistenceError
            The store failed; the unit of work was rolled back.
        ReconciliationRequiredError
            The connection dropped during commit.
        """
        self._require_engine()
        assert self._session_factory is not None

        if not await self._circuit_breaker.allow_request():
            logger.warning(
                "Transaction rejected by circuit breaker",
                extra={"operation": operation},
            )
            raise DatabaseUnavailableError("circuit breaker open")

        start = time.perf_counter()
        async with self._session_factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
            except SQLAlchemyError as exc:
                await self._rollback_quietly(session, operation)
                await self._circuit_breaker.record_failure()
                logger.error(
                    "Database error in transaction; rolled back",
                    extra={
                        "operation": operation,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": self._elapsed_ms(start),
                    },
                    exc_info=True,
                )
                raise PersistenceError(operation, exc) from exc
            except LuminaxDomainException as exc:
                # The store answered; the request broke a rule.
                await self._rollback_quietly(session, operation)
                await self._circuit_breaker.record_success()
                logger.debug(
                    "Transaction rolled back on domain error",
                    extra={
                        "operation": operation,
                        "error_type": type(exc).__name__,
                    },
                )
                raise
            except asyncio.CancelledError:
                await self._rollback_quietly(session, operation)
                await self._circuit_breaker.release_probe()
                raise
            except Exception as exc:
                await self._rollback_quietly(session, operation)
                await self._circuit_breaker.release_probe()
                logger.debug(
                    "Transaction rolled back",
                    extra={
                        "operation": operation,
                        "error_type": type(exc).__name__,
                    },
                )
                raise

            try:
                await session.commit()
            except DBAPIError as exc:
                await self._circuit_breaker.record_failure()
                if exc.connection_invalidated:
                    logger.critical(
                        "Connection lost during commit; outcome unknown",
                        extra={"operation": operation, "error": str(exc)},
                    )
                    raise ReconciliationRequiredError(operation, exc) from exc
                await self._rollback_quietly(session, operation)
                logger.error(
                    "Commit failed; rolled back",
                    extra={
                        "operation": operation,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                raise PersistenceError(operation, exc) from exc
            except SQLAlchemyError as exc:
                await self._rollback_quietly(session, operation)
                await self._circuit_breaker.record_failure()
                raise PersistenceError(operation, exc) from exc

            await self._circuit_breaker.record_success()
            logger.debug(
                "Database transaction committed",
                extra={"operation": operation, "duration_ms": self._elapsed_ms(start)},
            )

    @staticmethod
    async def _rollback_quietly(session: AsyncSession, operation: str) -> None:
        try:
            await session.rollback()
        except SQLAlchemyError as exc:
            # The original failure is what the caller needs to see.
            logger.warning(
                "Rollback failed",
                extra={"operation": operation, "error": str(exc)},
            )

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000.0, 2)

    def get_circuit_breaker_metrics(self) -> dict[str, Any]:
        snapshot = self._circuit_breaker.snapshot()
        return {
            "state": snapshot.state.value,
            "consecutive_failures": snapshot.consecutive_failures,
            "total_failures": snapshot.total_failures,
            "total_successes": snapshot.total_successes,
            "rejected_requests": snapshot.rejected_requests,
        }
