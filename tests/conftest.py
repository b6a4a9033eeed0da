"""
Pytest configuration and fixtures for the Luminax test suite.

Architecture Notes
------------------
- Environment variables are set before anything from `luminax` is imported,
  because `Config` loads and validates on import.
- Service tests run against a real SQLite database (aiosqlite), one file per
  test under `tmp_path`, so every test starts from an empty schema.
- Services come from a real ServiceContainer with injected pieces: the
  temporary database, an in-memory rate limiter, a local JWT identity
  provider and a controllable clock.
- PostgreSQL tests (testcontainers) live in tests/integration and only run
  with LUMINAX_TEST_POSTGRES=1.
"""

from __future__ import annotations

import os

os.environ.update(
    {
        "ENVIRONMENT": "testing",
        "LOG_LEVEL": "WARNING",
        "LOG_TO_FILE": "false",
        "IDENTITY_MODE": "local",
        "JWT_SECRET": "test-secret",
        "REDIS_URL": "",
        "RATE_LIMIT_ENABLED": "true",
        "RATE_LIMIT_FAILOVER_TO_MEMORY": "true",
    }
)

from datetime import datetime, timedelta, timezone  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import AsyncGenerator, List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from luminax.core.config.config import Config  # noqa: E402
from luminax.core.config.manager import ConfigManager  # noqa: E402
from luminax.core.database.service import DatabaseService  # noqa: E402
from luminax.core.event.bus import EventBus  # noqa: E402
from luminax.core.identity.provider import LocalJWTIdentityProvider  # noqa: E402
from luminax.core.redis.rate_limiter import RateLimiter  # noqa: E402
from luminax.core.redis.service import RedisService  # noqa: E402
from luminax.core.services.container import ServiceContainer  # noqa: E402

TEST_JWT_SECRET = "test-secret"


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock starting at real time; tests move it explicitly."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class PublishedEvents:
    """View over a spy on EventBus.publish."""

    def __init__(self, spy) -> None:
        self._spy = spy

    @property
    def names(self) -> List[str]:
        return [call.args[0] for call in self._spy.call_args_list]

    def payloads(self, event_name: str) -> List[dict]:
        return [call.args[1] for call in self._spy.call_args_list if call.args[0] == event_name]

    def reset(self) -> None:
        self._spy.reset_mock()


# ============================================================================
# INFRASTRUCTURE
# ============================================================================


@pytest.fixture
def config_manager() -> ConfigManager:
    """Tunables from the repository's config/ directory."""
    return ConfigManager.from_directory(Config.CONFIG_DIR)


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[DatabaseService, None]:
    service = DatabaseService(f"sqlite+aiosqlite:///{tmp_path / 'luminax-test.db'}")
    await service.initialize()
    yield service
    await service.shutdown()


@pytest.fixture
def event_bus(config_manager: ConfigManager) -> EventBus:
    return EventBus(config_manager)


@pytest.fixture
def published_events(mocker, event_bus: EventBus) -> "PublishedEvents":
    return PublishedEvents(mocker.spy(event_bus, "publish"))


@pytest.fixture
def identity_provider() -> LocalJWTIdentityProvider:
    return LocalJWTIdentityProvider(TEST_JWT_SECRET)


@pytest.fixture
def rate_limiter(config_manager: ConfigManager) -> RateLimiter:
    return RateLimiter(
        None,
        config_manager,
        rate=1000,
        period_seconds=60,
        enabled=True,
        failover_to_memory=True,
    )


@pytest_asyncio.fixture
async def container(
    config_manager: ConfigManager,
    database: DatabaseService,
    event_bus: EventBus,
    rate_limiter: RateLimiter,
    identity_provider: LocalJWTIdentityProvider,
    clock: FakeClock,
) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(
        config_manager,
        database=database,
        event_bus=event_bus,
        redis_service=RedisService(url=""),
        rate_limiter=rate_limiter,
        identity_provider=identity_provider,
        clock=clock,
        auto_create_schema=True,
    )
    await services.initialize()
    yield services
    await services.shutdown()


# ============================================================================
# SERVICES
# ============================================================================


@pytest.fixture
def ledger(container: ServiceContainer):
    return container.ledger


@pytest.fixture
def recorder(container: ServiceContainer):
    return container.recorder


@pytest.fixture
def quests(container: ServiceContainer):
    return container.quests


@pytest.fixture
def ranking(container: ServiceContainer):
    return container.ranking


@pytest.fixture
def reports(container: ServiceContainer):
    return container.reports


@pytest.fixture
def communities(container: ServiceContainer):
    return container.communities


@pytest.fixture
def account(container: ServiceContainer):
    return container.account
