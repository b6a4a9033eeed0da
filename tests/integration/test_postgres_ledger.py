"""
PostgreSQL integration tests for the progress ledger.

Runs the concurrency-sensitive paths (atomic XP increments, one-time quest
rewards, achievement uniqueness) against a real PostgreSQL server started
with testcontainers. Needs Docker; enable with LUMINAX_TEST_POSTGRES=1.
"""

import asyncio
import os

import pytest
from testcontainers.postgres import PostgresContainer

from luminax.core.database.base import Base
from luminax.core.database.service import DatabaseService
from luminax.core.redis.service import RedisService
from luminax.core.services.container import ServiceContainer
from luminax.modules.shared.exceptions import ConflictError

pytestmark = [
    pytest.mark.integration,
    pytest.mark.postgres,
    pytest.mark.skipif(
        os.getenv("LUMINAX_TEST_POSTGRES") != "1",
        reason="set LUMINAX_TEST_POSTGRES=1 to run PostgreSQL tests (needs Docker)",
    ),
]


@pytest.fixture(scope="module")
def postgres_url():
    with PostgresContainer("postgres:16-alpine", driver="asyncpg") as postgres:
        yield postgres.get_connection_url()


@pytest.fixture
async def pg_container(
    postgres_url, config_manager, event_bus, rate_limiter, identity_provider, clock
):
    database = DatabaseService(postgres_url)
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
    await database.drop_all(Base.metadata)
    await services.shutdown()


class TestPostgresLedger:
    async def test_dialect(self, pg_container):
        assert pg_container.database.dialect_name == "postgresql"

    async def test_concurrent_increments_are_not_lost(self, pg_container):
        # Arrange
        amounts = list(range(1, 51))

        # Act
        await asyncio.gather(
            *(pg_container.ledger.apply_xp_delta("racer", amount) for amount in amounts)
        )

        # Assert
        progress = await pg_container.ledger.get_progress("racer")
        assert progress["xp"] == sum(amounts)
        assert progress["level"] == sum(amounts) // 1000 + 1

    async def test_concurrent_recordings(self, pg_container):
        await asyncio.gather(
            *(
                pg_container.recorder.record_study_session("u1", "algebra", 10)
                for _ in range(20)
            )
        )

        progress = await pg_container.ledger.get_progress("u1")
        assert progress["xp"] == 200
        assert progress["streak"] == 1

    async def test_quest_reward_applied_once_under_contention(self, pg_container):
        quest = await pg_container.quests.create_quest(
            "u1", "custom", "Read", 1, xp_reward=100
        )

        results = await asyncio.gather(
            *(pg_container.quests.advance("u1", quest["quest_id"], 1) for _ in range(5)),
            return_exceptions=True,
        )

        completed = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(completed) == 1
        assert len(conflicts) == 4
        assert (await pg_container.ledger.get_progress("u1"))["xp"] == 100

    async def test_duplicate_achievement_under_contention(self, pg_container):
        results = await asyncio.gather(
            *(
                pg_container.recorder.record_achievement("u1", "first", "First", 25)
                for _ in range(5)
            ),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 4
        assert (await pg_container.ledger.get_progress("u1"))["xp"] == 25
