"""Tests for the fixed-window RateLimiter."""

import pytest

from luminax.core.exceptions import RedisConnectionError
from luminax.core.redis.rate_limiter import RateLimiter
from luminax.modules.shared.exceptions import RateLimitError


class FixedClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fixed_clock():
    return FixedClock()


def memory_limiter(clock, **kwargs):
    options = {"rate": 3, "period_seconds": 60, "enabled": True, "failover_to_memory": True}
    options.update(kwargs)
    return RateLimiter(None, clock=clock, **options)


@pytest.mark.unit
class TestMemoryBackend:
    async def test_allows_up_to_rate(self, fixed_clock):
        limiter = memory_limiter(fixed_clock)

        decisions = [await limiter.check_limit("user:u1") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[-1].count == 4
        assert decisions[-1].backend == "memory"
        assert decisions[-1].retry_after == pytest.approx(20.0)

    async def test_new_window_resets(self, fixed_clock):
        limiter = memory_limiter(fixed_clock, rate=1)
        await limiter.check_limit("user:u1")
        fixed_clock.now += 60

        decision = await limiter.check_limit("user:u1")

        assert decision.allowed is True
        assert decision.count == 1

    async def test_keys_are_independent(self, fixed_clock):
        limiter = memory_limiter(fixed_clock, rate=1)
        await limiter.check_limit("user:u1")

        decision = await limiter.check_limit("user:u2")

        assert decision.allowed is True

    async def test_check_or_raise(self, fixed_clock):
        limiter = memory_limiter(fixed_clock, rate=1)
        await limiter.check_or_raise("user:u1")

        with pytest.raises(RateLimitError) as exc_info:
            await limiter.check_or_raise("user:u1", scope="POST /api/study/sessions")

        assert exc_info.value.scope == "POST /api/study/sessions"
        assert exc_info.value.retry_after > 0

    async def test_disabled_always_allows(self, fixed_clock):
        limiter = memory_limiter(fixed_clock, rate=1, enabled=False)

        decisions = [await limiter.check_limit("user:u1") for _ in range(5)]

        assert all(d.allowed for d in decisions)
        assert decisions[0].backend == "disabled"

    async def test_reset_limit(self, fixed_clock):
        limiter = memory_limiter(fixed_clock, rate=1)
        await limiter.check_limit("user:u1")

        await limiter.reset_limit("user:u1")

        assert (await limiter.check_limit("user:u1")).allowed is True


@pytest.mark.unit
class TestRedisBackend:
    @pytest.fixture
    def redis_service(self, mocker):
        service = mocker.MagicMock()
        service.is_initialized = True
        service.incr = mocker.AsyncMock(return_value=1)
        service.expire = mocker.AsyncMock(return_value=True)
        return service

    async def test_counts_in_redis(self, redis_service, fixed_clock):
        limiter = RateLimiter(
            redis_service, rate=5, period_seconds=60, enabled=True, clock=fixed_clock
        )

        decision = await limiter.check_limit("user:u1")

        window_id = int(fixed_clock.now // 60)
        redis_service.incr.assert_awaited_once_with(f"ratelimit:fw:user:u1:{window_id}", 1)
        redis_service.expire.assert_awaited_once()
        assert decision.backend == "redis"
        assert decision.allowed is True

    async def test_failover_to_memory(self, redis_service, fixed_clock):
        redis_service.incr.side_effect = RedisConnectionError("incr", ConnectionError("down"))
        limiter = RateLimiter(
            redis_service,
            rate=1,
            period_seconds=60,
            enabled=True,
            failover_to_memory=True,
            clock=fixed_clock,
        )

        first = await limiter.check_limit("user:u1")
        second = await limiter.check_limit("user:u1")

        assert first.backend == "memory"
        assert first.allowed is True
        assert second.allowed is False

    @pytest.mark.parametrize("mode,allowed", [("allow", True), ("deny", False)])
    async def test_fallback_mode_without_failover(
        self, mocker, redis_service, fixed_clock, mode, allowed
    ):
        redis_service.incr.side_effect = RedisConnectionError("incr", ConnectionError("down"))
        config_manager = mocker.MagicMock()
        config_manager.get.return_value = mode
        limiter = RateLimiter(
            redis_service,
            config_manager,
            rate=1,
            period_seconds=60,
            enabled=True,
            failover_to_memory=False,
            clock=fixed_clock,
        )

        decision = await limiter.check_limit("user:u1")

        assert decision.backend == "fallback"
        assert decision.allowed is allowed
