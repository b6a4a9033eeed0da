"""
Tests for ProgressLedgerService against a per-test SQLite database.

Covers atomic XP application under concurrency, the level invariant,
streak transitions and the lazy zero state.
"""

import asyncio
from datetime import date

import pytest

from luminax.core.event.types import EventNames
from luminax.core.exceptions import PersistenceError
from luminax.modules.shared.exceptions import InvalidAmountError, ValidationError


@pytest.mark.unit
class TestGetProgress:
    async def test_unknown_user_gets_zero_state(self, ledger):
        # Act
        progress = await ledger.get_progress("ghost")

        # Assert
        assert progress["xp"] == 0
        assert progress["level"] == 1
        assert progress["streak"] == 0
        assert progress["last_activity_date"] is None
        assert progress["xp_to_next_level"] == 1000

    async def test_reading_does_not_create_a_row(self, ledger, ranking):
        await ledger.get_progress("ghost")

        board = await ranking.top_n(10)

        assert board == []

    async def test_blank_user_id_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.get_progress("   ")


@pytest.mark.unit
class TestApplyXPDelta:
    async def test_first_delta_creates_progress(self, ledger):
        result = await ledger.apply_xp_delta("u1", 250)

        assert result["xp"] == 250
        assert result["level"] == 1
        assert result["previous_level"] == 1
        assert result["leveled_up"] is False

    async def test_level_up_is_reported_and_published(self, ledger, published_events):
        # Arrange
        await ledger.apply_xp_delta("u1", 900)
        published_events.reset()

        # Act
        result = await ledger.apply_xp_delta("u1", 200)

        # Assert
        assert result["xp"] == 1100
        assert result["level"] == 2
        assert result["leveled_up"] is True
        assert EventNames.PROGRESS_XP_APPLIED in published_events.names
        leveled = published_events.payloads(EventNames.PROGRESS_LEVELED_UP)
        assert len(leveled) == 1
        assert leveled[0]["user_id"] == "u1"

    async def test_zero_delta_is_allowed(self, ledger):
        result = await ledger.apply_xp_delta("u1", 0)

        assert result["xp"] == 0
        assert result["level"] == 1

    async def test_amount_over_cap_rejected(self, ledger):
        with pytest.raises(InvalidAmountError) as exc_info:
            await ledger.apply_xp_delta("u1", 10**20)

        assert "cannot exceed 100000" in exc_info.value.message
        assert (await ledger.get_progress("u1"))["xp"] == 0

    @pytest.mark.parametrize("amount", [-1, 1.5, "10", True, None])
    async def test_invalid_amount_rejected(self, ledger, amount):
        with pytest.raises(InvalidAmountError):
            await ledger.apply_xp_delta("u1", amount)

        progress = await ledger.get_progress("u1")
        assert progress["xp"] == 0

    async def test_level_matches_xp_after_every_mutation(self, ledger):
        for amount in (10, 990, 1, 1999, 0, 3000):
            result = await ledger.apply_xp_delta("u1", amount)
            assert result["level"] == result["xp"] // 1000 + 1

    async def test_concurrent_deltas_are_not_lost(self, ledger):
        # Arrange
        amounts = [5, 10, 25, 50, 100, 200, 300, 7, 13, 290] * 2

        # Act
        await asyncio.gather(*(ledger.apply_xp_delta("racer", a) for a in amounts))

        # Assert
        progress = await ledger.get_progress("racer")
        assert progress["xp"] == sum(amounts)
        assert progress["level"] == sum(amounts) // 1000 + 1


@pytest.mark.unit
class TestTouchStreak:
    async def test_consecutive_dates_reach_three(self, ledger):
        for day in (1, 2, 3):
            result = await ledger.touch_streak("u1", date(2025, 3, day))

        assert result["streak"] == 3
        progress = await ledger.get_progress("u1")
        assert progress["streak"] == 3
        assert progress["last_activity_date"] == date(2025, 3, 3)

    async def test_same_date_twice_stays_at_one(self, ledger):
        await ledger.touch_streak("u1", date(2025, 3, 1))
        result = await ledger.touch_streak("u1", date(2025, 3, 1))

        assert result["streak"] == 1
        assert result["changed"] is False

    async def test_gap_resets(self, ledger):
        await ledger.touch_streak("u1", date(2025, 3, 1))
        await ledger.touch_streak("u1", date(2025, 3, 2))

        result = await ledger.touch_streak("u1", date(2025, 3, 5))

        assert result["streak"] == 1
        assert result["previous_streak"] == 2
        assert result["change"] == "reset"

    async def test_streak_change_published(self, ledger, published_events):
        await ledger.touch_streak("u1", date(2025, 3, 1))

        payloads = published_events.payloads(EventNames.PROGRESS_STREAK_CHANGED)
        assert len(payloads) == 1
        assert payloads[0]["streak"] == 1

    async def test_row_vanishing_under_lock_is_a_persistence_error(self, mocker, ledger):
        mocker.patch.object(ledger._repo, "lock", mocker.AsyncMock(return_value=None))

        with pytest.raises(PersistenceError) as exc_info:
            await ledger.touch_streak("u1", date(2025, 3, 1))

        assert exc_info.value.operation == "ledger.lock_progress"
        assert exc_info.value.is_retryable is True

    async def test_invalid_date_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.touch_streak("u1", "2025-03-01")
