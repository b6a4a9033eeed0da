"""
Unit tests for the progression rules (level curve, streaks, XP grants).

Pure domain code: no database, no clock reads.
"""

from datetime import date

import pytest

from luminax.domain.models import (
    DomainValidationError,
    LevelCurve,
    StreakChange,
    StreakState,
    xp_for_quiz,
    xp_for_study_session,
)


# ============================================================================
# LEVEL CURVE
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestLevelCurve:
    """level == xp // 1000 + 1"""

    @pytest.mark.parametrize(
        "xp, level",
        [(0, 1), (999, 1), (1000, 2), (1500, 2), (2999, 3), (10_000, 11)],
    )
    def test_level_for_xp(self, xp, level):
        assert LevelCurve().level_for(xp) == level

    def test_xp_to_next_level(self):
        # Arrange
        curve = LevelCurve()

        # Act & Assert
        assert curve.xp_to_next_level(0) == 1000
        assert curve.xp_to_next_level(2500) == 500
        assert curve.xp_to_next_level(3000) == 1000

    def test_level_floor_xp(self):
        assert LevelCurve().level_floor_xp(1) == 0
        assert LevelCurve().level_floor_xp(4) == 3000

    def test_custom_xp_per_level(self):
        assert LevelCurve(xp_per_level=250).level_for(1000) == 5

    def test_negative_xp_rejected(self):
        with pytest.raises(DomainValidationError):
            LevelCurve().level_for(-1)

    def test_zero_xp_per_level_rejected(self):
        with pytest.raises(DomainValidationError):
            LevelCurve(xp_per_level=0)


# ============================================================================
# STREAKS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestStreakState:
    """One transition per qualifying activity date."""

    def test_first_activity_starts_streak(self):
        transition = StreakState().advance(date(2025, 3, 1))

        assert transition.streak == 1
        assert transition.change is StreakChange.STARTED
        assert transition.changed is True

    def test_consecutive_days_reach_three(self):
        # Arrange
        state = StreakState()

        # Act
        for day in (1, 2, 3):
            transition = state.advance(date(2025, 3, day))
            state = StreakState(transition.streak, transition.last_activity_date)

        # Assert
        assert state.streak == 3
        assert state.last_activity_date == date(2025, 3, 3)

    def test_same_day_twice_keeps_one(self):
        state = StreakState(1, date(2025, 3, 1))

        transition = state.advance(date(2025, 3, 1))

        assert transition.streak == 1
        assert transition.change is StreakChange.SAME_DAY
        assert transition.changed is False

    def test_gap_resets_to_one(self):
        state = StreakState(5, date(2025, 3, 1))

        transition = state.advance(date(2025, 3, 3))

        assert transition.streak == 1
        assert transition.previous_streak == 5
        assert transition.change is StreakChange.RESET

    def test_backdated_activity_is_noop(self):
        state = StreakState(4, date(2025, 3, 10))

        transition = state.advance(date(2025, 3, 8))

        assert transition.streak == 4
        assert transition.last_activity_date == date(2025, 3, 10)
        assert transition.change is StreakChange.BACKDATED
        assert transition.changed is False

    def test_continues_across_month_boundary(self):
        transition = StreakState(2, date(2025, 1, 31)).advance(date(2025, 2, 1))

        assert transition.streak == 3
        assert transition.change is StreakChange.CONTINUED

    def test_rejects_non_date(self):
        with pytest.raises(DomainValidationError):
            StreakState().advance("2025-03-01")


# ============================================================================
# XP GRANTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestXPGrants:
    def test_study_session_grants_one_xp_per_minute(self):
        assert xp_for_study_session(45) == 45

    def test_study_session_requires_positive_minutes(self):
        with pytest.raises(DomainValidationError):
            xp_for_study_session(0)

    @pytest.mark.parametrize(
        "score, xp",
        [(85, 80), (100, 100), (0, 0), (9.9, 0), (99.5, 90)],
    )
    def test_quiz_xp_rounds_down_to_ten(self, score, xp):
        assert xp_for_quiz(score) == xp

    @pytest.mark.parametrize("score", [-1, 100.5, True, "85"])
    def test_quiz_score_out_of_range_rejected(self, score):
        with pytest.raises(DomainValidationError):
            xp_for_quiz(score)
