"""
Tests for ActivityRecorderService.

Each recording is one unit of work: event row, XP, streak and quest
progress commit together or not at all, and events are published only
after the commit.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from luminax.core.event.types import EventNames
from luminax.core.exceptions import PersistenceError
from luminax.database.models import ActivityKind
from luminax.modules.shared.exceptions import ConflictError, ValidationError


@pytest.mark.unit
class TestRecordStudySession:
    async def test_grants_one_xp_per_minute(self, recorder, ledger):
        # Act
        result = await recorder.record_study_session("u1", "algebra", 45)

        # Assert
        assert result["kind"] == "study_session"
        assert result["xp_granted"] == 45
        assert result["xp"] == 45
        assert result["level"] == 1
        assert result["streak"] == 1
        assert result["event_id"] is not None

        progress = await ledger.get_progress("u1")
        assert progress["xp"] == 45

    async def test_crossing_a_level_boundary(self, recorder):
        await recorder.record_study_session("u1", "algebra", 600)

        result = await recorder.record_study_session("u1", "algebra", 600)

        assert result["xp"] == 1200
        assert result["level"] == 2
        assert result["leveled_up"] is True

    async def test_username_is_stored(self, recorder, ledger):
        await recorder.record_study_session("u1", "algebra", 10, username="ada")

        progress = await ledger.get_progress("u1")

        assert progress["username"] == "ada"

    async def test_consecutive_days_build_a_streak(self, recorder):
        base = datetime.now(timezone.utc) - timedelta(days=2)

        for offset in range(3):
            result = await recorder.record_study_session(
                "u1", "algebra", 10, occurred_at=base + timedelta(days=offset)
            )

        assert result["streak"] == 3

    async def test_session_over_a_day_is_rejected(self, recorder, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await recorder.record_study_session("u1", "algebra", 1441)

        assert exc_info.value.field == "duration_minutes"
        assert (await ledger.get_progress("u1"))["xp"] == 0

    @pytest.mark.parametrize("duration", [0, -5, 2.5, "half an hour", None])
    async def test_invalid_duration_rejected(self, recorder, duration):
        with pytest.raises(ValidationError):
            await recorder.record_study_session("u1", "algebra", duration)

    async def test_blank_subject_rejected(self, recorder):
        with pytest.raises(ValidationError):
            await recorder.record_study_session("u1", "   ", 30)

    async def test_naive_occurred_at_rejected(self, recorder):
        with pytest.raises(ValidationError) as exc_info:
            await recorder.record_study_session(
                "u1", "algebra", 30, occurred_at=datetime(2025, 1, 1, 12, 0)
            )

        assert exc_info.value.field == "occurred_at"

    async def test_future_occurred_at_rejected(self, recorder):
        with pytest.raises(ValidationError):
            await recorder.record_study_session(
                "u1",
                "algebra",
                30,
                occurred_at=datetime.now(timezone.utc) + timedelta(hours=1),
            )

    async def test_small_clock_skew_accepted(self, recorder):
        result = await recorder.record_study_session(
            "u1",
            "algebra",
            30,
            occurred_at=datetime.now(timezone.utc) + timedelta(minutes=2),
        )

        assert result["xp_granted"] == 30


@pytest.mark.unit
class TestRecordQuizResult:
    async def test_score_85_earns_80_xp(self, recorder):
        result = await recorder.record_quiz_result("u1", "biology", 85, 20)

        assert result["xp_granted"] == 80
        assert result["xp"] == 80

    async def test_explicit_xp_overrides_score(self, recorder):
        result = await recorder.record_quiz_result("u1", "biology", 85, 20, xp_earned=150)

        assert result["xp_granted"] == 150

    async def test_fractional_score_accepted(self, recorder):
        result = await recorder.record_quiz_result("u1", "biology", 99.5, 10)

        assert result["xp_granted"] == 90

    @pytest.mark.parametrize("score", [-1, 100.5, "high", float("nan")])
    async def test_score_out_of_range_rejected(self, recorder, score):
        with pytest.raises(ValidationError):
            await recorder.record_quiz_result("u1", "biology", score, 10)

    async def test_oversized_xp_earned_rejected(self, recorder, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await recorder.record_quiz_result("u2", "Algebra", 85, 10, xp_earned=10**20)

        assert exc_info.value.field == "xp_earned"
        assert (await ledger.get_progress("u2"))["xp"] == 0

    async def test_xp_earned_at_the_cap_accepted(self, recorder):
        result = await recorder.record_quiz_result("u2", "Algebra", 85, 10, xp_earned=100_000)

        assert result["xp_granted"] == 100_000

    async def test_zero_questions_rejected(self, recorder):
        with pytest.raises(ValidationError):
            await recorder.record_quiz_result("u1", "biology", 50, 0)

    async def test_quiz_and_study_share_one_streak(self, recorder):
        yesterday = datetime.now(timezone.utc) - timedelta(days=1)
        await recorder.record_study_session("u1", "algebra", 10, occurred_at=yesterday)

        result = await recorder.record_quiz_result("u1", "algebra", 70, 10)

        assert result["streak"] == 2


@pytest.mark.unit
class TestRecordAchievement:
    async def test_awards_reward_once(self, recorder, ledger):
        result = await recorder.record_achievement("u1", "first_session", "First steps", 50)

        assert result["xp_granted"] == 50
        assert (await ledger.get_progress("u1"))["xp"] == 50

    async def test_duplicate_raises_conflict_and_applies_nothing(self, recorder, ledger, reports):
        # Arrange
        await recorder.record_achievement("u1", "first_session", "First steps", 50)

        # Act
        with pytest.raises(ConflictError):
            await recorder.record_achievement("u1", "first_session", "First steps", 50)

        # Assert
        assert (await ledger.get_progress("u1"))["xp"] == 50
        awarded = await reports.list_events("u1", ActivityKind.ACHIEVEMENT)
        assert len(awarded) == 1

    async def test_oversized_reward_rejected(self, recorder, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await recorder.record_achievement("u1", "whale", "Whale", 100_001)

        assert exc_info.value.field == "xp_reward"
        assert (await ledger.get_progress("u1"))["xp"] == 0

    async def test_same_type_for_different_users(self, recorder):
        await recorder.record_achievement("u1", "first_session", "First steps", 50)

        result = await recorder.record_achievement("u2", "first_session", "First steps", 50)

        assert result["xp"] == 50

    async def test_achievement_does_not_touch_streak(self, recorder):
        result = await recorder.record_achievement("u1", "first_session", "First steps")

        assert result["streak"] == 0
        assert result["xp_granted"] == 0


@pytest.mark.unit
class TestAtomicity:
    async def test_failure_rolls_back_event_and_xp(
        self, mocker, container, recorder, ledger, reports, published_events
    ):
        # Arrange
        await recorder.record_study_session("u1", "algebra", 30)
        published_events.reset()
        mocker.patch.object(
            container.ledger,
            "apply_xp_delta",
            side_effect=OperationalError("UPDATE user_progress", {}, Exception("disk I/O error")),
        )

        # Act
        with pytest.raises(PersistenceError):
            await recorder.record_study_session("u1", "algebra", 60)

        # Assert
        mocker.stopall()
        assert (await ledger.get_progress("u1"))["xp"] == 30
        sessions = await reports.list_events("u1", ActivityKind.STUDY_SESSION)
        assert len(sessions) == 1
        assert published_events.names == []

    async def test_persistence_error_is_retryable(self, mocker, container, recorder):
        mocker.patch.object(
            container.ledger,
            "apply_xp_delta",
            side_effect=OperationalError("UPDATE user_progress", {}, Exception("locked")),
        )

        with pytest.raises(PersistenceError) as exc_info:
            await recorder.record_quiz_result("u1", "biology", 90, 10)

        assert exc_info.value.is_retryable is True


@pytest.mark.unit
class TestPublishedEvents:
    async def test_events_published_after_commit(self, recorder, published_events):
        await recorder.record_study_session("u1", "algebra", 30)

        assert EventNames.ACTIVITY_RECORDED in published_events.names
        assert EventNames.PROGRESS_XP_APPLIED in published_events.names
        assert EventNames.PROGRESS_STREAK_CHANGED in published_events.names
        recorded = published_events.payloads(EventNames.ACTIVITY_RECORDED)[0]
        assert recorded["kind"] == "study_session"
        assert recorded["xp_granted"] == 30
        assert "occurred_at" in recorded

    async def test_achievement_event(self, recorder, published_events):
        await recorder.record_achievement("u1", "quiz_master", "Quiz master", 100)

        awarded = published_events.payloads(EventNames.ACHIEVEMENT_AWARDED)
        assert awarded == [
            {
                "user_id": "u1",
                "achievement_type": "quiz_master",
                "xp_reward": 100,
                "occurred_at": awarded[0]["occurred_at"],
            }
        ]

    async def test_validation_failure_publishes_nothing(self, recorder, published_events):
        with pytest.raises(ValidationError):
            await recorder.record_study_session("u1", "algebra", 0)

        assert published_events.names == []
