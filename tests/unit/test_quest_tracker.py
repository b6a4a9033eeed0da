"""
Tests for QuestTrackerService: one-time completion, expiry and
auto-progress from recorded activity.
"""

from datetime import datetime, timedelta

import pytest

from luminax.core.event.types import EventNames
from luminax.database.models import ActivityKind
from luminax.modules.shared.exceptions import ConflictError, NotFoundError, ValidationError


@pytest.mark.unit
class TestCreateQuest:
    async def test_defaults(self, quests, clock):
        quest = await quests.create_quest("u1", "study_minutes", "Study for an hour", 60)

        assert quest["current_value"] == 0
        assert quest["completed"] is False
        assert quest["xp_reward"] == 0
        assert quest["expires_at"] > clock.now
        assert quest["expires_at"] <= clock.now + timedelta(days=1)

    async def test_emits_created_event(self, quests, published_events):
        quest = await quests.create_quest("u1", "study_minutes", "Study", 60, xp_reward=20)

        created = published_events.payloads(EventNames.QUEST_CREATED)
        assert created[0]["quest_id"] == quest["quest_id"]

    @pytest.mark.parametrize("target", [0, -3, 1.5])
    async def test_invalid_target_rejected(self, quests, target):
        with pytest.raises(ValidationError):
            await quests.create_quest("u1", "study_minutes", "Study", target)

    @pytest.mark.parametrize(
        "target, reward, field",
        [(10**20, 5, "target_value"), (1_000_001, 5, "target_value"), (10, 10**20, "xp_reward")],
    )
    async def test_oversized_values_rejected(self, quests, target, reward, field):
        with pytest.raises(ValidationError) as exc_info:
            await quests.create_quest("u3", "study_minutes", "Study", target, reward)

        assert exc_info.value.field == field
        assert await quests.list_quests("u3") == []

    async def test_negative_reward_rejected(self, quests):
        with pytest.raises(ValidationError):
            await quests.create_quest("u1", "study_minutes", "Study", 10, xp_reward=-1)

    async def test_past_expiry_rejected(self, quests, clock):
        with pytest.raises(ValidationError):
            await quests.create_quest(
                "u1", "study_minutes", "Study", 10, expires_at=clock.now - timedelta(minutes=1)
            )

    async def test_naive_expiry_rejected(self, quests):
        with pytest.raises(ValidationError):
            await quests.create_quest(
                "u1", "study_minutes", "Study", 10, expires_at=datetime(2999, 1, 1)
            )


@pytest.mark.unit
class TestAdvanceQuest:
    async def test_partial_progress(self, quests, ledger):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3, xp_reward=100)

        result = await quests.advance("u1", quest["quest_id"], 2)

        assert result["current_value"] == 2
        assert result["completed"] is False
        assert result["completed_now"] is False
        assert result["xp_granted"] == 0
        assert (await ledger.get_progress("u1"))["xp"] == 0

    async def test_reaching_target_grants_reward_once(self, quests, ledger, published_events):
        # Arrange
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3, xp_reward=100)
        await quests.advance("u1", quest["quest_id"], 2)

        # Act
        result = await quests.advance("u1", quest["quest_id"], 1)

        # Assert
        assert result["completed"] is True
        assert result["completed_now"] is True
        assert result["xp_granted"] == 100
        assert result["xp"] == 100
        assert (await ledger.get_progress("u1"))["xp"] == 100
        assert len(published_events.payloads(EventNames.QUEST_COMPLETED)) == 1

    async def test_overshoot_clamps_at_target(self, quests):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3, xp_reward=10)

        result = await quests.advance("u1", quest["quest_id"], 50)

        assert result["current_value"] == 3
        assert result["completed_now"] is True

    async def test_completed_quest_is_frozen(self, quests, ledger):
        # Arrange
        quest = await quests.create_quest("u1", "custom", "Read chapters", 1, xp_reward=100)
        await quests.advance("u1", quest["quest_id"], 1)

        # Act
        with pytest.raises(ConflictError):
            await quests.advance("u1", quest["quest_id"], 1)

        # Assert
        assert (await ledger.get_progress("u1"))["xp"] == 100

    async def test_completion_recorded_in_history(self, quests, reports):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 1, xp_reward=40)
        await quests.advance("u1", quest["quest_id"], 1)

        history = await reports.list_events("u1", ActivityKind.QUEST_COMPLETION)

        assert len(history) == 1
        assert history[0]["quest_id"] == quest["quest_id"]
        assert history[0]["xp_granted"] == 40

    async def test_expired_quest_is_not_found(self, quests, clock):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3)
        clock.advance(days=2)

        with pytest.raises(NotFoundError):
            await quests.advance("u1", quest["quest_id"], 1)

    async def test_other_users_quest_is_not_found(self, quests):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3)

        with pytest.raises(NotFoundError):
            await quests.advance("u2", quest["quest_id"], 1)

    async def test_missing_quest(self, quests):
        with pytest.raises(NotFoundError):
            await quests.advance("u1", 9999, 1)

    async def test_non_positive_increment_rejected(self, quests):
        quest = await quests.create_quest("u1", "custom", "Read chapters", 3)

        with pytest.raises(ValidationError):
            await quests.advance("u1", quest["quest_id"], 0)


@pytest.mark.unit
class TestListQuests:
    async def test_active_excludes_completed_and_expired(self, quests, clock):
        done = await quests.create_quest("u1", "custom", "Done", 1)
        await quests.advance("u1", done["quest_id"], 1)
        await quests.create_quest(
            "u1", "custom", "Short", 1, expires_at=clock.now + timedelta(hours=1)
        )
        open_quest = await quests.create_quest(
            "u1", "custom", "Open", 5, expires_at=clock.now + timedelta(days=3)
        )
        clock.advance(hours=2)

        active = await quests.list_active("u1")

        assert [q["quest_id"] for q in active] == [open_quest["quest_id"]]

    async def test_include_completed_flag(self, quests):
        done = await quests.create_quest("u1", "custom", "Done", 1)
        await quests.advance("u1", done["quest_id"], 1)
        await quests.create_quest("u1", "custom", "Open", 5)

        everything = await quests.list_quests("u1", include_completed=True)
        pending = await quests.list_quests("u1", include_completed=False)

        assert len(everything) == 2
        assert [q["title"] for q in pending] == ["Open"]


@pytest.mark.unit
class TestAutoProgress:
    async def test_study_minutes_quest_completes_from_sessions(self, quests, recorder):
        # Arrange
        quest = await quests.create_quest("u1", "study_minutes", "Study an hour", 60, xp_reward=50)

        # Act
        first = await recorder.record_study_session("u1", "algebra", 45)
        second = await recorder.record_study_session("u1", "algebra", 30)

        # Assert
        assert first["quests_completed"] == []
        assert second["quests_completed"] == [quest["quest_id"]]
        assert second["xp"] == 45 + 30 + 50
        assert await quests.list_active("u1") == []

    async def test_quiz_count_quest(self, quests, recorder):
        quest = await quests.create_quest("u1", "quizzes_completed", "Two quizzes", 2)

        await recorder.record_quiz_result("u1", "biology", 60, 10)
        result = await recorder.record_quiz_result("u1", "biology", 70, 10)

        assert result["quests_completed"] == [quest["quest_id"]]

    async def test_perfect_quiz_rule_ignores_lower_scores(self, quests, recorder):
        quest = await quests.create_quest("u1", "perfect_quizzes", "Ace one", 1)

        await recorder.record_quiz_result("u1", "biology", 90, 10)
        [active] = await quests.list_active("u1")
        result = await recorder.record_quiz_result("u1", "biology", 100, 10)

        assert active["current_value"] == 0
        assert result["quests_completed"] == [quest["quest_id"]]

    async def test_unrelated_kind_does_not_advance(self, quests, recorder):
        await quests.create_quest("u1", "quizzes_completed", "Two quizzes", 2)

        await recorder.record_study_session("u1", "algebra", 30)

        [active] = await quests.list_active("u1")
        assert active["current_value"] == 0

    async def test_expired_quest_not_advanced_by_activity(self, quests, recorder, clock):
        await quests.create_quest(
            "u1",
            "study_sessions",
            "One session",
            1,
            expires_at=clock.now + timedelta(minutes=30),
        )
        clock.advance(hours=1)

        result = await recorder.record_study_session("u1", "algebra", 30)

        assert result["quests_completed"] == []
        assert await quests.list_quests("u1", include_completed=False) != []
