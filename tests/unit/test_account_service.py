"""Tests for AccountService export and deletion."""

import pytest

from luminax.core.event.types import EventNames


@pytest.fixture
async def active_user(recorder, quests, communities):
    await recorder.record_study_session("u1", "algebra", 30, username="ada")
    await recorder.record_quiz_result("u1", "biology", 90, 10)
    await quests.create_quest("u1", "custom", "Read", 3)
    community = await communities.create_community("Night owls")
    await communities.join(community["community_id"], "u1")
    await recorder.record_study_session("u2", "algebra", 15)
    return community


@pytest.mark.unit
class TestExport:
    async def test_contains_everything_owned(self, account, active_user):
        export = await account.export("u1")

        assert export["progress"]["xp"] == 120
        assert export["progress"]["username"] == "ada"
        assert [a["kind"] for a in export["activity"]] == ["study_session", "quiz_result"]
        assert [q["title"] for q in export["quests"]] == ["Read"]
        assert export["communities"][0]["name"] == "Night owls"
        assert export["exported_at"] is not None

    async def test_unknown_user_exports_empty(self, account):
        export = await account.export("ghost")

        assert export["progress"]["xp"] == 0
        assert export["activity"] == []
        assert export["quests"] == []
        assert export["communities"] == []


@pytest.mark.unit
class TestDeleteAccount:
    async def test_removes_all_owned_rows(
        self, account, active_user, ledger, ranking, communities, published_events
    ):
        # Act
        result = await account.delete_account("u1")

        # Assert
        assert result["deleted"] == {
            "community_memberships": 1,
            "quests": 1,
            "activity_events": 2,
            "progress": 1,
        }
        assert (await ledger.get_progress("u1"))["xp"] == 0
        assert [e["user_id"] for e in await ranking.top_n(10)] == ["u2"]
        assert await communities.member_ids(active_user["community_id"]) == []
        assert published_events.payloads(EventNames.ACCOUNT_DELETED)[0]["user_id"] == "u1"

    async def test_other_users_untouched(self, account, active_user, ledger):
        await account.delete_account("u1")

        assert (await ledger.get_progress("u2"))["xp"] == 15

    async def test_unknown_user_is_a_no_op(self, account):
        result = await account.delete_account("ghost")

        assert set(result["deleted"].values()) == {0}
