"""
HTTP API tests.

The app is built around the test container (already initialized, so the
lifespan hook is not needed) and driven in-process through httpx's
ASGITransport. Tokens are signed by the local JWT identity provider.
"""

from typing import Optional

import httpx
import pytest

from luminax.api.app import create_app
from luminax.core.exceptions import DatabaseUnavailableError
from luminax.core.redis.rate_limiter import RateLimiter
from luminax.core.services.container import ServiceContainer


@pytest.fixture
async def client(container):
    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def auth(identity_provider):
    def headers(user_id: str = "u1", username: str = "ada") -> dict:
        token = identity_provider.issue_token(user_id, username=username)
        return {"Authorization": f"Bearer {token}"}

    return headers


def assert_error(response: httpx.Response, status: int, code: Optional[str] = None) -> dict:
    assert response.status_code == status
    error = response.json()["error"]
    assert set(error) == {"code", "message", "details", "retryable"}
    if code is not None:
        assert error["code"] == code
    return error


@pytest.mark.api
class TestAuthentication:
    async def test_missing_token(self, client):
        response = await client.get("/api/progress")

        assert_error(response, 401)

    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/progress", headers={"Authorization": "Bearer not-a-token"}
        )

        assert_error(response, 401)

    async def test_public_board_without_token(self, client):
        response = await client.get("/api/leaderboard")

        assert response.status_code == 200
        assert response.json() == []


@pytest.mark.api
class TestStudyAndProgress:
    async def test_record_session_then_read_progress(self, client, auth):
        # Act
        created = await client.post(
            "/api/study/sessions",
            json={"subject": "algebra", "duration_minutes": 45},
            headers=auth(),
        )
        progress = await client.get("/api/progress", headers=auth())

        # Assert
        assert created.status_code == 201
        assert created.json()["xp_granted"] == 45
        body = progress.json()
        assert body["xp"] == 45
        assert body["level"] == 1
        assert body["streak"] == 1
        assert body["username"] == "ada"

    async def test_request_id_is_echoed(self, client, auth):
        response = await client.get(
            "/api/progress", headers={**auth(), "X-Request-ID": "req-123"}
        )

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_session_over_a_day_is_422(self, client, auth):
        response = await client.post(
            "/api/study/sessions",
            json={"subject": "algebra", "duration_minutes": 1441},
            headers=auth(),
        )

        error = assert_error(response, 422)
        assert error["details"]["field"] == "duration_minutes"

    async def test_malformed_body_is_422(self, client, auth):
        response = await client.post(
            "/api/study/sessions",
            json={"subject": "algebra", "unexpected": True},
            headers=auth(),
        )

        error = assert_error(response, 422, "VALIDATION_ERROR")
        fields = {e["field"] for e in error["details"]["errors"]}
        assert "duration_minutes" in fields

    async def test_sessions_and_stats(self, client, auth):
        await client.post(
            "/api/study/sessions",
            json={"subject": "algebra", "duration_minutes": 30, "notes": "chapter 2"},
            headers=auth(),
        )

        sessions = await client.get("/api/study/sessions", headers=auth())
        stats = await client.get("/api/study/stats", headers=auth())

        assert [s["notes"] for s in sessions.json()] == ["chapter 2"]
        assert stats.json()["total_minutes"] == 30

    async def test_summary_chart_and_subjects(self, client, auth):
        await client.post(
            "/api/quizzes/results",
            json={"topic": "biology", "score": 85, "total_questions": 20},
            headers=auth(),
        )

        summary = await client.get("/api/progress/summary", headers=auth())
        chart = await client.get("/api/progress/chart?days=3", headers=auth())
        subjects = await client.get("/api/progress/subjects", headers=auth())

        assert summary.json()["profile"]["xp"] == 80
        assert len(chart.json()) == 3
        assert subjects.json()[0]["subject"] == "biology"


@pytest.mark.api
class TestQuizzesAndAchievements:
    async def test_quiz_result(self, client, auth):
        response = await client.post(
            "/api/quizzes/results",
            json={"topic": "biology", "score": 85, "total_questions": 20},
            headers=auth(),
        )
        listed = await client.get("/api/quizzes/results", headers=auth())

        assert response.status_code == 201
        assert response.json()["xp_granted"] == 80
        assert listed.json()[0]["topic"] == "biology"

    @pytest.mark.parametrize(
        "overrides, code",
        [
            ({"xp_earned": 10**20}, "VALIDATION_XP_EARNED"),
            ({"total_questions": 10**20}, "VALIDATION_TOTAL_QUESTIONS"),
        ],
    )
    async def test_oversized_integers_are_422(self, client, auth, overrides, code):
        payload = {"topic": "Algebra", "score": 85, "total_questions": 10, **overrides}

        response = await client.post("/api/quizzes/results", json=payload, headers=auth())

        error = assert_error(response, 422, code)
        assert error["retryable"] is False

    async def test_duplicate_achievement_is_409(self, client, auth):
        payload = {"achievement_type": "first_session", "title": "First steps", "xp_reward": 50}

        first = await client.post("/api/achievements", json=payload, headers=auth())
        second = await client.post("/api/achievements", json=payload, headers=auth())
        progress = await client.get("/api/progress", headers=auth())

        assert first.status_code == 201
        assert_error(second, 409, "ACHIEVEMENT_CONFLICT")
        assert progress.json()["xp"] == 50


@pytest.mark.api
class TestQuests:
    async def test_create_and_complete(self, client, auth):
        created = await client.post(
            "/api/quests",
            json={"quest_type": "custom", "title": "Read", "target_value": 2, "xp_reward": 30},
            headers=auth(),
        )
        quest_id = created.json()["quest_id"]

        advanced = await client.patch(
            f"/api/quests/{quest_id}/progress", json={"increment": 2}, headers=auth()
        )
        again = await client.patch(
            f"/api/quests/{quest_id}/progress", json={"increment": 1}, headers=auth()
        )
        active = await client.get("/api/quests", headers=auth())
        everything = await client.get("/api/quests?include_completed=true", headers=auth())

        assert created.status_code == 201
        assert advanced.json()["completed_now"] is True
        assert advanced.json()["xp"] == 30
        assert_error(again, 409)
        assert active.json() == []
        assert len(everything.json()) == 1

    async def test_someone_elses_quest_is_404(self, client, auth):
        created = await client.post(
            "/api/quests",
            json={"quest_type": "custom", "title": "Read", "target_value": 2},
            headers=auth("u1"),
        )

        response = await client.patch(
            f"/api/quests/{created.json()['quest_id']}/progress",
            json={"increment": 1},
            headers=auth("u2", "grace"),
        )

        assert_error(response, 404, "QUEST_NOT_FOUND")


@pytest.mark.api
class TestLeaderboardAndCommunities:
    async def test_board_and_my_rank(self, client, auth):
        for user_id, minutes in (("u1", 30), ("u2", 90)):
            await client.post(
                "/api/study/sessions",
                json={"subject": "algebra", "duration_minutes": minutes},
                headers=auth(user_id, user_id),
            )

        board = await client.get("/api/leaderboard", headers=auth("u1"))
        mine = await client.get("/api/leaderboard/me", headers=auth("u1"))
        weekly = await client.get("/api/leaderboard/weekly")

        assert [(e["user_id"], e["rank"]) for e in board.json()] == [("u2", 1), ("u1", 2)]
        assert board.json()[1]["is_current_user"] is True
        assert mine.json()["rank"] == 2
        assert weekly.json()[0]["weekly_xp"] == 90

    async def test_community_flow(self, client, auth):
        created = await client.post(
            "/api/communities", json={"name": "Night owls"}, headers=auth()
        )
        community_id = created.json()["community_id"]

        joined = await client.post(f"/api/communities/{community_id}/join", headers=auth())
        mine = await client.get("/api/communities/mine", headers=auth())
        scoped = await client.get(f"/api/leaderboard?community_id={community_id}")
        left = await client.post(f"/api/communities/{community_id}/leave", headers=auth())
        left_again = await client.post(f"/api/communities/{community_id}/leave", headers=auth())

        assert created.status_code == 201
        assert joined.json()["joined"] is True
        assert [c["name"] for c in mine.json()] == ["Night owls"]
        assert [e["user_id"] for e in scoped.json()] == ["u1"]
        assert left.json()["left"] is True
        assert_error(left_again, 409)

    async def test_unknown_community_board_is_404(self, client):
        response = await client.get("/api/leaderboard?community_id=999")

        assert_error(response, 404)

    async def test_limit_out_of_range_is_422(self, client):
        response = await client.get("/api/leaderboard?limit=1000")

        assert_error(response, 422)


@pytest.mark.api
class TestAccount:
    async def test_export_then_delete(self, client, auth):
        await client.post(
            "/api/study/sessions",
            json={"subject": "algebra", "duration_minutes": 30},
            headers=auth(),
        )

        export = await client.get("/api/account/export", headers=auth())
        deleted = await client.delete("/api/account", headers=auth())
        progress = await client.get("/api/progress", headers=auth())

        assert len(export.json()["activity"]) == 1
        assert deleted.json()["deleted"]["activity_events"] == 1
        assert progress.json()["xp"] == 0


@pytest.mark.api
class TestRateLimitAndHealth:
    async def test_write_routes_are_rate_limited(self, mocker, client, auth):
        limiter = RateLimiter(None, rate=1, period_seconds=60, enabled=True)
        mocker.patch.object(
            ServiceContainer,
            "rate_limiter",
            new_callable=mocker.PropertyMock,
            return_value=limiter,
        )
        payload = {"subject": "algebra", "duration_minutes": 10}

        first = await client.post("/api/study/sessions", json=payload, headers=auth())
        second = await client.post("/api/study/sessions", json=payload, headers=auth())

        assert first.status_code == 201
        error = assert_error(second, 429)
        assert error["retryable"] is True
        assert int(second.headers["Retry-After"]) >= 1

    async def test_reads_are_not_rate_limited(self, mocker, client, auth):
        limiter = RateLimiter(None, rate=1, period_seconds=60, enabled=True)
        mocker.patch.object(
            ServiceContainer,
            "rate_limiter",
            new_callable=mocker.PropertyMock,
            return_value=limiter,
        )

        responses = [await client.get("/api/progress", headers=auth()) for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 200]

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"]["healthy"] is True
        assert body["redis"]["configured"] is False
        assert body["logging"]["initialized"] is True

    async def test_store_outage_is_503_without_details(self, mocker, client, auth, container):
        mocker.patch.object(
            container.ledger,
            "get_progress",
            side_effect=DatabaseUnavailableError("circuit breaker open"),
        )

        response = await client.get("/api/progress", headers=auth())

        error = assert_error(response, 503, "DATABASE_UNAVAILABLE")
        assert "circuit" not in error["message"]
        assert error["retryable"] is True
