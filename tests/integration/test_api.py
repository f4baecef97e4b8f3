"""HTTP-level tests: routing, schemas and error mapping."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fitgame.db.models import Question
from fitgame.time_utils import utc_now


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready_reports_database(self, client):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        assert body["checks"] == {"database": "ok"}
        assert body["aggregate_anomalies"] == 0

    @pytest.mark.asyncio
    async def test_request_id_header_is_echoed(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_request_id_is_generated_when_absent(self, client):
        resp = await client.get("/health")
        request_id = resp.headers["X-Request-Id"]
        assert len(request_id) == 32
        int(request_id, 16)


class TestArticleEndpoints:
    @pytest.mark.asyncio
    async def test_read_then_statistics(self, client):
        seeded = await client.post("/api/v1/statistics/articles/article-a/partitions")
        assert seeded.status_code == 204

        resp = await client.post(
            "/api/v1/users/user-1/articles/article-a/transitions",
            json={"transition": "LOG_READ"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"article_id": "article-a", "status": "reading_in_progress"}

        stats = (await client.get("/api/v1/statistics/articles/article-a")).json()
        assert stats["read_count"] == 1
        assert stats["completed_count"] == 0

        overall = (await client.get("/api/v1/statistics/global")).json()
        assert overall["article_read_count"] == 1

    @pytest.mark.asyncio
    async def test_illegal_transition_is_409(self, client):
        await client.post(
            "/api/v1/users/user-1/articles/article-a/transitions",
            json={"transition": "LOG_READ"},
        )
        resp = await client.post(
            "/api/v1/users/user-1/articles/article-a/transitions",
            json={"transition": "COMPLETE_PRACTICAL"},
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["operation"] == "COMPLETE_PRACTICAL"
        assert body["current"] == "reading_in_progress"

    @pytest.mark.asyncio
    async def test_unknown_transition_is_422(self, client):
        resp = await client.post(
            "/api/v1/users/user-1/articles/article-a/transitions",
            json={"transition": "TELEPORT"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_progress_is_404(self, client):
        resp = await client.get("/api/v1/users/user-1/articles/nope")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_progress(self, client):
        for article_id in ("a", "b", "c"):
            await client.post(
                f"/api/v1/users/user-1/articles/{article_id}/transitions",
                json={"transition": "LOG_READ"},
            )
        resp = await client.get("/api/v1/users/user-1/articles", params={"page": 1, "limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 3
        assert len(body["items"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_article_statistics_are_zero(self, client):
        resp = await client.get("/api/v1/statistics/articles/never-published")
        assert resp.json() == {
            "article_id": "never-published",
            "read_count": 0,
            "completed_count": 0,
            "completed_with_perfect_score": 0,
        }


class TestChallengeEndpoints:
    @pytest.mark.asyncio
    async def test_create_join_and_progress(self, client):
        created = await client.post("/api/v1/challenges", json={"name": "Hydration", "duration_days": 1})
        assert created.status_code == 201
        challenge_id = created.json()["id"]

        today = utc_now().date().isoformat()
        joined = await client.post(
            f"/api/v1/users/user-1/challenges/{challenge_id}/join",
            json={"start_date": today},
        )
        assert joined.status_code == 201
        user_challenge = joined.json()
        assert user_challenge["status"] == "not_started"

        challenge = (await client.get(f"/api/v1/challenges/{challenge_id}")).json()
        assert challenge["members_count"] == 1

        progressed = await client.post(
            f"/api/v1/users/user-1/user-challenges/{user_challenge['id']}/progress",
            json={"knowledge_base": 1, "habits": 1},
        )
        assert progressed.status_code == 200
        assert progressed.json()["status"] == "completed"

        listed = (await client.get("/api/v1/users/user-1/user-challenges")).json()
        assert [item["id"] for item in listed["items"]] == [user_challenge["id"]]

    @pytest.mark.asyncio
    async def test_second_open_join_is_409(self, client):
        challenge_id = (
            await client.post("/api/v1/challenges", json={"name": "Steps", "duration_days": 7})
        ).json()["id"]
        today = utc_now().date().isoformat()
        url = f"/api/v1/users/user-1/challenges/{challenge_id}/join"

        assert (await client.post(url, json={"start_date": today})).status_code == 201
        assert (await client.post(url, json={"start_date": today})).status_code == 409

    @pytest.mark.asyncio
    async def test_leave(self, client):
        challenge_id = (
            await client.post("/api/v1/challenges", json={"name": "Sleep", "duration_days": 7})
        ).json()["id"]
        today = utc_now().date().isoformat()
        await client.post(f"/api/v1/users/user-1/challenges/{challenge_id}/join", json={"start_date": today})

        first = await client.post(f"/api/v1/users/user-1/challenges/{challenge_id}/leave")
        second = await client.post(f"/api/v1/users/user-1/challenges/{challenge_id}/leave")
        assert first.json() == {"left": True}
        assert second.json() == {"left": False}

    @pytest.mark.asyncio
    async def test_non_positive_duration_is_422(self, client):
        resp = await client.post("/api/v1/challenges", json={"name": "Broken", "duration_days": 0})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_challenge_is_404(self, client):
        assert (await client.get("/api/v1/challenges/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_reconcile_endpoint(self, client):
        resp = await client.post("/api/v1/challenges/reconcile")
        assert resp.status_code == 200
        assert resp.json() == {"lock_expired": 0, "activate_pending": 0, "complete_active": 0}


class TestStreakEndpoints:
    @pytest.mark.asyncio
    async def test_log_habit_and_read_streaks(self, client):
        resp = await client.put(
            "/api/v1/users/user-1/habit-logs/2026-03-01/workout_completed",
            json={"done": True},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["first_log_of_day"] is True
        assert body["habit"]["is_new_streak"] is True
        assert body["habit"]["current_length"] == 1
        assert body["all_habits"]["current_length"] == 0

        await client.put("/api/v1/users/user-1/habit-logs/2026-03-02/workout_completed", json={"done": True})

        streaks = (await client.get("/api/v1/users/user-1/streaks", params={"today": "2026-03-02"})).json()
        assert streaks["current"]["workout_completed"] == 2
        assert streaks["longest"]["workout_completed"] == 2

    @pytest.mark.asyncio
    async def test_unknown_habit_is_409(self, client):
        resp = await client.put("/api/v1/users/user-1/habit-logs/2026-03-01/juggling", json={"done": True})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_future_day_is_409(self, client):
        resp = await client.put("/api/v1/users/user-1/habit-logs/2999-01-01/hydrated", json={"done": True})
        assert resp.status_code == 409
        assert resp.json()["operation"] == "LOG_HABIT"


class TestReactionEndpoints:
    @pytest.mark.asyncio
    async def test_reaction_flip(self, client, ctx):
        async def seed(db):
            question = Question(
                user_id="asker",
                body="Is creatine safe?",
                created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            )
            db.add(question)
            await db.flush()
            return question.id

        question_id = await ctx.runner.run(seed)
        url = f"/api/v1/users/user-1/reactions/question/{question_id}"

        first = await client.put(url, json={"reaction_type": "helpful", "at": "2026-03-01T10:00:00Z"})
        assert first.json() == {"changed": True, "helpful_count": 1, "not_helpful_count": 0}

        replay = await client.put(url, json={"reaction_type": "helpful", "at": "2026-03-01T10:00:00Z"})
        assert replay.json() == {"changed": False, "helpful_count": 1, "not_helpful_count": 0}

        flip = await client.put(url, json={"reaction_type": "not_helpful", "at": "2026-03-01T11:00:00Z"})
        assert flip.json() == {"changed": True, "helpful_count": 0, "not_helpful_count": 1}

    @pytest.mark.asyncio
    async def test_reaction_on_missing_answer_is_404(self, client):
        resp = await client.put("/api/v1/users/user-1/reactions/answer/missing", json={"reaction_type": "helpful"})
        assert resp.status_code == 404
