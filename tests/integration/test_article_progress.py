"""Integration tests for article transitions and the aggregates they move."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from fitgame.articles.state_machine import ArticleStatus, ArticleTransition, QuizAnswer, TransitionDetails
from fitgame.counters.service import get_user_metadata
from fitgame.db.models import UserArticleProgress
from fitgame.errors import IllegalTransition, NotFound

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
ALL_CORRECT = (QuizAnswer("q1", True), QuizAnswer("q2", True))


def at(minutes: int = 0, **kwargs) -> TransitionDetails:
    return TransitionDetails(now=T0 + timedelta(minutes=minutes), **kwargs)


async def apply(ctx, user_id, article_id, transition, details):
    return await ctx.runner.run(
        lambda db: ctx.articles(db).apply_transition(user_id, article_id, transition, details)
    )


async def seed_article(ctx, article_id):
    await ctx.runner.run(lambda db: ctx.counters(db).ensure_article_partitions([article_id]))


async def stats(ctx, article_id):
    article = await ctx.runner.run(lambda db: ctx.counters(db).get_article_statistics(article_id))
    overall = await ctx.runner.run(lambda db: ctx.counters(db).get_global_statistics())
    return article, overall


async def user_metadata(ctx, user_id):
    return await ctx.runner.run(lambda db: get_user_metadata(db, user_id))


class TestFirstRead:
    """A new user reading an article."""

    @pytest.mark.asyncio
    async def test_first_read_increments_read_counters_once(self, ctx):
        await seed_article(ctx, "article-a")

        status = await apply(ctx, "user-1", "article-a", ArticleTransition.LOG_READ, at())
        assert status is ArticleStatus.READING_IN_PROGRESS

        article, overall = await stats(ctx, "article-a")
        assert article["read_count"] == 1
        assert overall["article_read_count"] == 1
        meta = await user_metadata(ctx, "user-1")
        assert meta.articles_read == 1

    @pytest.mark.asyncio
    async def test_repeat_read_does_not_recount(self, ctx):
        await seed_article(ctx, "article-a")
        await apply(ctx, "user-1", "article-a", ArticleTransition.LOG_READ, at())
        await apply(ctx, "user-1", "article-a", ArticleTransition.LOG_READ, at(15))

        article, overall = await stats(ctx, "article-a")
        assert article["read_count"] == 1
        assert overall["article_read_count"] == 1

    @pytest.mark.asyncio
    async def test_update_preserves_identity_and_first_read(self, ctx):
        await seed_article(ctx, "article-a")
        await apply(ctx, "user-1", "article-a", ArticleTransition.LOG_READ, at())
        first = await ctx.runner.run(lambda db: ctx.articles(db).get_progress("user-1", "article-a"))

        await apply(ctx, "user-1", "article-a", ArticleTransition.START_QUIZ, at(20))
        second = await ctx.runner.run(lambda db: ctx.articles(db).get_progress("user-1", "article-a"))

        assert second.id == first.id
        assert second.first_read_at == first.first_read_at
        assert second.status == ArticleStatus.KNOWLEDGE_CHECK_IN_PROGRESS.value


class TestCompletion:
    """Quiz and completion flows."""

    @pytest.mark.asyncio
    async def test_perfect_quiz_then_skip_practical(self, ctx):
        await seed_article(ctx, "article-b")
        await apply(ctx, "user-2", "article-b", ArticleTransition.LOG_READ, at())
        assert await apply(ctx, "user-2", "article-b", ArticleTransition.START_QUIZ, at(1)) is (
            ArticleStatus.KNOWLEDGE_CHECK_IN_PROGRESS
        )
        assert await apply(
            ctx, "user-2", "article-b", ArticleTransition.SUBMIT_QUIZ, at(2, answers=ALL_CORRECT)
        ) is ArticleStatus.KNOWLEDGE_CHECK_COMPLETE
        assert await apply(ctx, "user-2", "article-b", ArticleTransition.SKIP_PRACTICAL, at(3)) is (
            ArticleStatus.COMPLETED
        )

        meta = await user_metadata(ctx, "user-2")
        assert meta.articles_completed == 1
        assert meta.articles_completed_with_perfect_score == 1

        article, overall = await stats(ctx, "article-b")
        assert article["completed_count"] == 1
        assert article["completed_with_perfect_score"] == 1
        assert overall["article_completed_count"] == 1
        assert overall["article_completed_with_perfect_score"] == 1

        row = await ctx.runner.run(lambda db: ctx.articles(db).get_progress("user-2", "article-b"))
        assert row.quiz_attempts == 1
        assert row.quiz_all_correct is True
        assert row.quiz_answers == [
            {"question_id": "q1", "correct": True, "hint_used": False},
            {"question_id": "q2", "correct": True, "hint_used": False},
        ]

    @pytest.mark.asyncio
    async def test_imperfect_completion_counts_completed_only(self, ctx):
        await seed_article(ctx, "article-c")
        await apply(ctx, "user-3", "article-c", ArticleTransition.LOG_READ, at())
        await apply(ctx, "user-3", "article-c", ArticleTransition.START_QUIZ, at(1))
        await apply(
            ctx,
            "user-3",
            "article-c",
            ArticleTransition.SUBMIT_QUIZ,
            at(2, answers=(QuizAnswer("q1", True), QuizAnswer("q2", False))),
        )
        await apply(ctx, "user-3", "article-c", ArticleTransition.COMPLETE_ARTICLE, at(3))

        meta = await user_metadata(ctx, "user-3")
        assert meta.articles_completed == 1
        assert meta.articles_completed_with_perfect_score == 0


class TestRejections:
    """Illegal and not-found transitions write nothing."""

    @pytest.mark.asyncio
    async def test_submit_while_reading_is_rejected_without_changes(self, ctx):
        await seed_article(ctx, "article-d")
        await apply(ctx, "user-4", "article-d", ArticleTransition.LOG_READ, at())

        with pytest.raises(IllegalTransition):
            await apply(ctx, "user-4", "article-d", ArticleTransition.SUBMIT_QUIZ, at(1, answers=ALL_CORRECT))

        row = await ctx.runner.run(lambda db: ctx.articles(db).get_progress("user-4", "article-d"))
        assert row.status == ArticleStatus.READING_IN_PROGRESS.value
        assert row.quiz_attempts == 0
        meta = await user_metadata(ctx, "user-4")
        assert meta.articles_completed == 0

    @pytest.mark.asyncio
    async def test_start_quiz_without_progress_row_is_not_found(self, ctx):
        with pytest.raises(NotFound):
            await apply(ctx, "user-5", "article-e", ArticleTransition.START_QUIZ, at())

        async def load(db):
            result = await db.execute(select(UserArticleProgress).where(UserArticleProgress.user_id == "user-5"))
            return result.scalars().all()

        assert await ctx.runner.run(load) == []
        assert await user_metadata(ctx, "user-5") is None

    @pytest.mark.asyncio
    async def test_get_progress_not_found(self, ctx):
        with pytest.raises(NotFound):
            await ctx.runner.run(lambda db: ctx.articles(db).get_progress("nobody", "nothing"))


class TestMissingPartitions:
    """A missing counter partition is an anomaly, not a failure."""

    @pytest.mark.asyncio
    async def test_read_succeeds_and_anomaly_is_recorded(self, ctx):
        status = await apply(ctx, "user-6", "unseeded-article", ArticleTransition.LOG_READ, at())

        assert status is ArticleStatus.READING_IN_PROGRESS
        assert ctx.recorder.counts["article_counters"] == 1
        anomaly = ctx.recorder.recent[-1]
        assert anomaly.entity_key == "unseeded-article"
        assert anomaly.deltas == {"read_count": 1}

        meta = await user_metadata(ctx, "user-6")
        assert meta.articles_read == 1
        _, overall = await stats(ctx, "unseeded-article")
        assert overall["article_read_count"] == 1


class TestListProgress:
    @pytest.mark.asyncio
    async def test_pagination(self, ctx):
        for i in range(5):
            await apply(ctx, "user-7", f"article-{i}", ArticleTransition.LOG_READ, at(i))

        rows, total = await ctx.runner.run(lambda db: ctx.articles(db).list_progress("user-7", page=2, limit=2))
        assert total == 5
        assert len(rows) == 2
        assert {r.user_id for r in rows} == {"user-7"}
