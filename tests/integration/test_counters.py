"""Integration tests for partitioned counters."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from fitgame.articles.state_machine import ArticleTransition, QuizAnswer, TransitionDetails
from fitgame.counters.partitions import ArticleDeltas, increment_article_partition, increment_global_partition
from fitgame.db.models import ArticleCounter

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestStatistics:
    @pytest.mark.asyncio
    async def test_unknown_article_reads_as_zero(self, ctx):
        stats = await ctx.runner.run(lambda db: ctx.counters(db).get_article_statistics("nope"))
        assert stats == {"article_id": "nope", "read_count": 0, "completed_count": 0, "completed_with_perfect_score": 0}

    @pytest.mark.asyncio
    async def test_fresh_global_statistics_are_zero(self, ctx):
        stats = await ctx.runner.run(lambda db: ctx.counters(db).get_global_statistics())
        assert set(stats.values()) == {0}

    @pytest.mark.asyncio
    async def test_partition_seeding_is_idempotent(self, ctx):
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_partitions(["a1", "a2"]))
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_partitions(["a1"]))

        async def keys(db):
            result = await db.execute(select(ArticleCounter.article_id, ArticleCounter.partition_key))
            return sorted(result.all())

        rows = await ctx.runner.run(keys)
        assert len(rows) == 2 * ctx.settings.article_counter_partitions


class TestConservation:
    """N successful increments add exactly N, even when run concurrently."""

    @pytest.mark.asyncio
    async def test_concurrent_article_increments(self, ctx):
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_article_partitions(["hot"]))
        n = 12

        async def one(db):
            return await increment_article_partition(
                db, ctx.article_partitions, ctx.recorder, "hot", ArticleDeltas(read=1)
            )

        results = await asyncio.gather(*(ctx.runner.run(one) for _ in range(n)))
        assert all(results)

        stats = await ctx.runner.run(lambda db: ctx.counters(db).get_article_statistics("hot"))
        assert stats["read_count"] == n
        assert ctx.recorder.total == 0

    @pytest.mark.asyncio
    async def test_concurrent_global_increments(self, ctx):
        n = 12

        async def one(db):
            return await increment_global_partition(db, ctx.global_partitions, ctx.recorder, days_logged=1)

        await asyncio.gather(*(ctx.runner.run(one) for _ in range(n)))
        stats = await ctx.runner.run(lambda db: ctx.counters(db).get_global_statistics())
        assert stats["days_logged"] == n

    @pytest.mark.asyncio
    async def test_sum_spreads_over_partitions(self, ctx):
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_article_partitions(["spread"]))
        for _ in range(40):
            await ctx.runner.run(
                lambda db: increment_article_partition(
                    db, ctx.article_partitions, ctx.recorder, "spread", ArticleDeltas(read=1)
                )
            )

        async def partitions(db):
            result = await db.execute(
                select(ArticleCounter.read_count).where(ArticleCounter.article_id == "spread")
            )
            return result.scalars().all()

        values = await ctx.runner.run(partitions)
        assert sum(values) == 40
        assert sum(1 for v in values if v > 0) > 1


class TestRebuild:
    """The repair job recomputes counters from per-user progress."""

    @pytest.mark.asyncio
    async def test_rebuild_restores_drifted_counters(self, ctx):
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_article_partitions(["drift"]))
        answers = (QuizAnswer("q1", True),)
        for i, user in enumerate(["u1", "u2", "u3"]):
            for transition, extra in [
                (ArticleTransition.LOG_READ, {}),
                (ArticleTransition.START_QUIZ, {}),
                (ArticleTransition.SUBMIT_QUIZ, {"answers": answers}),
                (ArticleTransition.SKIP_PRACTICAL, {}),
            ]:
                if i == 2 and transition is not ArticleTransition.LOG_READ:
                    break
                details = TransitionDetails(now=NOW, **extra)
                await ctx.runner.run(
                    lambda db, t=transition, d=details, u=user: ctx.articles(db).apply_transition(u, "drift", t, d)
                )

        async def corrupt(db):
            rows = (await db.execute(select(ArticleCounter).where(ArticleCounter.article_id == "drift"))).scalars()
            for row in rows:
                row.read_count = 100
                row.completed_count = 0

        await ctx.runner.run(corrupt)

        rebuilt = await ctx.runner.run(lambda db: ctx.counters(db).rebuild_article_counters("drift"))
        assert rebuilt == {"read_count": 3, "completed_count": 2, "completed_with_perfect_score": 2}

        stats = await ctx.runner.run(lambda db: ctx.counters(db).get_article_statistics("drift"))
        assert stats["read_count"] == 3
        assert stats["completed_count"] == 2
        assert stats["completed_with_perfect_score"] == 2
