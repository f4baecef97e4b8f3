"""Integration tests for idempotent reaction tallies."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fitgame.db.models import Answer, Question
from fitgame.errors import NotFound
from fitgame.reactions.tally import ReactionTarget, ReactionType, UpsertOutcome, conditional_upsert

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
HELPFUL = ReactionType.HELPFUL
NOT_HELPFUL = ReactionType.NOT_HELPFUL


async def seed_thread(ctx) -> tuple[str, str]:
    async def work(db):
        question = Question(user_id="asker", body="How much water per day?", created_at=T0)
        db.add(question)
        await db.flush()
        answer = Answer(question_id=question.id, user_id="expert", body="Around two litres.", created_at=T0)
        db.add(answer)
        await db.flush()
        return question.id, answer.id

    return await ctx.runner.run(work)


async def react(ctx, target, entity_id, user_id, reaction_type, at):
    return await ctx.runner.run(
        lambda db: ctx.reactions(db).upsert_reaction(target, entity_id, user_id, reaction_type, at)
    )


async def tally(ctx, target, entity_id):
    return await ctx.runner.run(lambda db: ctx.reactions(db).get_tally(target, entity_id))


class TestAnswerReactions:
    """helpful, helpful again, then not_helpful."""

    @pytest.mark.asyncio
    async def test_repeat_is_noop_and_flip_moves_one_unit(self, ctx):
        _, answer_id = await seed_thread(ctx)

        assert await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", HELPFUL, T0) is True
        assert await tally(ctx, ReactionTarget.ANSWER, answer_id) == {"helpful_count": 1, "not_helpful_count": 0}

        assert await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", HELPFUL, T0 + timedelta(minutes=1)) is False
        assert await tally(ctx, ReactionTarget.ANSWER, answer_id) == {"helpful_count": 1, "not_helpful_count": 0}

        flipped = await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", NOT_HELPFUL, T0 + timedelta(minutes=2))
        assert flipped is True
        assert await tally(ctx, ReactionTarget.ANSWER, answer_id) == {"helpful_count": 0, "not_helpful_count": 1}

    @pytest.mark.asyncio
    async def test_stale_reaction_is_ignored(self, ctx):
        _, answer_id = await seed_thread(ctx)
        await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", NOT_HELPFUL, T0 + timedelta(hours=1))

        changed = await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", HELPFUL, T0)
        assert changed is False
        assert await tally(ctx, ReactionTarget.ANSWER, answer_id) == {"helpful_count": 0, "not_helpful_count": 1}

    @pytest.mark.asyncio
    async def test_exact_replay_changes_tally_once(self, ctx):
        _, answer_id = await seed_thread(ctx)
        for _ in range(3):
            await react(ctx, ReactionTarget.ANSWER, answer_id, "user-1", HELPFUL, T0)
        assert await tally(ctx, ReactionTarget.ANSWER, answer_id) == {"helpful_count": 1, "not_helpful_count": 0}

    @pytest.mark.asyncio
    async def test_tally_never_exceeds_distinct_users(self, ctx):
        _, answer_id = await seed_thread(ctx)
        users = [f"user-{i}" for i in range(5)]
        for minute, user in enumerate(users):
            await react(ctx, ReactionTarget.ANSWER, answer_id, user, HELPFUL, T0 + timedelta(minutes=minute))
            await react(ctx, ReactionTarget.ANSWER, answer_id, user, NOT_HELPFUL, T0 + timedelta(minutes=minute + 10))
        await react(ctx, ReactionTarget.ANSWER, answer_id, users[0], HELPFUL, T0 + timedelta(hours=1))

        counts = await tally(ctx, ReactionTarget.ANSWER, answer_id)
        assert counts == {"helpful_count": 1, "not_helpful_count": 4}


class TestQuestionReactions:
    @pytest.mark.asyncio
    async def test_question_tally(self, ctx):
        question_id, _ = await seed_thread(ctx)
        await react(ctx, ReactionTarget.QUESTION, question_id, "user-1", HELPFUL, T0)
        await react(ctx, ReactionTarget.QUESTION, question_id, "user-2", NOT_HELPFUL, T0)
        assert await tally(ctx, ReactionTarget.QUESTION, question_id) == {"helpful_count": 1, "not_helpful_count": 1}

    @pytest.mark.asyncio
    async def test_missing_question_is_not_found(self, ctx):
        with pytest.raises(NotFound):
            await react(ctx, ReactionTarget.QUESTION, "missing", "user-1", HELPFUL, T0)


class TestConditionalUpsert:
    """The storage primitive reports which branch fired."""

    @pytest.mark.asyncio
    async def test_outcomes(self, ctx):
        question_id, _ = await seed_thread(ctx)

        async def upsert(reaction_type, at):
            return await ctx.runner.run(
                lambda db: conditional_upsert(db, ReactionTarget.QUESTION, question_id, "user-1", reaction_type, at)
            )

        assert await upsert(HELPFUL, T0) is UpsertOutcome.INSERTED
        assert await upsert(HELPFUL, T0) is UpsertOutcome.SKIPPED
        assert await upsert(NOT_HELPFUL, T0 - timedelta(seconds=1)) is UpsertOutcome.SKIPPED
        assert await upsert(NOT_HELPFUL, T0) is UpsertOutcome.UPDATED
        assert await upsert(HELPFUL, T0 + timedelta(seconds=1)) is UpsertOutcome.UPDATED
