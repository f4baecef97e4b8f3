"""Reaction tallies: one idempotent conditional upsert per user reaction.

The per-user reaction row is written with a single
INSERT ... ON CONFLICT DO UPDATE ... WHERE statement whose RETURNING
clause reports which branch fired. Only an insert or a genuine type flip
touches the parent's two-bucket tally.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy import and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.db.dialect import upsert_insert
from fitgame.db.models import Answer, AnswerReaction, Question, QuestionReaction
from fitgame.errors import InvariantViolation, NotFound
from fitgame.time_utils import ensure_utc

logger = logging.getLogger(__name__)


class ReactionType(str, Enum):
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"

    @property
    def bucket(self) -> str:
        return f"{self.value}_count"

    @property
    def opposite(self) -> "ReactionType":
        if self is ReactionType.HELPFUL:
            return ReactionType.NOT_HELPFUL
        return ReactionType.HELPFUL


class ReactionTarget(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


def _models(target: ReactionTarget):
    """(parent model, reaction model, reaction foreign-key column) for a target."""
    match target:
        case ReactionTarget.QUESTION:
            return Question, QuestionReaction, QuestionReaction.question_id
        case ReactionTarget.ANSWER:
            return Answer, AnswerReaction, AnswerReaction.answer_id
    raise InvariantViolation(f"Unknown reaction target {target!r}")


async def conditional_upsert(
    db: AsyncSession,
    target: ReactionTarget,
    entity_id: str,
    user_id: str,
    reaction_type: ReactionType,
    at: datetime,
) -> UpsertOutcome:
    """Insert the reaction, or overwrite it only when the type differs and `at` is not older.

    The stored revision starts at 1 and grows by one per accepted update,
    so the returned revision tells an insert from an update; no returned
    row means the write was skipped.
    """
    _, model, key = _models(target)
    stmt = upsert_insert(db, model).values(
        {
            key.key: entity_id,
            "user_id": user_id,
            "reaction_type": reaction_type.value,
            "created_at": ensure_utc(at),
            "revision": 1,
        }
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[key, model.user_id],
        set_={
            "reaction_type": stmt.excluded.reaction_type,
            "created_at": stmt.excluded.created_at,
            "revision": model.revision + 1,
        },
        where=and_(
            model.reaction_type != stmt.excluded.reaction_type,
            model.created_at <= stmt.excluded.created_at,
        ),
    ).returning(model.revision)

    revision = (await db.execute(stmt)).scalar_one_or_none()
    if revision is None:
        return UpsertOutcome.SKIPPED
    if revision == 1:
        return UpsertOutcome.INSERTED
    return UpsertOutcome.UPDATED


class ReactionService:
    """Applies reactions to questions and answers and keeps their tallies in step."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def upsert_reaction(
        self,
        target: ReactionTarget,
        entity_id: str,
        user_id: str,
        reaction_type: ReactionType,
        at: datetime,
    ) -> bool:
        """Record the user's reaction. Returns whether any tally changed."""
        parent_model, _, _ = _models(target)
        if await self.db.get(parent_model, entity_id) is None:
            raise NotFound(target.value.capitalize(), entity_id)

        outcome = await conditional_upsert(self.db, target, entity_id, user_id, reaction_type, at)
        match outcome:
            case UpsertOutcome.SKIPPED:
                logger.debug("Reaction by %s on %s %s skipped", user_id, target.value, entity_id)
                return False
            case UpsertOutcome.INSERTED:
                values = {reaction_type.bucket: getattr(parent_model, reaction_type.bucket) + 1}
            case UpsertOutcome.UPDATED:
                old = reaction_type.opposite
                values = {
                    reaction_type.bucket: getattr(parent_model, reaction_type.bucket) + 1,
                    old.bucket: getattr(parent_model, old.bucket) - 1,
                }

        await self.db.execute(
            update(parent_model)
            .where(parent_model.id == entity_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Reaction %s by %s on %s %s: %s",
            reaction_type.value,
            user_id,
            target.value,
            entity_id,
            outcome.value,
        )
        return True

    async def get_tally(self, target: ReactionTarget, entity_id: str) -> dict[str, int]:
        parent_model, _, _ = _models(target)
        entity = await self.db.get(parent_model, entity_id)
        if entity is None:
            raise NotFound(target.value.capitalize(), entity_id)
        await self.db.refresh(entity)
        return {
            "helpful_count": entity.helpful_count,
            "not_helpful_count": entity.not_helpful_count,
        }
