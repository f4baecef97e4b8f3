"""Article progress service: locked read, state machine step, persisted deltas."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.articles.state_machine import (
    ArticleStatus,
    ArticleTransition,
    ProgressSnapshot,
    QuizAnswer,
    TransitionDetails,
    next_snapshot,
)
from fitgame.counters.partitions import (
    ArticleDeltas,
    PartitionSelector,
    apply_user_deltas,
    increment_article_partition,
    increment_global_partition,
)
from fitgame.counters.service import ensure_user_metadata
from fitgame.db.models import UserArticleProgress
from fitgame.errors import NotFound
from fitgame.metrics import AnomalyRecorder
from fitgame.time_utils import ensure_utc

logger = logging.getLogger(__name__)


def _utc_or_none(value):
    return ensure_utc(value) if value is not None else None


def snapshot_from_row(row: UserArticleProgress) -> ProgressSnapshot:
    answers = None
    if row.quiz_answers is not None:
        answers = tuple(
            QuizAnswer(
                question_id=a["question_id"],
                correct=bool(a["correct"]),
                hint_used=bool(a.get("hint_used", False)),
            )
            for a in row.quiz_answers
        )
    return ProgressSnapshot(
        status=ArticleStatus(row.status),
        first_read_at=ensure_utc(row.first_read_at),
        last_read_at=ensure_utc(row.last_read_at),
        quiz_attempts=row.quiz_attempts,
        quiz_all_correct=row.quiz_all_correct,
        quiz_answers=answers,
        quiz_started_at=_utc_or_none(row.quiz_started_at),
        quiz_first_attempted_at=_utc_or_none(row.quiz_first_attempted_at),
        quiz_completed_at=_utc_or_none(row.quiz_completed_at),
    )


def _write_snapshot(row: UserArticleProgress, snapshot: ProgressSnapshot) -> None:
    """Copy mutable fields onto the row. id, created_at and first_read_at are never touched."""
    row.status = snapshot.status.value
    row.last_read_at = snapshot.last_read_at
    row.quiz_attempts = snapshot.quiz_attempts
    row.quiz_all_correct = snapshot.quiz_all_correct
    row.quiz_answers = (
        [
            {"question_id": a.question_id, "correct": a.correct, "hint_used": a.hint_used}
            for a in snapshot.quiz_answers
        ]
        if snapshot.quiz_answers is not None
        else None
    )
    row.quiz_started_at = snapshot.quiz_started_at
    row.quiz_first_attempted_at = snapshot.quiz_first_attempted_at
    row.quiz_completed_at = snapshot.quiz_completed_at


def compute_deltas(before: ProgressSnapshot | None, after: ProgressSnapshot) -> ArticleDeltas:
    """Counted differences between two snapshots of the same progress row."""
    was_completed = before.is_completed if before is not None else False
    was_perfect = before.is_perfect if before is not None else False
    return ArticleDeltas(
        read=1 if before is None else 0,
        completed=int(after.is_completed) - int(was_completed),
        perfect=int(after.is_perfect) - int(was_perfect),
    )


class ArticleProgressService:
    """Applies article transitions inside the caller's transaction."""

    def __init__(
        self,
        db: AsyncSession,
        article_partitions: PartitionSelector,
        global_partitions: PartitionSelector,
        recorder: AnomalyRecorder,
    ) -> None:
        self.db = db
        self.article_partitions = article_partitions
        self.global_partitions = global_partitions
        self.recorder = recorder

    async def _lock_progress(self, user_id: str, article_id: str) -> UserArticleProgress | None:
        result = await self.db.execute(
            select(UserArticleProgress)
            .where(
                UserArticleProgress.user_id == user_id,
                UserArticleProgress.article_id == article_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def apply_transition(
        self,
        user_id: str,
        article_id: str,
        transition: ArticleTransition,
        details: TransitionDetails,
    ) -> ArticleStatus:
        """Move one user's progress on one article and update the aggregates.

        Raises IllegalTransition when the move is not allowed from the
        current status and NotFound when no row exists and the transition
        cannot create one. Nothing is written in either case.
        """
        row = await self._lock_progress(user_id, article_id)
        before = snapshot_from_row(row) if row is not None else None
        after = next_snapshot(before, transition, details)

        now = details.now
        if row is None:
            row = UserArticleProgress(
                user_id=user_id,
                article_id=article_id,
                first_read_at=after.first_read_at,
                created_at=now,
            )
            _write_snapshot(row, after)
            row.updated_at = now
            self.db.add(row)
        else:
            _write_snapshot(row, after)
            row.updated_at = now
        await self.db.flush()

        deltas = compute_deltas(before, after)
        if not deltas.is_zero:
            await ensure_user_metadata(self.db, user_id, now)
            await apply_user_deltas(
                self.db,
                user_id,
                articles_read=deltas.read,
                articles_completed=deltas.completed,
                articles_completed_with_perfect_score=deltas.perfect,
            )
            await increment_article_partition(
                self.db, self.article_partitions, self.recorder, article_id, deltas
            )
            await increment_global_partition(
                self.db,
                self.global_partitions,
                self.recorder,
                article_read_count=deltas.read,
                article_completed_count=deltas.completed,
                article_completed_with_perfect_score=deltas.perfect,
            )

        logger.info(
            "Article %s for user %s: %s -> %s",
            article_id,
            user_id,
            before.status.value if before else None,
            after.status.value,
        )
        return after.status

    async def get_progress(self, user_id: str, article_id: str) -> UserArticleProgress:
        result = await self.db.execute(
            select(UserArticleProgress).where(
                UserArticleProgress.user_id == user_id,
                UserArticleProgress.article_id == article_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("User article progress", f"{user_id}/{article_id}")
        return row

    async def list_progress(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[UserArticleProgress], int]:
        """Return one page of the user's progress rows, most recently updated first."""
        total = await self.db.scalar(
            select(func.count(UserArticleProgress.id)).where(UserArticleProgress.user_id == user_id)
        )
        result = await self.db.execute(
            select(UserArticleProgress)
            .where(UserArticleProgress.user_id == user_id)
            .order_by(UserArticleProgress.updated_at.desc(), UserArticleProgress.article_id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
