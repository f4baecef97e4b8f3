"""Counter maintenance: partition seeding, statistics reads and repair."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import case, delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.articles.state_machine import ArticleStatus
from fitgame.counters.partitions import PartitionSelector
from fitgame.db.dialect import upsert_insert
from fitgame.db.models import ArticleCounter, GlobalCounter, UserArticleProgress, UserMetadata
from fitgame.time_utils import utc_now

logger = logging.getLogger(__name__)

GLOBAL_FIELDS = (
    "article_read_count",
    "article_completed_count",
    "article_completed_with_perfect_score",
    "challenges_joined",
    "days_logged",
)

ARTICLE_FIELDS = ("read_count", "completed_count", "completed_with_perfect_score")


async def ensure_user_metadata(db: AsyncSession, user_id: str, now: datetime | None = None) -> None:
    """Create the user's aggregate row if missing. Safe under concurrent callers."""
    now = now or utc_now()
    stmt = upsert_insert(db, UserMetadata).values(
        user_id=user_id,
        current_streak_ids={},
        longest_streak_ids={},
        created_at=now,
        updated_at=now,
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=[UserMetadata.user_id]))


async def get_user_metadata(db: AsyncSession, user_id: str) -> UserMetadata | None:
    result = await db.execute(select(UserMetadata).where(UserMetadata.user_id == user_id))
    return result.scalar_one_or_none()


class CounterService:
    """Seeds, reads and repairs the partitioned counters."""

    def __init__(
        self,
        db: AsyncSession,
        article_partitions: PartitionSelector,
        global_partitions: PartitionSelector,
    ) -> None:
        self.db = db
        self.article_partitions = article_partitions
        self.global_partitions = global_partitions

    # --- Seeding ---

    async def ensure_partitions(self, article_ids: Iterable[str] = ()) -> None:
        """Seed the global partitions and those of the given articles."""
        await self.ensure_global_partitions()
        await self.ensure_article_partitions(article_ids)

    async def ensure_global_partitions(self) -> None:
        """Insert any missing global partition rows (idempotent)."""
        rows = [{"partition_key": key} for key in self.global_partitions.keys()]
        stmt = upsert_insert(self.db, GlobalCounter).values(rows)
        await self.db.execute(stmt.on_conflict_do_nothing(index_elements=[GlobalCounter.partition_key]))

    async def ensure_article_partitions(self, article_ids: Iterable[str]) -> None:
        """Insert any missing partition rows for the given articles (idempotent)."""
        rows = [
            {"article_id": article_id, "partition_key": key}
            for article_id in article_ids
            for key in self.article_partitions.keys()
        ]
        if not rows:
            return
        stmt = upsert_insert(self.db, ArticleCounter).values(rows)
        await self.db.execute(
            stmt.on_conflict_do_nothing(index_elements=[ArticleCounter.article_id, ArticleCounter.partition_key])
        )

    # --- Reads ---

    async def get_global_statistics(self) -> dict[str, int]:
        """Sum every global partition."""
        columns = [func.coalesce(func.sum(getattr(GlobalCounter, name)), 0).label(name) for name in GLOBAL_FIELDS]
        row = (await self.db.execute(select(*columns))).one()
        return {name: int(getattr(row, name)) for name in GLOBAL_FIELDS}

    async def get_article_statistics(self, article_id: str) -> dict[str, object]:
        """Sum an article's partitions. Zeros when the article has no partitions."""
        columns = [func.coalesce(func.sum(getattr(ArticleCounter, name)), 0).label(name) for name in ARTICLE_FIELDS]
        row = (
            await self.db.execute(select(*columns).where(ArticleCounter.article_id == article_id))
        ).one()
        stats: dict[str, object] = {"article_id": article_id}
        stats.update({name: int(getattr(row, name)) for name in ARTICLE_FIELDS})
        return stats

    # --- Repair ---

    async def rebuild_article_counters(self, article_id: str) -> dict[str, int]:
        """Recompute an article's counters from per-user progress rows.

        The per-user rows are the record of truth; this rewrites the
        partitions so partition 1 holds the totals and the rest hold zero.
        Run inside a transaction.
        """
        completed = UserArticleProgress.status == ArticleStatus.COMPLETED.value
        totals = (
            await self.db.execute(
                select(
                    func.count(UserArticleProgress.id).label("read_count"),
                    func.coalesce(func.sum(case((completed, 1), else_=0)), 0).label("completed_count"),
                    func.coalesce(
                        func.sum(case((completed & UserArticleProgress.quiz_all_correct.is_(True), 1), else_=0)),
                        0,
                    ).label("completed_with_perfect_score"),
                ).where(UserArticleProgress.article_id == article_id)
            )
        ).one()

        # Lock existing partitions so concurrent increments wait for the rewrite.
        await self.db.execute(
            select(ArticleCounter.partition_key).where(ArticleCounter.article_id == article_id).with_for_update()
        )
        await self.db.execute(
            delete(ArticleCounter)
            .where(ArticleCounter.article_id == article_id)
            .execution_options(synchronize_session=False)
        )
        rebuilt = {name: int(getattr(totals, name)) for name in ARTICLE_FIELDS}
        empty = dict.fromkeys(ARTICLE_FIELDS, 0)
        rows = [
            {"article_id": article_id, "partition_key": key, **(rebuilt if key == 1 else empty)}
            for key in self.article_partitions.keys()
        ]
        await self.db.execute(insert(ArticleCounter).values(rows))
        logger.info("Rebuilt counters for article %s: %s", article_id, rebuilt)
        return rebuilt
