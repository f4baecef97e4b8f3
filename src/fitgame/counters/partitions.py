"""Partitioned counters: random-partition increments, summed at read time.

One logical counter is spread over N physical rows so concurrent writers
rarely touch the same row. Increments go to a uniformly random partition;
readers aggregate with SUM().
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.db.models import ArticleCounter, GlobalCounter, UserMetadata
from fitgame.errors import AggregateReconciliationAnomaly
from fitgame.metrics import AnomalyRecorder

logger = logging.getLogger(__name__)

GLOBAL_ENTITY_KEY = "global"


class PartitionSelector:
    """Uniform random choice of a partition key in 1..count."""

    def __init__(self, count: int, rng: random.Random | None = None) -> None:
        if count <= 0:
            msg = "partition count must be a positive integer"
            raise ValueError(msg)
        self.count = count
        self._rng = rng or random.Random()

    def choose(self) -> int:
        return self._rng.randint(1, self.count)

    def keys(self) -> range:
        return range(1, self.count + 1)


@dataclass(frozen=True)
class ArticleDeltas:
    """Signed changes along each counted dimension of an article transition."""

    read: int = 0
    completed: int = 0
    perfect: int = 0

    @property
    def is_zero(self) -> bool:
        return self.read == 0 and self.completed == 0 and self.perfect == 0


def _nonzero(values: dict[str, int]) -> dict[str, int]:
    return {k: v for k, v in values.items() if v}


async def apply_user_deltas(
    db: AsyncSession,
    user_id: str,
    **deltas: int,
) -> None:
    """Atomically add deltas to the user's aggregate row (must already exist)."""
    changes = _nonzero(deltas)
    if not changes:
        return
    columns = {name: getattr(UserMetadata, name) + amount for name, amount in changes.items()}
    await db.execute(
        update(UserMetadata).where(UserMetadata.user_id == user_id).values(**columns)
    )


async def increment_article_partition(
    db: AsyncSession,
    selector: PartitionSelector,
    recorder: AnomalyRecorder,
    article_id: str,
    deltas: ArticleDeltas,
) -> bool:
    """Apply article deltas to one random partition. Returns False on a missing partition."""
    if deltas.is_zero:
        return True
    partition = selector.choose()
    changes = _nonzero({
        "read_count": deltas.read,
        "completed_count": deltas.completed,
        "completed_with_perfect_score": deltas.perfect,
    })
    result = await db.execute(
        update(ArticleCounter)
        .where(ArticleCounter.article_id == article_id, ArticleCounter.partition_key == partition)
        .values(**{name: getattr(ArticleCounter, name) + amount for name, amount in changes.items()})
    )
    if result.rowcount == 0:
        await recorder.record(AggregateReconciliationAnomaly("article_counters", article_id, partition, changes))
        return False
    return True


async def increment_global_partition(
    db: AsyncSession,
    selector: PartitionSelector,
    recorder: AnomalyRecorder,
    **deltas: int,
) -> bool:
    """Apply deltas to one random global partition. Returns False on a missing partition."""
    changes = _nonzero(deltas)
    if not changes:
        return True
    partition = selector.choose()
    result = await db.execute(
        update(GlobalCounter)
        .where(GlobalCounter.partition_key == partition)
        .values(**{name: getattr(GlobalCounter, name) + amount for name, amount in changes.items()})
    )
    if result.rowcount == 0:
        await recorder.record(
            AggregateReconciliationAnomaly("global_counters", GLOBAL_ENTITY_KEY, partition, changes)
        )
        return False
    return True
