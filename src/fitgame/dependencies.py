"""Process-wide wiring: one AppContext per process, passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass

import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.articles.service import ArticleProgressService
from fitgame.challenges.service import ChallengeService
from fitgame.config import Settings
from fitgame.counters.partitions import PartitionSelector
from fitgame.counters.service import CounterService
from fitgame.database import Database
from fitgame.metrics import AnomalyRecorder
from fitgame.reactions.tally import ReactionService
from fitgame.streaks.service import StreakService
from fitgame.transactions import TransactionRunner


@dataclass
class AppContext:
    """Everything a request handler or job needs to build a service."""

    settings: Settings
    database: Database
    runner: TransactionRunner
    article_partitions: PartitionSelector
    global_partitions: PartitionSelector
    recorder: AnomalyRecorder
    redis: aioredis.Redis | None = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        database: Database | None = None,
        redis: aioredis.Redis | None = None,
    ) -> AppContext:
        database = database or Database(settings.database_url)
        return cls(
            settings=settings,
            database=database,
            runner=TransactionRunner(
                database.session_factory,
                max_attempts=settings.transaction_max_attempts,
                backoff_seconds=settings.transaction_retry_backoff_seconds,
            ),
            article_partitions=PartitionSelector(settings.article_counter_partitions),
            global_partitions=PartitionSelector(settings.global_counter_partitions),
            recorder=AnomalyRecorder(redis),
            redis=redis,
        )

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
        await self.database.dispose()

    # --- Service factories (one service per transaction) ---

    def articles(self, db: AsyncSession) -> ArticleProgressService:
        return ArticleProgressService(db, self.article_partitions, self.global_partitions, self.recorder)

    def challenges(self, db: AsyncSession) -> ChallengeService:
        return ChallengeService(
            db,
            self.global_partitions,
            self.recorder,
            grace_period_hours=self.settings.challenge_grace_period_hours,
        )

    def streaks(self, db: AsyncSession) -> StreakService:
        return StreakService(db, self.settings.tracked_habits, self.global_partitions, self.recorder)

    def reactions(self, db: AsyncSession) -> ReactionService:
        return ReactionService(db)

    def counters(self, db: AsyncSession) -> CounterService:
        return CounterService(db, self.article_partitions, self.global_partitions)


def connect_redis(url: str) -> aioredis.Redis:
    return aioredis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


def get_context(request: Request) -> AppContext:
    """FastAPI dependency: the context built in the application lifespan."""
    return request.app.state.context
