"""Challenge membership, progress and status reconciliation."""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.challenges.lifecycle import (
    ChallengeSnapshot,
    ChallengeStatus,
    build_reconcile_statements,
    derive_status,
)
from fitgame.counters.partitions import (
    PartitionSelector,
    apply_user_deltas,
    increment_global_partition,
)
from fitgame.counters.service import ensure_user_metadata
from fitgame.db.models import Challenge, ChallengeSubscriber, UserChallenge
from fitgame.errors import IllegalTransition, NotFound
from fitgame.metrics import AnomalyRecorder
from fitgame.time_utils import earliest_date_on_earth

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_HOURS = 48


def snapshot_of(row: UserChallenge) -> ChallengeSnapshot:
    return ChallengeSnapshot(
        status=row.status,
        start_date=row.start_date,
        knowledge_base_completed_count=row.knowledge_base_completed_count,
        habits_logged_count=row.habits_logged_count,
    )


class ChallengeService:
    """Join/leave, progress recording and lazy plus batch status derivation."""

    def __init__(
        self,
        db: AsyncSession,
        global_partitions: PartitionSelector,
        recorder: AnomalyRecorder,
        grace_period_hours: int = DEFAULT_GRACE_PERIOD_HOURS,
    ) -> None:
        self.db = db
        self.global_partitions = global_partitions
        self.recorder = recorder
        self.grace_period_hours = grace_period_hours

    def derive(self, row: UserChallenge, now: datetime) -> ChallengeStatus:
        return derive_status(snapshot_of(row), row.duration_days, self.grace_period_hours, now)

    # --- Challenges ---

    async def create_challenge(self, name: str, duration_days: int, now: datetime) -> Challenge:
        if duration_days <= 0:
            raise ValueError("duration_days must be positive")
        challenge = Challenge(
            name=name,
            duration_days=duration_days,
            members_count=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(challenge)
        await self.db.flush()
        logger.info("Created challenge %s (%d days)", challenge.id, duration_days)
        return challenge

    async def get_challenge(self, challenge_id: str) -> Challenge:
        challenge = await self.db.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFound("Challenge", challenge_id)
        return challenge

    # --- Membership ---

    async def join(
        self,
        user_id: str,
        challenge_id: str,
        start_date: date,
        now: datetime,
    ) -> UserChallenge:
        """Subscribe the user and open a new user challenge starting on start_date."""
        if start_date < earliest_date_on_earth(now):
            raise IllegalTransition("JOIN", None, f"start date {start_date} has already passed everywhere")

        challenge = await self._lock_challenge(challenge_id, now)

        existing = await self.db.execute(
            select(UserChallenge)
            .where(
                UserChallenge.user_id == user_id,
                UserChallenge.challenge_id == challenge_id,
                UserChallenge.status != ChallengeStatus.LOCKED.value,
            )
            .with_for_update()
        )
        for row in existing.scalars():
            status = self.derive(row, now)
            if status is not ChallengeStatus.LOCKED:
                raise IllegalTransition("JOIN", status.value, "user already has an open run of this challenge")
            row.status = status.value
            row.updated_at = now

        subscribed = await self.db.scalar(
            select(ChallengeSubscriber.id).where(
                ChallengeSubscriber.challenge_id == challenge_id,
                ChallengeSubscriber.user_id == user_id,
            )
        )
        if subscribed is None:
            self.db.add(ChallengeSubscriber(challenge_id=challenge_id, user_id=user_id, joined_at=now))
            await self._add_members(challenge_id, 1, now)

        user_challenge = UserChallenge(
            user_id=user_id,
            challenge_id=challenge_id,
            start_date=start_date,
            duration_days=challenge.duration_days,
            status=ChallengeStatus.NOT_STARTED.value,
            knowledge_base_completed_count=0,
            habits_logged_count=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(user_challenge)
        await self.db.flush()

        await ensure_user_metadata(self.db, user_id, now)
        await apply_user_deltas(self.db, user_id, challenges_joined=1)
        await increment_global_partition(self.db, self.global_partitions, self.recorder, challenges_joined=1)
        logger.info("User %s joined challenge %s starting %s", user_id, challenge_id, start_date)
        return user_challenge

    async def _lock_challenge(self, challenge_id: str, now: datetime) -> Challenge:
        """Write-lock the challenge row so joins for it run one at a time (an UPDATE also locks on SQLite)."""
        result = await self.db.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id)
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("Challenge", challenge_id)
        return await self.get_challenge(challenge_id)

    async def leave(self, user_id: str, challenge_id: str, now: datetime) -> bool:
        """Remove the subscription. Returns False when the user was not subscribed."""
        result = await self.db.execute(
            delete(ChallengeSubscriber).where(
                ChallengeSubscriber.challenge_id == challenge_id,
                ChallengeSubscriber.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            return False
        await self._add_members(challenge_id, -1, now)
        logger.info("User %s left challenge %s", user_id, challenge_id)
        return True

    async def _add_members(self, challenge_id: str, amount: int, now: datetime) -> None:
        await self.db.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id)
            .values(members_count=Challenge.members_count + amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    # --- User challenges ---

    async def get_user_challenge(
        self,
        user_id: str,
        user_challenge_id: str,
        now: datetime,
    ) -> tuple[UserChallenge, ChallengeStatus]:
        """Return the row and its status derived at `now` (nothing is written)."""
        result = await self.db.execute(
            select(UserChallenge).where(
                UserChallenge.id == user_challenge_id,
                UserChallenge.user_id == user_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("User challenge", user_challenge_id)
        return row, self.derive(row, now)

    async def list_user_challenges(
        self,
        user_id: str,
        now: datetime,
    ) -> list[tuple[UserChallenge, ChallengeStatus]]:
        result = await self.db.execute(
            select(UserChallenge)
            .where(UserChallenge.user_id == user_id)
            .order_by(UserChallenge.start_date.desc())
        )
        return [(row, self.derive(row, now)) for row in result.scalars()]

    async def record_progress(
        self,
        user_id: str,
        user_challenge_id: str,
        now: datetime,
        knowledge_base: int = 0,
        habits: int = 0,
    ) -> UserChallenge:
        """Add to the completion counters of a running challenge and persist its new status."""
        if knowledge_base < 0 or habits < 0:
            raise ValueError("progress counters only move forward")

        result = await self.db.execute(
            select(UserChallenge)
            .where(
                UserChallenge.id == user_challenge_id,
                UserChallenge.user_id == user_id,
            )
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("User challenge", user_challenge_id)

        status = self.derive(row, now)
        if status in (ChallengeStatus.LOCKED, ChallengeStatus.NOT_STARTED):
            raise IllegalTransition("RECORD_PROGRESS", status.value, "challenge is not running")

        row.status = status.value
        row.knowledge_base_completed_count += knowledge_base
        row.habits_logged_count += habits
        row.status = self.derive(row, now).value
        row.updated_at = now
        await self.db.flush()
        return row

    # --- Batch reconciliation ---

    async def reconcile(self, now: datetime) -> dict[str, int]:
        """Run the lock/activate/complete statements for every duration in use.

        Must run inside one transaction; returns affected row counts per step.
        """
        durations = (
            await self.db.execute(select(UserChallenge.duration_days).distinct())
        ).scalars().all()

        counts = {"lock_expired": 0, "activate_pending": 0, "complete_active": 0}
        for duration in sorted(durations):
            for step in build_reconcile_statements(duration, self.grace_period_hours, now):
                result = await self.db.execute(step.statement)
                counts[step.name] += result.rowcount
        logger.info("Reconciled challenge statuses for %d durations: %s", len(durations), counts)
        return counts
