"""Streak service: daily habit logs, streak history and longest-streak pointers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.counters.partitions import (
    PartitionSelector,
    apply_user_deltas,
    increment_global_partition,
)
from fitgame.counters.service import ensure_user_metadata
from fitgame.db.models import StreakHistory, StreakLog, UserMetadata
from fitgame.errors import IllegalTransition
from fitgame.metrics import AnomalyRecorder
from fitgame.streaks.calculator import (
    ALL_HABITS_KEY,
    OpenStreak,
    StreakAction,
    StreakDecision,
    all_done,
    decide,
)
from fitgame.time_utils import latest_date_on_earth, utc_day_string, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakResult:
    streak_type: str
    is_new_streak: bool
    is_extended: bool
    current_length: int


@dataclass(frozen=True)
class HabitActivityResult:
    habit: StreakResult
    all_habits: StreakResult
    first_log_of_day: bool


class StreakService:
    """Records habit activity and keeps StreakHistory consistent with the logs."""

    def __init__(
        self,
        db: AsyncSession,
        tracked_habits: Iterable[str],
        global_partitions: PartitionSelector,
        recorder: AnomalyRecorder,
    ) -> None:
        self.db = db
        self.tracked_habits = list(tracked_habits)
        self.global_partitions = global_partitions
        self.recorder = recorder

    async def _lock_log(self, user_id: str, day: date) -> StreakLog | None:
        result = await self.db.execute(
            select(StreakLog)
            .where(StreakLog.user_id == user_id, StreakLog.date_utc == utc_day_string(day))
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _entries_for(self, user_id: str, day: date) -> dict[str, bool]:
        entries = await self.db.scalar(
            select(StreakLog.entries).where(
                StreakLog.user_id == user_id,
                StreakLog.date_utc == utc_day_string(day),
            )
        )
        return dict(entries or {})

    async def _lock_open_streak(self, user_id: str, streak_type: str) -> StreakHistory | None:
        result = await self.db.execute(
            select(StreakHistory)
            .where(
                StreakHistory.user_id == user_id,
                StreakHistory.streak_type == streak_type,
                StreakHistory.ended_date.is_(None),
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def record_habit_activity(
        self,
        user_id: str,
        day: date,
        habit_key: str,
        done: bool,
        now: datetime | None = None,
    ) -> HabitActivityResult:
        """Mark a habit done (or not) for a UTC day and update both affected streaks."""
        if habit_key not in self.tracked_habits:
            raise IllegalTransition("LOG_HABIT", None, f"unknown habit {habit_key!r}")
        now = now or utc_now()
        if day > latest_date_on_earth(now):
            raise IllegalTransition("LOG_HABIT", None, f"cannot log habits for future date {day}")

        log = await self._lock_log(user_id, day)
        first_log_of_day = log is None
        if log is None:
            log = StreakLog(
                user_id=user_id,
                date_utc=utc_day_string(day),
                entries={},
                created_at=now,
            )
            self.db.add(log)

        entries = dict(log.entries or {})
        entries[habit_key] = done
        entries[ALL_HABITS_KEY] = all_done(entries, self.tracked_habits)
        log.entries = entries
        log.updated_at = now
        await self.db.flush()

        yesterday = await self._entries_for(user_id, day - timedelta(days=1))

        await ensure_user_metadata(self.db, user_id, now)
        metadata = (
            await self.db.execute(
                select(UserMetadata).where(UserMetadata.user_id == user_id).with_for_update()
            )
        ).scalar_one()

        habit_result = await self._apply(
            metadata, user_id, habit_key, day, entries[habit_key], yesterday.get(habit_key) is True, now
        )
        all_result = await self._apply(
            metadata,
            user_id,
            ALL_HABITS_KEY,
            day,
            entries[ALL_HABITS_KEY],
            yesterday.get(ALL_HABITS_KEY) is True,
            now,
        )

        if metadata.last_activity_date is None or metadata.last_activity_date < day:
            metadata.last_activity_date = day
        metadata.updated_at = now
        await self.db.flush()

        if first_log_of_day:
            await apply_user_deltas(self.db, user_id, days_logged=1)
            await increment_global_partition(self.db, self.global_partitions, self.recorder, days_logged=1)

        return HabitActivityResult(habit=habit_result, all_habits=all_result, first_log_of_day=first_log_of_day)

    async def _apply(
        self,
        metadata: UserMetadata,
        user_id: str,
        streak_type: str,
        day: date,
        today_done: bool,
        yesterday_done: bool,
        now: datetime,
    ) -> StreakResult:
        open_row = await self._lock_open_streak(user_id, streak_type)
        open_streak = (
            OpenStreak(started_date=open_row.started_date, length=open_row.streak_length)
            if open_row is not None
            else None
        )
        decision = decide(day, today_done, yesterday_done, open_streak)
        current = await self._persist(user_id, streak_type, decision, open_row, now)
        if current is not None:
            await self._update_pointers(metadata, streak_type, current)

        if decision.action is not StreakAction.NO_CHANGE:
            logger.info(
                "Streak %s for user %s: %s (length %d)",
                streak_type,
                user_id,
                decision.action.value,
                decision.current_length,
            )
        return StreakResult(
            streak_type=streak_type,
            is_new_streak=decision.is_new_streak,
            is_extended=decision.is_extended,
            current_length=decision.current_length,
        )

    async def _persist(
        self,
        user_id: str,
        streak_type: str,
        decision: StreakDecision,
        open_row: StreakHistory | None,
        now: datetime,
    ) -> StreakHistory | None:
        """Write the decision; return the open row it leaves behind, if it changed."""
        match decision.action:
            case StreakAction.NO_CHANGE:
                return None
            case StreakAction.EXTEND:
                open_row.streak_length = decision.current_length
                await self.db.flush()
                return open_row
            case StreakAction.RESTART:
                open_row.ended_date = decision.closed_ended_date
                # The partial unique index allows one open row: close before opening.
                await self.db.flush()
            case StreakAction.START:
                pass

        row = StreakHistory(
            user_id=user_id,
            streak_type=streak_type,
            streak_length=decision.current_length,
            started_date=decision.started_date,
            ended_date=None,
            created_at=now,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def _update_pointers(
        self,
        metadata: UserMetadata,
        streak_type: str,
        current: StreakHistory,
    ) -> None:
        current_ids = dict(metadata.current_streak_ids or {})
        current_ids[streak_type] = current.id
        metadata.current_streak_ids = current_ids

        longest_ids = dict(metadata.longest_streak_ids or {})
        longest_id = longest_ids.get(streak_type)
        longest = await self.db.get(StreakHistory, longest_id) if longest_id else None
        if longest is None or current.streak_length > longest.streak_length:
            longest_ids[streak_type] = current.id
            metadata.longest_streak_ids = longest_ids

    async def get_current_streaks(self, user_id: str, today: date) -> dict[str, int]:
        """Length of the running streak per habit; 0 once a streak has lapsed."""
        result = await self.db.execute(
            select(StreakHistory).where(
                StreakHistory.user_id == user_id,
                StreakHistory.ended_date.is_(None),
            )
        )
        streaks = dict.fromkeys([*self.tracked_habits, ALL_HABITS_KEY], 0)
        for row in result.scalars():
            open_streak = OpenStreak(row.started_date, row.streak_length)
            if open_streak.last_day >= today - timedelta(days=1):
                streaks[row.streak_type] = row.streak_length
        return streaks

    async def get_longest_streaks(self, user_id: str) -> dict[str, int]:
        metadata = await self.db.get(UserMetadata, user_id)
        if metadata is None:
            return {}
        longest: dict[str, int] = {}
        for streak_type, history_id in (metadata.longest_streak_ids or {}).items():
            row = await self.db.get(StreakHistory, history_id)
            if row is not None:
                longest[streak_type] = row.streak_length
        return longest
