"""Streak continuity: new, extended or broken, from the last two days of logs.

Pure functions over dates and an optional open streak; the service owns the
reads, the row locks and the writes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

ALL_HABITS_KEY = "all"


class StreakAction(str, Enum):
    NO_CHANGE = "no_change"
    START = "start"
    EXTEND = "extend"
    RESTART = "restart"


@dataclass(frozen=True)
class OpenStreak:
    started_date: date
    length: int

    @property
    def last_day(self) -> date:
        return self.started_date + timedelta(days=self.length - 1)


@dataclass(frozen=True)
class StreakDecision:
    action: StreakAction
    current_length: int
    started_date: date | None = None
    # Set on RESTART: the last day covered by the streak being closed.
    closed_ended_date: date | None = None

    @property
    def is_new_streak(self) -> bool:
        return self.action in (StreakAction.START, StreakAction.RESTART)

    @property
    def is_extended(self) -> bool:
        return self.action is StreakAction.EXTEND


def decide(
    today: date,
    today_done: bool,
    yesterday_done: bool,
    open_streak: OpenStreak | None,
) -> StreakDecision:
    """Decide what today's log does to the habit's open streak."""
    if not today_done:
        return StreakDecision(StreakAction.NO_CHANGE, open_streak.length if open_streak else 0)

    if open_streak is None:
        return StreakDecision(StreakAction.START, 1, started_date=today)

    # Repeat log for a day the streak already covers.
    if today <= open_streak.last_day:
        return StreakDecision(StreakAction.NO_CHANGE, open_streak.length, started_date=open_streak.started_date)

    if yesterday_done and open_streak.last_day == today - timedelta(days=1):
        return StreakDecision(
            StreakAction.EXTEND,
            open_streak.length + 1,
            started_date=open_streak.started_date,
        )

    return StreakDecision(
        StreakAction.RESTART,
        1,
        started_date=today,
        closed_ended_date=open_streak.last_day,
    )


def all_done(entries: Mapping[str, bool], tracked_habits: Iterable[str]) -> bool:
    """The `all` pseudo-habit: every tracked habit is marked done."""
    habits = list(tracked_habits)
    return bool(habits) and all(entries.get(habit) is True for habit in habits)
