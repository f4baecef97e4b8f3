"""Challenge lifecycle: status derived from the clock, the grace window and counters.

The derivation is evaluated lazily on every read (derive_status) and, for
bulk housekeeping, as three ordered UPDATE statements
(build_reconcile_statements). Both forms take their date boundaries from
lock_cutoff_date() and activation_date() so they cannot drift apart.

Guard clauses, in order:
    1. locked stays locked
    2. start date older than now - duration - grace  -> locked
    3. completed stays completed
       active -> completed once both counters reach the duration
       not_started -> active once the start date has begun anywhere on Earth
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from sqlalchemy import Update, update

from fitgame.db.models import UserChallenge
from fitgame.errors import InvariantViolation
from fitgame.time_utils import ensure_utc, latest_date_on_earth


class ChallengeStatus(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"
    LOCKED = "locked"


@dataclass(frozen=True)
class ChallengeSnapshot:
    """The persisted fields the derivation reads."""

    status: str
    start_date: date
    knowledge_base_completed_count: int = 0
    habits_logged_count: int = 0


@dataclass(frozen=True)
class ReconcileStep:
    name: str
    statement: Update


def lock_cutoff_date(duration_days: int, grace_period_hours: int, now: datetime) -> date:
    """First start date that is still inside the accessible window.

    A start date is locked when the instant now - duration - grace lies
    after its UTC midnight, i.e. when start_date < the returned date.
    """
    threshold = ensure_utc(now) - timedelta(days=duration_days, hours=grace_period_hours)
    if threshold.time() == datetime.min.time():
        return threshold.date()
    return threshold.date() + timedelta(days=1)


def activation_date(now: datetime) -> date:
    """Challenges starting on or before this date have begun somewhere on Earth."""
    return latest_date_on_earth(now)


def is_complete(snapshot: ChallengeSnapshot, duration_days: int) -> bool:
    return (
        snapshot.knowledge_base_completed_count >= duration_days
        and snapshot.habits_logged_count >= duration_days
    )


def _coerce_status(value: str | ChallengeStatus) -> ChallengeStatus:
    try:
        return ChallengeStatus(value)
    except ValueError:
        raise InvariantViolation(f"Invalid or unhandled challenge status: {value!r}") from None


def derive_status(
    snapshot: ChallengeSnapshot,
    duration_days: int,
    grace_period_hours: int,
    now: datetime,
) -> ChallengeStatus:
    """Compute the current status of a user challenge (one evaluation step)."""
    current = _coerce_status(snapshot.status)
    if current is ChallengeStatus.LOCKED:
        return ChallengeStatus.LOCKED

    if snapshot.start_date < lock_cutoff_date(duration_days, grace_period_hours, now):
        return ChallengeStatus.LOCKED

    match current:
        case ChallengeStatus.COMPLETED:
            return ChallengeStatus.COMPLETED
        case ChallengeStatus.ACTIVE:
            if is_complete(snapshot, duration_days):
                return ChallengeStatus.COMPLETED
            return ChallengeStatus.ACTIVE
        case ChallengeStatus.NOT_STARTED:
            if activation_date(now) >= snapshot.start_date:
                return ChallengeStatus.ACTIVE
            return ChallengeStatus.NOT_STARTED
    raise InvariantViolation(f"Invalid or unhandled challenge status: {current!r}")


def settle_status(
    snapshot: ChallengeSnapshot,
    duration_days: int,
    grace_period_hours: int,
    now: datetime,
) -> ChallengeStatus:
    """Apply derive_status until it stops changing.

    A not_started challenge whose counters are already full activates on the
    first step and completes on the second, which is what one run of the
    batch statements produces.
    """
    status = _coerce_status(snapshot.status)
    while True:
        nxt = derive_status(
            ChallengeSnapshot(
                status=status.value,
                start_date=snapshot.start_date,
                knowledge_base_completed_count=snapshot.knowledge_base_completed_count,
                habits_logged_count=snapshot.habits_logged_count,
            ),
            duration_days,
            grace_period_hours,
            now,
        )
        if nxt is status:
            return status
        status = nxt


def build_reconcile_statements(
    duration_days: int,
    grace_period_hours: int,
    now: datetime,
) -> list[ReconcileStep]:
    """The batch form of derive_status for every user challenge of one duration.

    Execute in order inside one transaction: lock, then activate, then complete.
    """
    cutoff = lock_cutoff_date(duration_days, grace_period_hours, now)
    begun = activation_date(now)
    now = ensure_utc(now)
    same_duration = UserChallenge.duration_days == duration_days

    lock_expired = (
        update(UserChallenge)
        .where(
            same_duration,
            UserChallenge.status != ChallengeStatus.LOCKED.value,
            UserChallenge.start_date < cutoff,
        )
        .values(status=ChallengeStatus.LOCKED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    activate_pending = (
        update(UserChallenge)
        .where(
            same_duration,
            UserChallenge.status == ChallengeStatus.NOT_STARTED.value,
            UserChallenge.start_date <= begun,
        )
        .values(status=ChallengeStatus.ACTIVE.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    complete_active = (
        update(UserChallenge)
        .where(
            same_duration,
            UserChallenge.status == ChallengeStatus.ACTIVE.value,
            UserChallenge.knowledge_base_completed_count >= duration_days,
            UserChallenge.habits_logged_count >= duration_days,
        )
        .values(status=ChallengeStatus.COMPLETED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return [
        ReconcileStep("lock_expired", lock_expired),
        ReconcileStep("activate_pending", activate_pending),
        ReconcileStep("complete_active", complete_active),
    ]
