"""Calendar helpers: UTC day strings and the range of dates current on Earth."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

# Most advanced (UTC+14, Line Islands) and most behind (UTC-12) offsets in use.
LATEST_UTC_OFFSET = timedelta(hours=14)
EARLIEST_UTC_OFFSET = timedelta(hours=-12)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_day_string(dt: datetime | date) -> str:
    """Format as 'YYYY-MM-DD' in UTC."""
    if isinstance(dt, datetime):
        return ensure_utc(dt).date().isoformat()
    return dt.isoformat()


def latest_date_on_earth(instant: datetime) -> date:
    """The calendar date in the most advanced timezone at this instant."""
    return (ensure_utc(instant) + LATEST_UTC_OFFSET).date()


def earliest_date_on_earth(instant: datetime) -> date:
    """The calendar date in the most behind timezone at this instant."""
    return (ensure_utc(instant) + EARLIEST_UTC_OFFSET).date()
