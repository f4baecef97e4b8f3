"""Transaction scoping with bounded retries on lock contention."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitgame.errors import ConcurrencyContention

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available, unique_violation
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03", "23505"}


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    cause = getattr(orig, "__cause__", None)
    code = getattr(cause, "sqlstate", None)
    return str(code) if code else None


def is_contention(exc: DBAPIError) -> bool:
    """Whether the failure is a lock/conflict that a fresh attempt can resolve.

    A unique violation counts: two first-time writers racing on the same
    natural key both miss the locked read, and the loser succeeds on retry.
    """
    code = _sqlstate(exc)
    if code in RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    if "database is locked" in message or "deadlock" in message:
        return True
    return isinstance(exc, IntegrityError) and "unique" in message


class TransactionRunner:
    """Runs a unit of work inside one transaction, retrying on contention.

    Each attempt gets a fresh session; any exception rolls the attempt back
    completely. Domain errors propagate untouched on the first attempt.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._session_factory() as session, session.begin():
                    return await work(session)
            except DBAPIError as exc:
                if not is_contention(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.warning("Giving up after %d contended attempts", attempt)
                    raise ConcurrencyContention(attempt) from exc
                logger.info("Contention on attempt %d, retrying: %s", attempt, exc.orig)
            await asyncio.sleep(self.backoff_seconds * attempt)
        raise ConcurrencyContention(self.max_attempts)
