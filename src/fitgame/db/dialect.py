"""Dialect-aware INSERT ... ON CONFLICT builders."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.errors import InvariantViolation


def upsert_insert(db: AsyncSession, model: Any) -> Any:
    """Return an INSERT supporting on_conflict_* for the session's dialect."""
    bind = db.bind
    name = bind.dialect.name if bind is not None else None
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise InvariantViolation(f"Conditional upsert is not supported on dialect {name!r}")
