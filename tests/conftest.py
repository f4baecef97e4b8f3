"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fitgame.config import Settings
from fitgame.database import Database
from fitgame.dependencies import AppContext
from fitgame.main import create_app

TRACKED_HABITS = ["workout_completed", "ate_clean", "slept_well", "hydrated"]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        log_format="console",
        article_counter_partitions=4,
        global_counter_partitions=4,
        transaction_max_attempts=5,
        transaction_retry_backoff_seconds=0.01,
        challenge_grace_period_hours=48,
        tracked_habits=TRACKED_HABITS,
    )


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """A fresh SQLite database with every table created from the ORM metadata."""
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def ctx(settings: Settings, database: Database) -> AsyncGenerator[AppContext, None]:
    """Process context with the global counter partitions seeded."""
    context = AppContext.build(settings, database=database)
    await context.runner.run(lambda db: context.counters(db).ensure_global_partitions())
    yield context


@pytest_asyncio.fixture
async def client(settings: Settings, ctx: AppContext) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app, wired to the test context."""
    app = create_app(settings)
    app.state.context = ctx
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
