"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fitgame.articles.router import router as articles_router
from fitgame.challenges.router import router as challenges_router
from fitgame.config import Settings, get_settings
from fitgame.dependencies import AppContext, connect_redis
from fitgame.health.router import router as health_router
from fitgame.middleware import setup_middleware
from fitgame.reactions.router import router as reactions_router
from fitgame.streaks.router import router as streaks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the process context on startup and release it on shutdown."""
    settings: Settings = app.state.settings
    ctx = AppContext.build(settings, redis=connect_redis(settings.redis_url))
    app.state.context = ctx

    # Seed the global counter partitions (idempotent)
    try:
        await ctx.runner.run(lambda db: ctx.counters(db).ensure_global_partitions())
    except Exception:
        logger.warning("Global partition seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await ctx.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Fitgame Progress API",
        description="Article progress, challenges, streaks and reactions",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(articles_router)
    app.include_router(challenges_router)
    app.include_router(streaks_router)
    app.include_router(reactions_router)

    return app
