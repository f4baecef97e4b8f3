"""Challenge housekeeping arq worker.

Runs the nightly batch status reconciliation and on-demand counter repairs.

Import path for arq CLI: arq fitgame.workers.reconcile_worker.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from fitgame.config import get_settings
from fitgame.dependencies import AppContext, connect_redis
from fitgame.middleware.logging import setup_logging
from fitgame.time_utils import utc_now

logger = logging.getLogger(__name__)

_settings = get_settings()


async def worker_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Build the process context on worker startup."""
    setup_logging(_settings)
    ctx["app"] = AppContext.build(_settings, redis=connect_redis(_settings.redis_url))
    logger.info("Reconcile worker started")


async def worker_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    app: AppContext | None = ctx.get("app")
    if app is not None:
        await app.close()
    logger.info("Reconcile worker shut down")


async def reconcile_challenges(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled task: lock, activate and complete user challenges in one transaction."""
    app: AppContext = ctx["app"]
    now = utc_now()
    counts = await app.runner.run(lambda db: app.challenges(db).reconcile(now))
    logger.info("Challenge reconciliation at %s: %s", now.isoformat(), counts)
    return counts


async def rebuild_article_counters(ctx: dict, article_id: str) -> dict[str, int]:  # type: ignore[type-arg]
    """On-demand task: recompute an article's partitioned counters from progress rows."""
    app: AppContext = ctx["app"]
    return await app.runner.run(lambda db: app.counters(db).rebuild_article_counters(article_id))


class WorkerSettings:
    """arq worker settings for challenge housekeeping."""

    functions = [reconcile_challenges, rebuild_article_counters]
    cron_jobs = [
        cron(reconcile_challenges, hour={_settings.reconcile_cron_hour}, minute={5}, run_at_startup=False),
    ]
    on_startup = worker_startup
    on_shutdown = worker_shutdown
    redis_settings = RedisSettings.from_dsn(_settings.redis_url)
    max_jobs = 4
    job_timeout = 600
