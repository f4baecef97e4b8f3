"""Health, readiness and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from fitgame.dependencies import AppContext, get_context

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: checks DB and, when configured, Redis."""
    checks: dict[str, object] = {}

    try:
        async with ctx.database.session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    if ctx.redis is not None:
        try:
            await ctx.redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "ready" if all_ok else "degraded",
        "checks": checks,
        "aggregate_anomalies": ctx.recorder.total,
    }


@router.get("/version")
async def version(ctx: AppContext = Depends(get_context)) -> dict[str, str]:  # noqa: B008
    return {
        "version": ctx.settings.app_version,
        "environment": ctx.settings.environment,
    }
