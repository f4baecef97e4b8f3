"""Article progress and statistics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.articles.schemas import (
    ArticleStatisticsResponse,
    GlobalStatisticsResponse,
    ProgressListResponse,
    ProgressResponse,
    TransitionRequest,
    TransitionResponse,
)
from fitgame.articles.state_machine import QuizAnswer, TransitionDetails
from fitgame.db.models import UserArticleProgress
from fitgame.dependencies import AppContext, get_context
from fitgame.time_utils import ensure_utc, utc_now

router = APIRouter(prefix="/api/v1", tags=["Articles"])


def _progress_response(row: UserArticleProgress) -> ProgressResponse:
    return ProgressResponse(
        article_id=row.article_id,
        status=row.status,
        quiz_attempts=row.quiz_attempts,
        quiz_all_correct=row.quiz_all_correct,
        first_read_at=ensure_utc(row.first_read_at),
        last_read_at=ensure_utc(row.last_read_at),
        quiz_completed_at=ensure_utc(row.quiz_completed_at) if row.quiz_completed_at else None,
    )


@router.post("/users/{user_id}/articles/{article_id}/transitions", response_model=TransitionResponse)
async def apply_article_transition(
    user_id: str,
    article_id: str,
    body: TransitionRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> TransitionResponse:
    details = TransitionDetails(
        now=utc_now(),
        has_practicals=body.has_practicals,
        answers=tuple(QuizAnswer(a.question_id, a.correct, a.hint_used) for a in body.answers),
        confirm_retry=body.confirm_retry,
    )

    async def work(db: AsyncSession):
        return await ctx.articles(db).apply_transition(user_id, article_id, body.transition, details)

    status = await ctx.runner.run(work)
    return TransitionResponse(article_id=article_id, status=status)


@router.get("/users/{user_id}/articles/{article_id}", response_model=ProgressResponse)
async def get_article_progress(
    user_id: str,
    article_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ProgressResponse:
    async def work(db: AsyncSession):
        return _progress_response(await ctx.articles(db).get_progress(user_id, article_id))

    return await ctx.runner.run(work)


@router.get("/users/{user_id}/articles", response_model=ProgressListResponse)
async def list_article_progress(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ProgressListResponse:
    async def work(db: AsyncSession):
        rows, total = await ctx.articles(db).list_progress(user_id, page=page, limit=limit)
        return ProgressListResponse(
            items=[_progress_response(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        )

    return await ctx.runner.run(work)


# --- Statistics ---


@router.get("/statistics/global", response_model=GlobalStatisticsResponse)
async def global_statistics(ctx: AppContext = Depends(get_context)) -> GlobalStatisticsResponse:  # noqa: B008
    async def work(db: AsyncSession):
        return await ctx.counters(db).get_global_statistics()

    return GlobalStatisticsResponse(**await ctx.runner.run(work))


@router.get("/statistics/articles/{article_id}", response_model=ArticleStatisticsResponse)
async def article_statistics(
    article_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ArticleStatisticsResponse:
    async def work(db: AsyncSession):
        return await ctx.counters(db).get_article_statistics(article_id)

    return ArticleStatisticsResponse(**await ctx.runner.run(work))


@router.post("/statistics/articles/{article_id}/partitions", status_code=204)
async def seed_article_partitions(
    article_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> None:
    """Create the counter partitions for a newly published article."""

    async def work(db: AsyncSession):
        await ctx.counters(db).ensure_article_partitions([article_id])

    await ctx.runner.run(work)
