"""Habit log and streak endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.dependencies import AppContext, get_context
from fitgame.streaks.schemas import HabitActivityResponse, HabitLogRequest, StreaksResponse
from fitgame.time_utils import utc_now

router = APIRouter(prefix="/api/v1", tags=["Streaks"])


@router.put("/users/{user_id}/habit-logs/{day}/{habit_key}", response_model=HabitActivityResponse)
async def log_habit(
    user_id: str,
    day: date,
    habit_key: str,
    body: HabitLogRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> HabitActivityResponse:
    """Mark a habit done or not done for a UTC calendar day."""

    async def work(db: AsyncSession):
        return await ctx.streaks(db).record_habit_activity(user_id, day, habit_key, body.done, utc_now())

    result = await ctx.runner.run(work)
    return HabitActivityResponse(**asdict(result))


@router.get("/users/{user_id}/streaks", response_model=StreaksResponse)
async def get_streaks(
    user_id: str,
    today: date | None = Query(None),
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> StreaksResponse:
    as_of = today or utc_now().date()

    async def work(db: AsyncSession):
        service = ctx.streaks(db)
        return StreaksResponse(
            current=await service.get_current_streaks(user_id, as_of),
            longest=await service.get_longest_streaks(user_id),
        )

    return await ctx.runner.run(work)
