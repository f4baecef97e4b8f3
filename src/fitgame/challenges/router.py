"""Challenge membership, progress and reconciliation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.challenges.lifecycle import ChallengeStatus
from fitgame.challenges.schemas import (
    ChallengeResponse,
    CreateChallengeRequest,
    JoinRequest,
    LeaveResponse,
    ProgressRequest,
    ReconcileResponse,
    UserChallengeListResponse,
    UserChallengeResponse,
)
from fitgame.db.models import Challenge, UserChallenge
from fitgame.dependencies import AppContext, get_context
from fitgame.time_utils import utc_now

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


def _challenge_response(challenge: Challenge) -> ChallengeResponse:
    return ChallengeResponse(
        id=challenge.id,
        name=challenge.name,
        duration_days=challenge.duration_days,
        members_count=challenge.members_count,
    )


def _user_challenge_response(row: UserChallenge, status: ChallengeStatus | str) -> UserChallengeResponse:
    return UserChallengeResponse(
        id=row.id,
        challenge_id=row.challenge_id,
        start_date=row.start_date,
        duration_days=row.duration_days,
        status=status,
        knowledge_base_completed_count=row.knowledge_base_completed_count,
        habits_logged_count=row.habits_logged_count,
    )


@router.post("/challenges", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    body: CreateChallengeRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ChallengeResponse:
    async def work(db: AsyncSession):
        challenge = await ctx.challenges(db).create_challenge(body.name, body.duration_days, utc_now())
        return _challenge_response(challenge)

    return await ctx.runner.run(work)


@router.get("/challenges/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(
    challenge_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ChallengeResponse:
    async def work(db: AsyncSession):
        return _challenge_response(await ctx.challenges(db).get_challenge(challenge_id))

    return await ctx.runner.run(work)


@router.post("/challenges/reconcile", response_model=ReconcileResponse)
async def reconcile_challenges(ctx: AppContext = Depends(get_context)) -> ReconcileResponse:  # noqa: B008
    """Run the batch status reconciliation now (the worker runs it nightly)."""

    async def work(db: AsyncSession):
        return await ctx.challenges(db).reconcile(utc_now())

    return ReconcileResponse(**await ctx.runner.run(work))


@router.post(
    "/users/{user_id}/challenges/{challenge_id}/join",
    response_model=UserChallengeResponse,
    status_code=201,
)
async def join_challenge(
    user_id: str,
    challenge_id: str,
    body: JoinRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> UserChallengeResponse:
    async def work(db: AsyncSession):
        row = await ctx.challenges(db).join(user_id, challenge_id, body.start_date, utc_now())
        return _user_challenge_response(row, row.status)

    return await ctx.runner.run(work)


@router.post("/users/{user_id}/challenges/{challenge_id}/leave", response_model=LeaveResponse)
async def leave_challenge(
    user_id: str,
    challenge_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> LeaveResponse:
    async def work(db: AsyncSession):
        return await ctx.challenges(db).leave(user_id, challenge_id, utc_now())

    return LeaveResponse(left=await ctx.runner.run(work))


@router.get("/users/{user_id}/user-challenges", response_model=UserChallengeListResponse)
async def list_user_challenges(
    user_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> UserChallengeListResponse:
    async def work(db: AsyncSession):
        rows = await ctx.challenges(db).list_user_challenges(user_id, utc_now())
        return UserChallengeListResponse(items=[_user_challenge_response(r, s) for r, s in rows])

    return await ctx.runner.run(work)


@router.get("/users/{user_id}/user-challenges/{user_challenge_id}", response_model=UserChallengeResponse)
async def get_user_challenge(
    user_id: str,
    user_challenge_id: str,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> UserChallengeResponse:
    async def work(db: AsyncSession):
        row, status = await ctx.challenges(db).get_user_challenge(user_id, user_challenge_id, utc_now())
        return _user_challenge_response(row, status)

    return await ctx.runner.run(work)


@router.post(
    "/users/{user_id}/user-challenges/{user_challenge_id}/progress",
    response_model=UserChallengeResponse,
)
async def record_challenge_progress(
    user_id: str,
    user_challenge_id: str,
    body: ProgressRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> UserChallengeResponse:
    async def work(db: AsyncSession):
        row = await ctx.challenges(db).record_progress(
            user_id,
            user_challenge_id,
            utc_now(),
            knowledge_base=body.knowledge_base,
            habits=body.habits,
        )
        return _user_challenge_response(row, row.status)

    return await ctx.runner.run(work)
