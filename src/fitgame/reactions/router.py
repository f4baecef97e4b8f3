"""Reaction endpoints for questions and answers."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitgame.dependencies import AppContext, get_context
from fitgame.reactions.schemas import ReactionRequest, ReactionResponse
from fitgame.reactions.tally import ReactionTarget
from fitgame.time_utils import utc_now

router = APIRouter(prefix="/api/v1", tags=["Reactions"])


@router.put("/users/{user_id}/reactions/{target}/{entity_id}", response_model=ReactionResponse)
async def upsert_reaction(
    user_id: str,
    target: ReactionTarget,
    entity_id: str,
    body: ReactionRequest,
    ctx: AppContext = Depends(get_context),  # noqa: B008
) -> ReactionResponse:
    at = body.at or utc_now()

    async def work(db: AsyncSession):
        service = ctx.reactions(db)
        changed = await service.upsert_reaction(target, entity_id, user_id, body.reaction_type, at)
        return ReactionResponse(changed=changed, **await service.get_tally(target, entity_id))

    return await ctx.runner.run(work)
