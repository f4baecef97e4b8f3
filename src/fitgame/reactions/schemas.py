"""Pydantic models for reaction endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from fitgame.reactions.tally import ReactionType


class ReactionRequest(BaseModel):
    reaction_type: ReactionType
    at: datetime | None = None


class ReactionResponse(BaseModel):
    changed: bool
    helpful_count: int
    not_helpful_count: int
