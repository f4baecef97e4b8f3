"""Pydantic request/response models for challenge endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from fitgame.challenges.lifecycle import ChallengeStatus


class CreateChallengeRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    duration_days: int = Field(gt=0)


class ChallengeResponse(BaseModel):
    id: str
    name: str
    duration_days: int
    members_count: int


class JoinRequest(BaseModel):
    start_date: date


class LeaveResponse(BaseModel):
    left: bool


class ProgressRequest(BaseModel):
    knowledge_base: int = Field(0, ge=0)
    habits: int = Field(0, ge=0)


class UserChallengeResponse(BaseModel):
    id: str
    challenge_id: str
    start_date: date
    duration_days: int
    status: ChallengeStatus
    knowledge_base_completed_count: int
    habits_logged_count: int


class UserChallengeListResponse(BaseModel):
    items: list[UserChallengeResponse]


class ReconcileResponse(BaseModel):
    lock_expired: int
    activate_pending: int
    complete_active: int
