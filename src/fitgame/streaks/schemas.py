"""Pydantic models for streak endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class HabitLogRequest(BaseModel):
    done: bool = True


class StreakResultResponse(BaseModel):
    streak_type: str
    is_new_streak: bool
    is_extended: bool
    current_length: int


class HabitActivityResponse(BaseModel):
    habit: StreakResultResponse
    all_habits: StreakResultResponse
    first_log_of_day: bool


class StreaksResponse(BaseModel):
    current: dict[str, int]
    longest: dict[str, int]
