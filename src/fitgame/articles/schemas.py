"""Pydantic request/response models for article progress endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from fitgame.articles.state_machine import ArticleStatus, ArticleTransition


class QuizAnswerIn(BaseModel):
    question_id: str
    correct: bool
    hint_used: bool = False


class TransitionRequest(BaseModel):
    transition: ArticleTransition
    has_practicals: bool = False
    answers: list[QuizAnswerIn] = []
    confirm_retry: bool = False


class TransitionResponse(BaseModel):
    article_id: str
    status: ArticleStatus


class ProgressResponse(BaseModel):
    article_id: str
    status: ArticleStatus
    quiz_attempts: int
    quiz_all_correct: bool | None = None
    first_read_at: datetime
    last_read_at: datetime
    quiz_completed_at: datetime | None = None


class ProgressListResponse(BaseModel):
    items: list[ProgressResponse]
    total: int
    page: int
    limit: int = Field(ge=1)


class ArticleStatisticsResponse(BaseModel):
    article_id: str
    read_count: int
    completed_count: int
    completed_with_perfect_score: int


class GlobalStatisticsResponse(BaseModel):
    article_read_count: int
    article_completed_count: int
    article_completed_with_perfect_score: int
    challenges_joined: int
    days_logged: int
