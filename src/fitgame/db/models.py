"""ORM models for progress, challenges, streaks, reactions and counters."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from fitgame.db.base import Base, JSONType, new_id


# ---------------------------------------------------------------------------
# User aggregates
# ---------------------------------------------------------------------------


class UserMetadata(Base):
    """Per-user aggregate counters and streak pointers."""

    __tablename__ = "user_metadata"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    articles_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    articles_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    articles_completed_with_perfect_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    challenges_joined: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    days_logged: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    # habit key -> StreakHistory.id
    current_streak_ids: Mapped[dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    longest_streak_ids: Mapped[dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Article progress
# ---------------------------------------------------------------------------


class UserArticleProgress(Base):
    """One row per (user, article); created on first read, never deleted."""

    __tablename__ = "user_article_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "article_id", name="uq_user_article_progress"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    article_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    quiz_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    quiz_all_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    quiz_answers: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    quiz_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    quiz_first_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    quiz_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Partitioned counters
# ---------------------------------------------------------------------------


class ArticleCounter(Base):
    """One partition of an article's engagement counters. Readers sum over partitions."""

    __tablename__ = "article_counters"

    article_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    partition_key: Mapped[int] = mapped_column(Integer, primary_key=True)
    read_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    completed_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    completed_with_perfect_score: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )


class GlobalCounter(Base):
    """One partition of the system-wide activity counters."""

    __tablename__ = "global_counters"

    partition_key: Mapped[int] = mapped_column(Integer, primary_key=True)
    article_read_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    article_completed_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    article_completed_with_perfect_score: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )
    challenges_joined: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    days_logged: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """A time-boxed group challenge and its membership count."""

    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    members_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ChallengeSubscriber(Base):
    """Membership of a user in a challenge."""

    __tablename__ = "challenge_subscribers"
    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_subscriber"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    challenge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserChallenge(Base):
    """A user's run through a challenge. Status is derived, see challenges.lifecycle."""

    __tablename__ = "user_challenges"
    __table_args__ = (
        Index("idx_user_challenge_status_start", "status", "start_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    challenge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="not_started")
    knowledge_base_completed_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    habits_logged_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------


class StreakLog(Base):
    """One row per (user, UTC calendar day) with habit -> done entries."""

    __tablename__ = "streak_logs"
    __table_args__ = (
        UniqueConstraint("user_id", "date_utc", name="uq_streak_log_user_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date_utc: Mapped[str] = mapped_column(String(10), nullable=False)
    entries: Mapped[dict[str, bool]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StreakHistory(Base):
    """A consecutive-day run for one habit. At most one open row per (user, type)."""

    __tablename__ = "streak_history"
    __table_args__ = (
        Index(
            "uq_streak_history_open",
            "user_id",
            "streak_type",
            unique=True,
            postgresql_where=text("ended_date IS NULL"),
            sqlite_where=text("ended_date IS NULL"),
        ),
        Index("idx_streak_history_user_type", "user_id", "streak_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    streak_type: Mapped[str] = mapped_column(String(32), nullable=False)
    streak_length: Mapped[int] = mapped_column(Integer, nullable=False)
    started_date: Mapped[date] = mapped_column(Date, nullable=False)
    ended_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Questions, answers and reactions
# ---------------------------------------------------------------------------


class Question(Base):
    """A community question with a two-bucket reaction tally."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    article_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    not_helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Answer(Base):
    """An answer to a question with its own reaction tally."""

    __tablename__ = "answers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    not_helpful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class QuestionReaction(Base):
    """A user's current reaction to a question. revision counts accepted writes."""

    __tablename__ = "question_reactions"

    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reaction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")


class AnswerReaction(Base):
    """A user's current reaction to an answer."""

    __tablename__ = "answer_reactions"

    answer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("answers.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reaction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
