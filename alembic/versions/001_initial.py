"""Progress core tables.

Creates user aggregates, article progress, partitioned counters, challenges,
streak logs/history and question/answer reactions, and seeds the global
counter partitions.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

from fitgame.config import get_settings

revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User Metadata ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_metadata (
            user_id VARCHAR(36) PRIMARY KEY,
            articles_read INTEGER NOT NULL DEFAULT 0,
            articles_completed INTEGER NOT NULL DEFAULT 0,
            articles_completed_with_perfect_score INTEGER NOT NULL DEFAULT 0,
            challenges_joined INTEGER NOT NULL DEFAULT 0,
            days_logged INTEGER NOT NULL DEFAULT 0,
            current_streak_ids JSONB NOT NULL DEFAULT '{}',
            longest_streak_ids JSONB NOT NULL DEFAULT '{}',
            last_activity_date DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Article Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_article_progress (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            article_id VARCHAR(64) NOT NULL,
            status VARCHAR(32) NOT NULL,
            quiz_attempts INTEGER NOT NULL DEFAULT 0,
            quiz_all_correct BOOLEAN,
            quiz_answers JSONB,
            quiz_started_at TIMESTAMPTZ,
            quiz_first_attempted_at TIMESTAMPTZ,
            quiz_completed_at TIMESTAMPTZ,
            first_read_at TIMESTAMPTZ NOT NULL,
            last_read_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_article_progress UNIQUE (user_id, article_id),
            CONSTRAINT ck_user_article_progress_status CHECK (status IN (
                'reading_in_progress', 'knowledge_check_in_progress', 'knowledge_check_complete',
                'practical_in_progress', 'completed'
            ))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_article_progress_user_id
        ON user_article_progress(user_id)
    """)

    # --- Partitioned Counters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS article_counters (
            article_id VARCHAR(64) NOT NULL,
            partition_key INTEGER NOT NULL,
            read_count BIGINT NOT NULL DEFAULT 0,
            completed_count BIGINT NOT NULL DEFAULT 0,
            completed_with_perfect_score BIGINT NOT NULL DEFAULT 0,
            PRIMARY KEY (article_id, partition_key)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS global_counters (
            partition_key INTEGER PRIMARY KEY,
            article_read_count BIGINT NOT NULL DEFAULT 0,
            article_completed_count BIGINT NOT NULL DEFAULT 0,
            article_completed_with_perfect_score BIGINT NOT NULL DEFAULT 0,
            challenges_joined BIGINT NOT NULL DEFAULT 0,
            days_logged BIGINT NOT NULL DEFAULT 0
        )
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(200) NOT NULL,
            duration_days INTEGER NOT NULL CHECK (duration_days > 0),
            members_count INTEGER NOT NULL DEFAULT 0 CHECK (members_count >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_subscribers (
            id VARCHAR(36) PRIMARY KEY,
            challenge_id VARCHAR(36) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_challenge_subscriber UNIQUE (challenge_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_challenge_subscribers_user_id
        ON challenge_subscribers(user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenges (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            challenge_id VARCHAR(36) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            start_date DATE NOT NULL,
            duration_days INTEGER NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'not_started'
                CHECK (status IN ('not_started', 'active', 'completed', 'locked')),
            knowledge_base_completed_count INTEGER NOT NULL DEFAULT 0,
            habits_logged_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_challenges_user_id
        ON user_challenges(user_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_challenge_status_start
        ON user_challenges(status, start_date)
    """)

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_logs (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            date_utc VARCHAR(10) NOT NULL,
            entries JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_streak_log_user_date UNIQUE (user_id, date_utc)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_history (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            streak_type VARCHAR(32) NOT NULL,
            streak_length INTEGER NOT NULL CHECK (streak_length > 0),
            started_date DATE NOT NULL,
            ended_date DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_streak_history_open
        ON streak_history(user_id, streak_type) WHERE ended_date IS NULL
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_streak_history_user_type
        ON streak_history(user_id, streak_type)
    """)

    # --- Questions, Answers, Reactions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS questions (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            article_id VARCHAR(64),
            body TEXT NOT NULL,
            helpful_count INTEGER NOT NULL DEFAULT 0,
            not_helpful_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS answers (
            id VARCHAR(36) PRIMARY KEY,
            question_id VARCHAR(36) NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL,
            body TEXT NOT NULL,
            helpful_count INTEGER NOT NULL DEFAULT 0,
            not_helpful_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS question_reactions (
            question_id VARCHAR(36) NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL,
            reaction_type VARCHAR(16) NOT NULL CHECK (reaction_type IN ('helpful', 'not_helpful')),
            created_at TIMESTAMPTZ NOT NULL,
            revision INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (question_id, user_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS answer_reactions (
            answer_id VARCHAR(36) NOT NULL REFERENCES answers(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL,
            reaction_type VARCHAR(16) NOT NULL CHECK (reaction_type IN ('helpful', 'not_helpful')),
            created_at TIMESTAMPTZ NOT NULL,
            revision INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (answer_id, user_id)
        )
    """)

    # --- Seed global counter partitions ---
    partitions = get_settings().global_counter_partitions
    op.execute(f"""
        INSERT INTO global_counters (partition_key)
        SELECT generate_series(1, {int(partitions)})
        ON CONFLICT (partition_key) DO NOTHING
    """)  # noqa: S608


def downgrade() -> None:
    for table in [
        "answer_reactions",
        "question_reactions",
        "answers",
        "questions",
        "streak_history",
        "streak_logs",
        "user_challenges",
        "challenge_subscribers",
        "challenges",
        "global_counters",
        "article_counters",
        "user_article_progress",
        "user_metadata",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")  # noqa: S608
