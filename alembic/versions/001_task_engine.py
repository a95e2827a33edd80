"""Task engine tables.

Creates company_profiles, tasks, task_attempts and user_rewards with the
uniqueness rules the engine relies on under concurrency:
one attempt per (task, user), one reward per (user, task), unique reward
codes, and case-insensitive unique titles per company.

Revision ID: 001_task_engine
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_task_engine"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Company Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS company_profiles (
            id VARCHAR(36) PRIMARY KEY,
            company_id VARCHAR(36) NOT NULL,
            company_name VARCHAR(255) NOT NULL,
            contact_person VARCHAR(255),
            website_url VARCHAR(500),
            registered_address TEXT,
            city VARCHAR(100),
            logo_url VARCHAR(500),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_company_profiles_company_id UNIQUE (company_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_company_profiles_city
        ON company_profiles(city)
    """)

    # --- Tasks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id VARCHAR(36) PRIMARY KEY,
            company_id VARCHAR(36) NOT NULL,
            title VARCHAR(100) NOT NULL,
            description TEXT,
            task_type VARCHAR(32) NOT NULL,
            difficulty VARCHAR(16) NOT NULL,
            reward_type VARCHAR(16) NOT NULL,
            reward_value NUMERIC(10, 2) NOT NULL,
            reward_description VARCHAR(255) NOT NULL,
            image_url VARCHAR(500),
            puzzle_config JSONB,
            status VARCHAR(16) NOT NULL DEFAULT 'draft',
            is_featured BOOLEAN NOT NULL DEFAULT false,
            featured_until TIMESTAMPTZ,
            attempt_count INTEGER NOT NULL DEFAULT 0,
            conversion_count INTEGER NOT NULL DEFAULT 0,
            expires_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT ck_tasks_reward_value_positive CHECK (reward_value > 0),
            CONSTRAINT ck_tasks_conversions_within_attempts CHECK (attempt_count >= conversion_count)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tasks_company_id
        ON tasks(company_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tasks_status_created
        ON tasks(status, created_at)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_tasks_company_title_ci
        ON tasks(company_id, lower(title))
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tasks_featured
        ON tasks(featured_until)
        WHERE is_featured = true
    """)

    # --- Task Attempts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS task_attempts (
            id VARCHAR(36) PRIMARY KEY,
            task_id VARCHAR(36) NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL,
            started_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ,
            time_taken_seconds INTEGER NOT NULL,
            is_successful BOOLEAN NOT NULL DEFAULT false,
            score INTEGER NOT NULL DEFAULT 0,
            time_bonus INTEGER NOT NULL DEFAULT 0,
            difficulty_multiplier DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            created_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_task_attempts_task_user UNIQUE (task_id, user_id),
            CONSTRAINT ck_task_attempts_time_taken_positive CHECK (time_taken_seconds > 0),
            CONSTRAINT ck_task_attempts_difficulty_multiplier_range
                CHECK (difficulty_multiplier >= 0.5 AND difficulty_multiplier <= 3.0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_task_attempts_task_id
        ON task_attempts(task_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_task_attempts_user_id
        ON task_attempts(user_id)
    """)

    # --- User Rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_rewards (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(36) NOT NULL,
            task_id VARCHAR(36) NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            reward_code VARCHAR(50) NOT NULL,
            reward_type VARCHAR(16) NOT NULL,
            reward_value NUMERIC(10, 2) NOT NULL,
            reward_description VARCHAR(255),
            is_redeemed BOOLEAN NOT NULL DEFAULT false,
            redeemed_at TIMESTAMPTZ,
            expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_user_rewards_reward_code UNIQUE (reward_code),
            CONSTRAINT uq_user_rewards_user_task UNIQUE (user_id, task_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_rewards_task_id
        ON user_rewards(task_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_rewards_user_redeemed
        ON user_rewards(user_id, is_redeemed)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS task_attempts CASCADE")
    op.execute("DROP TABLE IF EXISTS tasks CASCADE")
    op.execute("DROP TABLE IF EXISTS company_profiles CASCADE")
