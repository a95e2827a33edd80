"""ORM models for tasks, attempts, rewards, and company profiles.

Uniqueness rules that must hold under concurrent writers live here as
constraints, not in service code:
- one attempt per (task_id, user_id)
- one reward per (user_id, task_id)
- reward codes are globally unique
- task titles are unique per company, ignoring case
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskloot.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


class CompanyProfile(Base):
    """Public profile of a task-publishing company."""

    __tablename__ = "company_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    registered_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class Task(Base):
    """A company-published puzzle with a reward."""

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("reward_value > 0", name="reward_value_positive"),
        CheckConstraint("attempt_count >= conversion_count", name="conversions_within_attempts"),
        Index("ix_tasks_status_created", "status", "created_at"),
        Index("ix_tasks_featured", "featured_until", postgresql_where=text("is_featured = true")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    task_type: Mapped[str] = mapped_column(String(32), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reward_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    reward_description: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    puzzle_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", server_default="draft")
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    featured_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    attempts: Mapped[list[TaskAttempt]] = relationship(
        "TaskAttempt", back_populates="task", passive_deletes=True
    )
    rewards: Mapped[list[UserReward]] = relationship(
        "UserReward", back_populates="task", passive_deletes=True
    )

    @property
    def conversion_rate(self) -> float:
        """Successful attempts as a percentage of all attempts."""
        if not self.attempt_count:
            return 0.0
        return round(self.conversion_count / self.attempt_count * 100, 2)


# Case-insensitive title uniqueness per company.
Index("uq_tasks_company_title_ci", Task.company_id, func.lower(Task.title), unique=True)


class TaskAttempt(Base):
    """One user's single recorded try at a task."""

    __tablename__ = "task_attempts"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_attempts_task_user"),
        CheckConstraint("time_taken_seconds > 0", name="time_taken_positive"),
        CheckConstraint(
            "difficulty_multiplier >= 0.5 AND difficulty_multiplier <= 3.0",
            name="difficulty_multiplier_range",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    time_taken_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    is_successful: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    time_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    difficulty_multiplier: Mapped[float] = mapped_column(
        Float, nullable=False, default=1.0, server_default="1.0"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    task: Mapped[Task] = relationship("Task", back_populates="attempts")


class UserReward(Base):
    """A redeemable code issued for a successful attempt."""

    __tablename__ = "user_rewards"
    __table_args__ = (
        UniqueConstraint("reward_code", name="uq_user_rewards_reward_code"),
        UniqueConstraint("user_id", "task_id", name="uq_user_rewards_user_task"),
        Index("ix_user_rewards_user_redeemed", "user_id", "is_redeemed"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reward_code: Mapped[str] = mapped_column(String(50), nullable=False)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reward_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    reward_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    task: Mapped[Task] = relationship("Task", back_populates="rewards")
