"""Pydantic schemas for task endpoints and task read models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from taskloot.pagination import Pagination
from taskloot.puzzles.schemas import PublicPuzzleConfig


# --- Requests ---


class CreateTaskRequest(BaseModel):
    """Task metadata. Field rules are enforced by the service, not here."""

    title: str
    description: str | None = None
    task_type: str
    difficulty: str
    reward_type: str
    reward_value: Decimal
    reward_description: str
    expires_at: datetime | None = None
    image_base64: str | None = Field(None, description="Source image, base64-encoded")


class UpdateTaskRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    difficulty: str | None = None
    reward_value: Decimal | None = None
    reward_description: str | None = None


class FeatureTaskRequest(BaseModel):
    duration_days: int


# --- Read models ---


class TaskResponse(BaseModel):
    id: str
    company_id: str
    company_name: str | None = None
    title: str
    description: str | None = None
    task_type: str
    difficulty: str
    reward_type: str
    reward_value: Decimal
    reward_description: str
    image_url: str | None = None
    puzzle_config: PublicPuzzleConfig | None = None
    status: str
    is_featured: bool
    featured_until: datetime | None = None
    attempt_count: int
    conversion_count: int
    conversion_rate: float
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserAttemptSummary(BaseModel):
    id: str
    is_successful: bool
    score: int
    time_taken_seconds: int
    completed_at: datetime | None = None


class TaskView(TaskResponse):
    """Player-facing task read: redacted puzzle, derived status, caller attempt."""

    user_attempt: UserAttemptSummary | None = None


class TaskListItem(BaseModel):
    id: str
    company_id: str
    company_name: str | None = None
    city: str | None = None
    title: str
    description: str | None = None
    task_type: str
    difficulty: str
    reward_type: str
    reward_value: Decimal
    reward_description: str
    image_url: str | None = None
    status: str
    is_featured: bool
    featured_until: datetime | None = None
    attempt_count: int
    conversion_count: int
    conversion_rate: float
    expires_at: datetime | None = None
    created_at: datetime


class TaskPage(BaseModel):
    tasks: list[TaskListItem]
    pagination: Pagination


class FeatureTaskResponse(BaseModel):
    task: TaskResponse
    cost: Decimal
    featured_until: datetime


class TaskFilters(BaseModel):
    """Listing filters. ``status=None`` lists every status (company view only)."""

    status: str | None = "active"
    difficulty: str | None = None
    task_type: str | None = None
    city: str | None = None
    company_id: str | None = None
    featured_only: bool = False
    page: int = 1
    limit: int = 20
    sort_by: str = "created_at"
    sort_order: str = "desc"


class DailyAttemptStats(BaseModel):
    day: date
    attempts: int
    successful_attempts: int


class TaskAnalytics(BaseModel):
    """Owner-only attempt statistics for one task."""

    task_id: str
    title: str
    status: str
    total_attempts: int
    successful_attempts: int
    conversion_rate: float
    avg_completion_time: float | None = None
    fastest_completion_time: int | None = None
    slowest_completion_time: int | None = None
    daily_stats: list[DailyAttemptStats]
