"""Pydantic schemas for attempt endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from taskloot.rewards.schemas import RewardResponse


class AttemptInput(BaseModel):
    """A client-reported attempt outcome."""

    is_successful: bool
    time_taken_seconds: int = Field(..., ge=1)
    difficulty_multiplier: float = Field(1.0, ge=0.5, le=3.0)
    score: int = Field(0, ge=0)
    time_bonus: int = Field(0, ge=0)


class SubmitSolutionRequest(BaseModel):
    solution: list[int]
    time_taken_ms: int = Field(..., ge=0)


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    user_id: str
    started_at: datetime
    completed_at: datetime | None = None
    time_taken_seconds: int
    is_successful: bool
    score: int
    time_bonus: int
    difficulty_multiplier: float
    created_at: datetime


class SolutionResponse(BaseModel):
    is_correct: bool
    score: int
    base_score: int
    time_bonus: int
    time_taken_seconds: float


class SubmissionResponse(BaseModel):
    attempt: AttemptResponse
    solution: SolutionResponse
    reward: RewardResponse | None = None
