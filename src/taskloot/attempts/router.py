"""Attempt API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.attempts.schemas import (
    AttemptResponse,
    SolutionResponse,
    SubmissionResponse,
    SubmitSolutionRequest,
)
from taskloot.attempts.service import get_user_attempt, submit_solution
from taskloot.auth.dependencies import Principal, get_current_principal
from taskloot.cache import TaskCache
from taskloot.database import get_session
from taskloot.dependencies import get_task_cache
from taskloot.rewards.schemas import RewardResponse

router = APIRouter(prefix="/api/v1/tasks", tags=["Attempts"])


@router.post("/{task_id}/attempts", response_model=SubmissionResponse, status_code=201)
async def submit_attempt_endpoint(
    task_id: str,
    body: SubmitSolutionRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
) -> SubmissionResponse:
    """Submit a puzzle solution. One attempt per task per user."""
    result = await submit_solution(db, cache, task_id, principal.user_id, body.solution, body.time_taken_ms)
    return SubmissionResponse(
        attempt=AttemptResponse.model_validate(result.attempt),
        solution=SolutionResponse(
            is_correct=result.solution.is_correct,
            score=result.solution.score,
            base_score=result.solution.base_score,
            time_bonus=result.solution.time_bonus,
            time_taken_seconds=result.solution.time_taken_seconds,
        ),
        reward=RewardResponse.model_validate(result.reward) if result.reward else None,
    )


@router.get("/{task_id}/attempts/me", response_model=AttemptResponse)
async def get_my_attempt_endpoint(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
) -> AttemptResponse:
    attempt = await get_user_attempt(db, task_id, principal.user_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail="No attempt for this task")
    return AttemptResponse.model_validate(attempt)
