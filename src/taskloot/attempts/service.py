"""Attempt ledger.

Rules:
- One attempt per (task, user), ever. The unique constraint on task_attempts
  is the authority; the pre-check only gives the common case a clean error
- Attempts are only accepted for active, unexpired tasks
- attempt_count / conversion_count move with the insert, in the same
  transaction, as SQL-side increments
- Attempts are never updated after insert
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.attempts.schemas import AttemptInput
from taskloot.cache import TaskCache
from taskloot.config import Settings, get_settings
from taskloot.db.models import Task, TaskAttempt, UserReward
from taskloot.errors import ConflictError, GoneError, NotFoundError
from taskloot.puzzles.schemas import PuzzleConfig
from taskloot.puzzles.scoring import SolutionResult, validate_solution
from taskloot.rewards.service import issue_reward
from taskloot.tasks.lifecycle import ACTIVE, EXPIRED, effective_status
from taskloot.timeutils import utcnow

logger = structlog.get_logger()


@dataclass
class SubmissionResult:
    attempt: TaskAttempt
    solution: SolutionResult
    reward: UserReward | None


async def get_user_attempt(db: AsyncSession, task_id: str, user_id: str) -> TaskAttempt | None:
    result = await db.execute(
        select(TaskAttempt).where(TaskAttempt.task_id == task_id, TaskAttempt.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _get_open_task(db: AsyncSession, task_id: str) -> Task:
    result = await db.execute(
        select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    )
    task = result.scalar_one_or_none()
    if task is None or task.status not in (ACTIVE, EXPIRED):
        raise NotFoundError("Task not found or not active", resource_id=task_id)
    if effective_status(task.status, task.expires_at) == EXPIRED:
        raise GoneError("Task has expired", resource_id=task_id)
    return task


async def _ensure_first_attempt(db: AsyncSession, task_id: str, user_id: str) -> None:
    if await get_user_attempt(db, task_id, user_id) is not None:
        raise ConflictError("You have already attempted this task", resource_id=task_id)


async def _insert_attempt(
    db: AsyncSession,
    task_id: str,
    user_id: str,
    *,
    is_successful: bool,
    time_taken_seconds: int,
    difficulty_multiplier: float,
    score: int,
    time_bonus: int,
    now: datetime,
) -> TaskAttempt:
    """Insert the attempt and bump the task counters. Does not commit."""
    attempt = TaskAttempt(
        task_id=task_id,
        user_id=user_id,
        started_at=now - timedelta(seconds=time_taken_seconds),
        completed_at=now,
        time_taken_seconds=time_taken_seconds,
        is_successful=is_successful,
        score=score,
        time_bonus=time_bonus,
        difficulty_multiplier=difficulty_multiplier,
        created_at=now,
    )
    db.add(attempt)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("You have already attempted this task", resource_id=task_id) from e

    await db.execute(
        update(Task)
        .where(Task.id == task_id)
        .values(
            attempt_count=Task.attempt_count + 1,
            conversion_count=Task.conversion_count + (1 if is_successful else 0),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return attempt


async def record_attempt(
    db: AsyncSession,
    cache: TaskCache,
    task_id: str,
    user_id: str,
    attempt: AttemptInput,
) -> TaskAttempt:
    """Record an already-scored attempt.

    Raises:
        NotFoundError: task absent or not active.
        GoneError: task past its expiry.
        ConflictError: the user already has an attempt for this task.
    """
    await _get_open_task(db, task_id)
    await _ensure_first_attempt(db, task_id, user_id)

    row = await _insert_attempt(
        db,
        task_id,
        user_id,
        is_successful=attempt.is_successful,
        time_taken_seconds=attempt.time_taken_seconds,
        difficulty_multiplier=attempt.difficulty_multiplier,
        score=attempt.score,
        time_bonus=attempt.time_bonus,
        now=utcnow(),
    )
    await db.commit()

    await cache.invalidate(task_id)
    logger.info(
        "attempt_recorded",
        task_id=task_id,
        user_id=user_id,
        is_successful=row.is_successful,
        time_taken_seconds=row.time_taken_seconds,
    )
    return row


async def submit_solution(
    db: AsyncSession,
    cache: TaskCache,
    task_id: str,
    user_id: str,
    solution: Sequence[int],
    time_taken_ms: float,
    *,
    settings: Settings | None = None,
) -> SubmissionResult:
    """Score a submitted ordering, record the attempt and issue the reward on success.

    Attempt, counters and reward commit together or not at all.
    """
    settings = settings or get_settings()
    task = await _get_open_task(db, task_id)
    if not task.puzzle_config:
        raise NotFoundError("Task has no puzzle", resource_id=task_id)
    config = PuzzleConfig.from_stored(task.puzzle_config)

    await _ensure_first_attempt(db, task_id, user_id)
    result = validate_solution(
        solution, config.correct_solution, time_taken_ms, settings.puzzle_max_time_seconds
    )

    try:
        attempt = await _insert_attempt(
            db,
            task_id,
            user_id,
            is_successful=result.is_correct,
            time_taken_seconds=max(1, round(result.time_taken_seconds)),
            difficulty_multiplier=1.0,
            score=result.score,
            time_bonus=result.time_bonus,
            now=utcnow(),
        )
        reward = None
        if result.is_correct:
            reward = await issue_reward(db, user_id, task_id, commit=False, settings=settings)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await cache.invalidate(task_id)
    logger.info(
        "solution_submitted",
        task_id=task_id,
        user_id=user_id,
        is_correct=result.is_correct,
        score=result.score,
        reward_id=reward.id if reward else None,
    )
    return SubmissionResult(attempt=attempt, solution=result, reward=reward)
