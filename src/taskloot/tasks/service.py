"""Task lifecycle operations.

Rules:
- Titles are unique per company, ignoring case
- Only drafts may be published; only active tasks may be featured
- Active tasks are read-only to their company
- Publish/feature re-check the status inside the UPDATE, so two concurrent
  callers cannot both succeed
- Every committed mutation drops ``task:<id>`` from the cache afterwards
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.attempts.service import get_user_attempt
from taskloot.cache import TaskCache
from taskloot.config import Settings, get_settings
from taskloot.db.models import CompanyProfile, Task, TaskAttempt, UserReward
from taskloot.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskloot.pagination import build_pagination, validate_page
from taskloot.puzzles.generator import PuzzleGenerator, grid_size_for_difficulty
from taskloot.puzzles.schemas import redact_stored
from taskloot.tasks.lifecycle import (
    ACTIVE,
    DRAFT,
    EXPIRED,
    TASK_STATUSES,
    effective_status,
    is_currently_featured,
    require_status,
    validate_transition,
)
from taskloot.tasks.schemas import (
    DailyAttemptStats,
    TaskAnalytics,
    TaskFilters,
    TaskListItem,
    TaskPage,
    TaskResponse,
    TaskView,
    UserAttemptSummary,
)
from taskloot.tasks.validation import validate_new_task, validate_task_patch
from taskloot.timeutils import utcnow

logger = structlog.get_logger()

ANALYTICS_WINDOW_DAYS = 30

_conversion_rate = case(
    (Task.attempt_count > 0, Task.conversion_count * 100.0 / Task.attempt_count),
    else_=0.0,
)

SORT_COLUMNS = {
    "created_at": Task.created_at,
    "title": Task.title,
    "difficulty": Task.difficulty,
    "reward_value": Task.reward_value,
    "conversion_rate": _conversion_rate,
}


@dataclass
class FeatureResult:
    task: Task
    cost: Decimal
    featured_until: datetime


# ── Helpers ──


async def _get_company_name(db: AsyncSession, company_id: str) -> str | None:
    result = await db.execute(
        select(CompanyProfile.company_name).where(CompanyProfile.company_id == company_id)
    )
    return result.scalar_one_or_none()


async def _get_owned_task(db: AsyncSession, task_id: str, company_id: str) -> Task:
    """Fetch a task owned by ``company_id``. Foreign tasks look absent."""
    result = await db.execute(
        select(Task).where(Task.id == task_id, Task.company_id == company_id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found or access denied", resource_id=task_id)
    return task


async def _ensure_title_available(
    db: AsyncSession, company_id: str, title: str, exclude_task_id: str | None = None
) -> None:
    query = select(Task.id).where(
        Task.company_id == company_id,
        func.lower(Task.title) == title.lower(),
    )
    if exclude_task_id is not None:
        query = query.where(Task.id != exclude_task_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("Task with this title already exists for your company")


def task_to_response(task: Task, company_name: str | None = None) -> TaskResponse:
    """Player-safe projection of a task row: the puzzle solution is dropped."""
    return TaskResponse(
        id=task.id,
        company_id=task.company_id,
        company_name=company_name,
        title=task.title,
        description=task.description,
        task_type=task.task_type,
        difficulty=task.difficulty,
        reward_type=task.reward_type,
        reward_value=task.reward_value,
        reward_description=task.reward_description,
        image_url=task.image_url,
        puzzle_config=redact_stored(task.puzzle_config),
        status=effective_status(task.status, task.expires_at),
        is_featured=is_currently_featured(task.is_featured, task.featured_until),
        featured_until=task.featured_until,
        attempt_count=task.attempt_count,
        conversion_count=task.conversion_count,
        conversion_rate=task.conversion_rate,
        expires_at=task.expires_at,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


# ── Operations ──


async def create_task(
    db: AsyncSession,
    cache: TaskCache,
    generator: PuzzleGenerator,
    company_id: str,
    data: dict[str, Any],
    image: bytes | None = None,
    *,
    rng: random.Random | None = None,
    settings: Settings | None = None,
) -> Task:
    """Validate and persist a new draft task, generating its puzzle if an image is given.

    Puzzle generation failures abort creation: no row is written.
    """
    settings = settings or get_settings()
    fields = validate_new_task(data, settings.max_task_reward_value)
    await _ensure_title_available(db, company_id, fields["title"])

    puzzle = None
    if image is not None:
        puzzle = await generator.generate(
            image, grid_size_for_difficulty(fields["difficulty"]), rng=rng
        )

    now = utcnow()
    task = Task(
        company_id=company_id,
        status=DRAFT,
        image_url=puzzle.image_url if puzzle else None,
        puzzle_config=puzzle.to_stored() if puzzle else None,
        is_featured=False,
        attempt_count=0,
        conversion_count=0,
        created_at=now,
        updated_at=now,
        **fields,
    )
    db.add(task)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        await generator.delete_assets(puzzle)
        raise ConflictError("Task with this title already exists for your company") from e
    except Exception:
        await db.rollback()
        await generator.delete_assets(puzzle)
        raise

    await cache.invalidate(task.id)
    logger.info(
        "task_created",
        task_id=task.id,
        company_id=company_id,
        title=task.title,
        task_type=task.task_type,
        difficulty=task.difficulty,
        has_puzzle=puzzle is not None,
    )
    return task


async def get_task(
    db: AsyncSession,
    cache: TaskCache,
    task_id: str,
    user_id: str | None = None,
) -> TaskView:
    """Read a task for display, with the caller's previous attempt if any.

    The cache only ever holds the redacted, caller-independent part.
    """
    cached = await cache.get(task_id)
    if cached is not None:
        view = TaskView.model_validate(cached)
    else:
        task = await db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found", resource_id=task_id)
        company_name = await _get_company_name(db, task.company_id)
        view = TaskView.model_validate(task_to_response(task, company_name).model_dump())
        await cache.set(task_id, view.model_dump(mode="json"))

    # Cached entries may outlive expires_at / featured_until.
    view.status = effective_status(view.status, view.expires_at)
    view.is_featured = is_currently_featured(view.is_featured, view.featured_until)

    if user_id is not None:
        attempt = await get_user_attempt(db, task_id, user_id)
        if attempt is not None:
            view.user_attempt = UserAttemptSummary.model_validate(attempt, from_attributes=True)
    return view


async def update_task(
    db: AsyncSession,
    cache: TaskCache,
    task_id: str,
    company_id: str,
    patch: dict[str, Any],
    *,
    settings: Settings | None = None,
) -> Task:
    """Apply a whitelisted patch to a task that is not yet published."""
    settings = settings or get_settings()
    task = await _get_owned_task(db, task_id, company_id)
    if task.status == ACTIVE:
        raise ForbiddenError("Cannot edit published task", resource_id=task_id)

    changes = validate_task_patch(patch, settings.max_task_reward_value)
    if "title" in changes and changes["title"].lower() != task.title.lower():
        await _ensure_title_available(db, company_id, changes["title"], exclude_task_id=task_id)

    for name, value in changes.items():
        setattr(task, name, value)
    task.updated_at = utcnow()

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Task with this title already exists for your company", resource_id=task_id
        ) from e

    await cache.invalidate(task_id)
    logger.info("task_updated", task_id=task_id, company_id=company_id, fields=sorted(changes))
    return task


async def publish_task(db: AsyncSession, cache: TaskCache, task_id: str, company_id: str) -> Task:
    """draft -> active. Requires an image and a positive reward."""
    task = await _get_owned_task(db, task_id, company_id)
    validate_transition(effective_status(task.status, task.expires_at), ACTIVE, task_id=task_id)

    if not task.image_url:
        raise ValidationError("Task must have an image to be published", field="image", resource_id=task_id)
    if task.reward_value is None or task.reward_value <= 0:
        raise ValidationError(
            "Task must have a valid reward value", field="reward_value", resource_id=task_id
        )

    result = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status == DRAFT)
        .values(status=ACTIVE, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ForbiddenError("Only draft tasks can be published", resource_id=task_id)
    await db.commit()
    await db.refresh(task)

    await cache.invalidate(task_id)
    logger.info("task_published", task_id=task_id, company_id=company_id, title=task.title)
    return task


async def feature_task(
    db: AsyncSession,
    cache: TaskCache,
    task_id: str,
    company_id: str,
    duration_days: int,
    *,
    settings: Settings | None = None,
) -> FeatureResult:
    """Promote an active task for ``duration_days`` days (paid placement)."""
    settings = settings or get_settings()
    if (
        isinstance(duration_days, bool)
        or not isinstance(duration_days, int)
        or not 1 <= duration_days <= settings.featured_max_days
    ):
        raise ValidationError(
            f"Duration must be between 1 and {settings.featured_max_days} days",
            field="duration_days",
            resource_id=task_id,
        )

    task = await _get_owned_task(db, task_id, company_id)
    require_status(
        effective_status(task.status, task.expires_at),
        ACTIVE,
        "Only active tasks can be featured",
        task_id=task_id,
    )

    now = utcnow()
    featured_until = now + timedelta(days=duration_days)
    cost = (Decimal(str(settings.featured_task_cost_per_day)) * duration_days).quantize(Decimal("0.01"))

    result = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status == ACTIVE)
        .values(is_featured=True, featured_until=featured_until, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ForbiddenError("Only active tasks can be featured", resource_id=task_id)
    await db.commit()
    await db.refresh(task)

    await cache.invalidate(task_id)
    logger.info(
        "task_featured",
        task_id=task_id,
        company_id=company_id,
        duration_days=duration_days,
        cost=str(cost),
        featured_until=featured_until.isoformat(),
    )
    return FeatureResult(task=task, cost=cost, featured_until=featured_until)


async def delete_task(
    db: AsyncSession,
    cache: TaskCache,
    generator: PuzzleGenerator,
    task_id: str,
    company_id: str,
) -> None:
    """Hard-delete a task with its attempts and rewards, then drop its image."""
    task = await _get_owned_task(db, task_id, company_id)
    puzzle_config = task.puzzle_config
    title = task.title

    await db.execute(delete(UserReward).where(UserReward.task_id == task_id))
    await db.execute(delete(TaskAttempt).where(TaskAttempt.task_id == task_id))
    await db.execute(delete(Task).where(Task.id == task_id))
    await db.commit()

    await generator.delete_assets(puzzle_config)
    await cache.invalidate(task_id)
    logger.info("task_deleted", task_id=task_id, company_id=company_id, title=title)


async def list_tasks(db: AsyncSession, filters: TaskFilters | None = None) -> TaskPage:
    """Filtered, paginated task listing. Unknown sort keys fall back to created_at."""
    filters = filters or TaskFilters()
    offset = validate_page(filters.page, filters.limit)
    if filters.status is not None and filters.status not in TASK_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TASK_STATUSES)}", field="status")

    now = utcnow()
    conditions = []
    if filters.status == EXPIRED:
        conditions.append(or_(Task.status == EXPIRED, Task.expires_at <= now))
    elif filters.status is not None:
        conditions.append(Task.status == filters.status)
        conditions.append(or_(Task.expires_at.is_(None), Task.expires_at > now))
    if filters.difficulty:
        conditions.append(Task.difficulty == filters.difficulty)
    if filters.task_type:
        conditions.append(Task.task_type == filters.task_type)
    if filters.city:
        conditions.append(CompanyProfile.city.ilike(f"%{filters.city}%"))
    if filters.featured_only:
        conditions.append(Task.is_featured.is_(True))
        conditions.append(Task.featured_until > now)
    if filters.company_id:
        conditions.append(Task.company_id == filters.company_id)

    join_on = CompanyProfile.company_id == Task.company_id

    count_query = select(func.count()).select_from(Task).outerjoin(CompanyProfile, join_on).where(*conditions)
    total = (await db.execute(count_query)).scalar_one()

    sort_column = SORT_COLUMNS.get(filters.sort_by, Task.created_at)
    ordering = sort_column.asc() if filters.sort_order.lower() == "asc" else sort_column.desc()
    result = await db.execute(
        select(Task, CompanyProfile.company_name, CompanyProfile.city)
        .outerjoin(CompanyProfile, join_on)
        .where(*conditions)
        .order_by(ordering, Task.id)
        .offset(offset)
        .limit(filters.limit)
    )

    items = [
        TaskListItem(
            id=task.id,
            company_id=task.company_id,
            company_name=company_name,
            city=city,
            title=task.title,
            description=task.description,
            task_type=task.task_type,
            difficulty=task.difficulty,
            reward_type=task.reward_type,
            reward_value=task.reward_value,
            reward_description=task.reward_description,
            image_url=task.image_url,
            status=effective_status(task.status, task.expires_at, now),
            is_featured=is_currently_featured(task.is_featured, task.featured_until, now),
            featured_until=task.featured_until,
            attempt_count=task.attempt_count,
            conversion_count=task.conversion_count,
            conversion_rate=task.conversion_rate,
            expires_at=task.expires_at,
            created_at=task.created_at,
        )
        for task, company_name, city in result.all()
    ]

    return TaskPage(tasks=items, pagination=build_pagination(filters.page, filters.limit, total))


async def get_task_analytics(db: AsyncSession, task_id: str, company_id: str) -> TaskAnalytics:
    """Attempt statistics for a company's own task.

    Totals cover every attempt; ``daily_stats`` covers the last
    ``ANALYTICS_WINDOW_DAYS`` days, newest first.
    """
    task = await _get_owned_task(db, task_id, company_id)
    successful = case((TaskAttempt.is_successful.is_(True), 1))

    totals = await db.execute(
        select(
            func.count(TaskAttempt.id),
            func.count(successful),
            func.avg(TaskAttempt.time_taken_seconds),
            func.min(TaskAttempt.time_taken_seconds),
            func.max(TaskAttempt.time_taken_seconds),
        ).where(TaskAttempt.task_id == task_id)
    )
    total, succeeded, avg_time, fastest, slowest = totals.one()

    now = utcnow()
    since = datetime.combine(now.date() - timedelta(days=ANALYTICS_WINDOW_DAYS), time.min, tzinfo=now.tzinfo)
    day = func.date(TaskAttempt.created_at)
    daily = await db.execute(
        select(day, func.count(TaskAttempt.id), func.count(successful))
        .where(TaskAttempt.task_id == task_id, TaskAttempt.created_at >= since)
        .group_by(day)
        .order_by(day.desc())
    )

    return TaskAnalytics(
        task_id=task.id,
        title=task.title,
        status=effective_status(task.status, task.expires_at, now),
        total_attempts=total,
        successful_attempts=succeeded,
        conversion_rate=round(succeeded * 100 / total, 2) if total else 0.0,
        avg_completion_time=round(float(avg_time), 2) if avg_time is not None else None,
        fastest_completion_time=fastest,
        slowest_completion_time=slowest,
        daily_stats=[
            DailyAttemptStats(day=d, attempts=attempts, successful_attempts=wins)
            for d, attempts, wins in daily.all()
        ],
    )
