"""Task API endpoints.

Company-only: create, update, publish, feature, delete, own-task listing, analytics.
Public: list (active tasks only), get (caller attempt included when identified).
"""

from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.auth.dependencies import Principal, get_current_company, get_optional_principal
from taskloot.cache import TaskCache
from taskloot.database import get_session
from taskloot.dependencies import get_puzzle_generator, get_task_cache
from taskloot.errors import InvalidImageError
from taskloot.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from taskloot.puzzles.generator import PuzzleGenerator
from taskloot.tasks.lifecycle import ACTIVE
from taskloot.tasks.schemas import (
    CreateTaskRequest,
    FeatureTaskRequest,
    FeatureTaskResponse,
    TaskAnalytics,
    TaskFilters,
    TaskPage,
    TaskResponse,
    TaskView,
    UpdateTaskRequest,
)
from taskloot.tasks.service import (
    create_task,
    delete_task,
    feature_task,
    get_task,
    get_task_analytics,
    list_tasks,
    publish_task,
    task_to_response,
    update_task,
)

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


def _decode_image(image_base64: str | None) -> bytes | None:
    if image_base64 is None:
        return None
    if "," in image_base64 and image_base64.startswith("data:"):
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError("Image must be base64-encoded") from e


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task_endpoint(
    body: CreateTaskRequest,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
    generator: PuzzleGenerator = Depends(get_puzzle_generator),
) -> TaskResponse:
    """Create a draft task, generating its puzzle when an image is attached."""
    image = _decode_image(body.image_base64)
    data = body.model_dump(exclude={"image_base64"})
    task = await create_task(db, cache, generator, company.user_id, data, image)
    return task_to_response(task)


@router.get("", response_model=TaskPage)
async def list_tasks_endpoint(
    difficulty: str | None = Query(None),
    task_type: str | None = Query(None),
    city: str | None = Query(None),
    company_id: str | None = Query(None),
    featured_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_session),
) -> TaskPage:
    """Public catalogue. Only active, unexpired tasks are listed."""
    filters = TaskFilters(
        status=ACTIVE,
        difficulty=difficulty,
        task_type=task_type,
        city=city,
        company_id=company_id,
        featured_only=featured_only,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await list_tasks(db, filters)


@router.get("/mine", response_model=TaskPage)
async def list_company_tasks_endpoint(
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
) -> TaskPage:
    """The caller's own tasks, drafts included. No status filter lists every status."""
    filters = TaskFilters(
        status=status,
        company_id=company.user_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await list_tasks(db, filters)


@router.get("/{task_id}", response_model=TaskView)
async def get_task_endpoint(
    task_id: str,
    principal: Principal | None = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
) -> TaskView:
    return await get_task(db, cache, task_id, principal.user_id if principal else None)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task_endpoint(
    task_id: str,
    body: UpdateTaskRequest,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
) -> TaskResponse:
    task = await update_task(db, cache, task_id, company.user_id, body.model_dump(exclude_unset=True))
    return task_to_response(task)


@router.post("/{task_id}/publish", response_model=TaskResponse)
async def publish_task_endpoint(
    task_id: str,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
) -> TaskResponse:
    task = await publish_task(db, cache, task_id, company.user_id)
    return task_to_response(task)


@router.post("/{task_id}/feature", response_model=FeatureTaskResponse)
async def feature_task_endpoint(
    task_id: str,
    body: FeatureTaskRequest,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
) -> FeatureTaskResponse:
    """Paid promotion. Payment collection happens outside this service."""
    result = await feature_task(db, cache, task_id, company.user_id, body.duration_days)
    return FeatureTaskResponse(
        task=task_to_response(result.task),
        cost=result.cost,
        featured_until=result.featured_until,
    )


@router.delete("/{task_id}", status_code=204)
async def delete_task_endpoint(
    task_id: str,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
    cache: TaskCache = Depends(get_task_cache),
    generator: PuzzleGenerator = Depends(get_puzzle_generator),
) -> Response:
    await delete_task(db, cache, generator, task_id, company.user_id)
    return Response(status_code=204)


@router.get("/{task_id}/analytics", response_model=TaskAnalytics)
async def task_analytics_endpoint(
    task_id: str,
    company: Principal = Depends(get_current_company),
    db: AsyncSession = Depends(get_session),
) -> TaskAnalytics:
    return await get_task_analytics(db, task_id, company.user_id)
