"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.cache import get_redis
from taskloot.config import get_settings
from taskloot.database import get_session

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe. The cache is optional, so a missing Redis only degrades."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    redis = get_redis()
    if redis is None:
        checks["cache"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["cache"] = "ok"
        except Exception as exc:
            checks["cache"] = f"error: {exc}"

    ready = checks["database"] == "ok"
    degraded = checks["cache"] not in ("ok", "disabled")
    status = "ready" if ready and not degraded else ("degraded" if ready else "unavailable")
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
