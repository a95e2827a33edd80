"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from taskloot.attempts.router import router as attempts_router
from taskloot.cache import close_redis, init_redis
from taskloot.config import get_settings
from taskloot.database import close_db, init_db
from taskloot.health.router import router as health_router
from taskloot.middleware import setup_middleware
from taskloot.puzzles.generator import shutdown_puzzle_executor
from taskloot.rewards.router import router as rewards_router
from taskloot.tasks.router import router as tasks_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    yield

    shutdown_puzzle_executor()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="TaskLoot API",
        description="Puzzle tasks, attempts and redeemable rewards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(tasks_router)
    app.include_router(attempts_router)
    app.include_router(rewards_router)

    return app


app = create_app()
