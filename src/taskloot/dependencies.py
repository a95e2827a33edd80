"""Shared FastAPI dependencies."""

from functools import lru_cache

from taskloot.cache import TaskCache, get_redis
from taskloot.config import get_settings
from taskloot.puzzles.generator import PuzzleGenerator
from taskloot.storage.object_store import OssObjectStorage


def get_task_cache() -> TaskCache:
    """Task cache over the shared Redis pool (no-op when Redis is not initialized)."""
    return TaskCache(get_redis(), ttl_seconds=get_settings().task_cache_ttl_seconds)


@lru_cache
def get_puzzle_generator() -> PuzzleGenerator:
    """Process-wide generator backed by the configured object storage."""
    settings = get_settings()
    return PuzzleGenerator(OssObjectStorage(settings), settings=settings)
