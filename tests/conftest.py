"""Shared test fixtures.

Tests run against a throwaway SQLite file via aiosqlite. Every transaction
starts with ``BEGIN IMMEDIATE`` so concurrent sessions serialize on the write
lock, the way row-locking Postgres writers would.
"""

from __future__ import annotations

import io
from collections.abc import AsyncGenerator, Callable
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from taskloot.cache import TaskCache
from taskloot.config import Settings, get_settings
from taskloot.database import close_db, get_engine, get_session_factory, init_db
from taskloot.db.base import Base
from taskloot.db.models import CompanyProfile
from taskloot.errors import StorageError
from taskloot.puzzles.generator import PuzzleGenerator
from taskloot.tasks.service import create_task, publish_task

COMPANY_ID = "company-0001"
OTHER_COMPANY_ID = "company-0002"


class FakeObjectStorage:
    """In-memory ObjectStorage."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.fail_put = False
        self.fail_delete = False

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_put:
            raise StorageError(f"Failed to upload {key}")
        self.objects[key] = (data, content_type)
        return f"https://cdn.test/{key}"

    async def delete_many(self, keys: list[str]) -> None:
        if self.fail_delete:
            raise StorageError("delete failed")
        for key in keys:
            self.objects.pop(key, None)
        self.deleted.extend(keys)


class FakeRedis:
    """The subset of redis.asyncio.Redis the cache uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys: str) -> int:
        self._check()
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def ping(self) -> bool:
        self._check()
        return True


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Settings pointing at a per-test SQLite file, with Redis disabled."""
    monkeypatch.setenv("TASKLOOT_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'taskloot.db'}")
    monkeypatch.setenv("TASKLOOT_REDIS_URL", "")
    monkeypatch.setenv("TASKLOOT_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        # Let SQLAlchemy, not the driver, decide when transactions begin.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    await init_db(settings.database_url, poolclass=NullPool, connect_args={"timeout": 30})
    eng = get_engine()
    _install_sqlite_transaction_hooks(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await close_db()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> TaskCache:
    return TaskCache(fake_redis, ttl_seconds=300)


@pytest.fixture
def generator(storage: FakeObjectStorage, settings: Settings) -> PuzzleGenerator:
    executor = ThreadPoolExecutor(max_workers=2)
    yield PuzzleGenerator(storage, settings=settings, executor=executor)
    executor.shutdown(wait=True)


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory for encoded test images."""

    def _make(
        size: tuple[int, int] = (320, 240),
        fmt: str = "PNG",
        pattern: str = "gradient",
    ) -> bytes:
        width, height = size
        if pattern == "solid":
            image = Image.new("RGB", size, (200, 40, 40))
        else:
            image = Image.new("RGB", size)
            pixels = image.load()
            for x in range(width):
                for y in range(height):
                    pixels[x, y] = (x * 255 // width, y * 255 // height, (x * y) % 256)
        buf = io.BytesIO()
        image.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def image_bytes(make_image: Callable[..., bytes]) -> bytes:
    return make_image()


@pytest.fixture
def task_data() -> dict[str, Any]:
    return {
        "title": "Pizza Puzzle",
        "description": "Reassemble our signature margherita.",
        "task_type": "image-puzzle",
        "difficulty": "easy",
        "reward_type": "discount",
        "reward_value": Decimal("20.00"),
        "reward_description": "20% off any large pizza",
    }


@pytest_asyncio.fixture
async def company(db_session: AsyncSession) -> CompanyProfile:
    profile = CompanyProfile(
        company_id=COMPANY_ID,
        company_name="Slice of Life Pizzeria",
        contact_person="Maria Rossi",
        website_url="https://sliceoflife.example",
        registered_address="12 Market Street, Pune",
        city="Pune",
    )
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest_asyncio.fixture
async def draft_task(db_session, cache, generator, company, task_data, image_bytes):
    return await create_task(db_session, cache, generator, COMPANY_ID, task_data, image_bytes)


@pytest_asyncio.fixture
async def active_task(db_session, cache, draft_task):
    task = await publish_task(db_session, cache, draft_task.id, COMPANY_ID)
    # The post-publish refresh opened a transaction; end it so other sessions can write.
    await db_session.commit()
    return task


@pytest_asyncio.fixture
async def client(engine: AsyncEngine, generator: PuzzleGenerator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app, sharing the test database and fake storage."""
    from taskloot.dependencies import get_puzzle_generator
    from taskloot.main import create_app

    app = create_app()
    app.dependency_overrides[get_puzzle_generator] = lambda: generator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
