"""Shared fixtures and fakes for the task service tests."""

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.layer import MemoryCache
from app.cache.stats import CacheStats
from app.database import get_db
from app.dependencies import get_cache, get_cache_stats
from app.exceptions import CacheError
from app.main import app
from app.models import Task, TaskUpdate
from app.services.task_service import TaskService


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _clone(task: Task, **changes) -> Task:
    return Task(**{**task.model_dump(), **changes})


class InMemoryTaskStore:
    """TaskStore fake that records every call it receives."""

    def __init__(self):
        self.rows: dict[int, Task] = {}
        self.calls = Counter()
        self.error: Exception | None = None
        self._next_id = 1

    def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if self.error is not None:
            raise self.error

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def insert(self, title, description, status, ts) -> int:
        self._enter("insert")
        task_id = self._next_id
        self._next_id += 1
        self.rows[task_id] = Task(
            id=task_id,
            title=title,
            description=description,
            status=status,
            created_at=ts,
            updated_at=ts,
        )
        return task_id

    async def get_by_id(self, task_id: int) -> Task | None:
        self._enter("get_by_id")
        row = self.rows.get(task_id)
        return _clone(row) if row is not None else None

    async def update_by_id(self, task_id: int, patch: TaskUpdate, ts) -> Task | None:
        self._enter("update_by_id")
        row = self.rows.get(task_id)
        if row is None:
            return None
        updated = _clone(
            row,
            title=patch.title or row.title,
            description=patch.description or row.description,
            status=patch.status or row.status,
            updated_at=ts,
        )
        self.rows[task_id] = updated
        return _clone(updated)

    async def delete_by_id(self, task_id: int) -> int:
        self._enter("delete_by_id")
        return 1 if self.rows.pop(task_id, None) is not None else 0

    async def list(self, limit: int, offset: int) -> list[Task]:
        self._enter("list")
        self.last_list_args = (limit, offset)
        ordered = sorted(
            self.rows.values(), key=lambda t: (t.created_at, t.id), reverse=True
        )
        return [_clone(t) for t in ordered[offset : offset + limit]]


class FailingCache(MemoryCache):
    """MemoryCache whose operations can be switched to raise CacheError."""

    def __init__(self, fail_get=False, fail_set=False, fail_delete=False):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.fail_delete = fail_delete
        self.calls = Counter()

    async def get(self, key):
        self.calls["get"] += 1
        if self.fail_get:
            raise CacheError("connection refused")
        return await super().get(key)

    async def set(self, key, value, ttl_seconds):
        self.calls["set"] += 1
        if self.fail_set:
            raise CacheError("connection refused")
        await super().set(key, value, ttl_seconds)

    async def delete(self, key):
        self.calls["delete"] += 1
        if self.fail_delete:
            raise CacheError("connection refused")
        await super().delete(key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def cache() -> FailingCache:
    """A healthy cache; individual tests flip the failure switches."""
    return FailingCache()


@pytest.fixture
def stats() -> CacheStats:
    return CacheStats()


@pytest.fixture
def service(store, cache, stats, clock) -> TaskService:
    return TaskService(store, cache, stats=stats, clock=clock)


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the tasks table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess


@pytest.fixture
async def client(session_factory, cache, stats):
    """HTTP client running the full stack against SQLite and the fake cache."""

    async def _get_db():
        async with session_factory() as sess:
            yield sess

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_cache_stats] = lambda: stats
    app.state.cache_stats = stats

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    del app.state.cache_stats
