import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.exceptions import StoreError
from app.models import Task, TaskUpdate

logger = logging.getLogger(__name__)

_tasks = Task.__table__


@runtime_checkable
class TaskStore(Protocol):
    """Authoritative storage for task records."""

    async def insert(
        self, title: str, description: str | None, status: str, ts: datetime
    ) -> int: ...

    async def get_by_id(self, task_id: int) -> Task | None: ...

    async def update_by_id(
        self, task_id: int, patch: TaskUpdate, ts: datetime
    ) -> Task | None: ...

    async def delete_by_id(self, task_id: int) -> int: ...

    async def list(self, limit: int, offset: int) -> list[Task]: ...


class SQLTaskStore:
    """
    TaskStore on an async SQLModel session.

    Every mutating method commits before returning, so callers can rely on
    the change being durable once the call completes.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Task store {operation} failed: {e}")
            await self._session.rollback()
            raise StoreError(f"task store {operation} failed") from e

    async def insert(
        self, title: str, description: str | None, status: str, ts: datetime
    ) -> int:
        task = Task(
            title=title,
            description=description,
            status=status,
            created_at=ts,
            updated_at=ts,
        )
        async with self._guard("insert"):
            self._session.add(task)
            await self._session.flush()
            task_id = task.id
            await self._session.commit()
        return task_id

    async def get_by_id(self, task_id: int) -> Task | None:
        async with self._guard("get"):
            return await self._session.get(Task, task_id, populate_existing=True)

    async def update_by_id(
        self, task_id: int, patch: TaskUpdate, ts: datetime
    ) -> Task | None:
        """
        Merge the patch into the row in one statement.

        Missing or empty fields fall back to the current column value
        through COALESCE, and the post-update row comes back via RETURNING.
        """
        stmt = (
            update(_tasks)
            .where(_tasks.c.id == task_id)
            .values(
                title=func.coalesce(patch.title or None, _tasks.c.title),
                description=func.coalesce(
                    patch.description or None, _tasks.c.description
                ),
                status=func.coalesce(patch.status or None, _tasks.c.status),
                updated_at=ts,
            )
            .returning(*_tasks.c)
        )
        async with self._guard("update"):
            result = await self._session.exec(stmt)
            row = result.mappings().one_or_none()
            await self._session.commit()

        if row is None:
            return None
        return Task.model_validate(dict(row))

    async def delete_by_id(self, task_id: int) -> int:
        stmt = delete(_tasks).where(_tasks.c.id == task_id)
        async with self._guard("delete"):
            result = await self._session.exec(stmt)
            await self._session.commit()
        return result.rowcount

    async def list(self, limit: int, offset: int) -> list[Task]:
        query = (
            select(Task)
            .order_by(Task.created_at.desc(), Task.id.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        async with self._guard("list"):
            result = await self._session.exec(query)
            return list(result.all())
