import logging
from datetime import datetime
from typing import Callable

from app.cache.layer import TaskCache
from app.cache.stats import CacheStats
from app.exceptions import CacheError, TaskValidationError
from app.models import MAX_INT64, Task, TaskCreate, TaskResponse, TaskStatus, TaskUpdate, get_utc_now
from app.repositories.task_store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


def serialize_task(task: Task) -> str:
    """Snapshot format shared by the cache and the HTTP responses."""
    return TaskResponse.model_validate(task).model_dump_json()


class TaskService:
    """
    Read-through / write-refresh access to tasks.

    The store is authoritative. The cache only ever holds snapshots the
    service itself serialized from store results, and any cache failure is
    logged, counted in ``stats`` and otherwise ignored:

    - get: cache first; on miss (or cache error) read the store and
      populate the cache with the fixed TTL.
    - update: conditional update in the store, then overwrite the cache
      entry with the returned row.
    - delete: delete in the store, then drop the cache entry.
    - create and list never touch the cache.

    Concurrent updates of one task may refresh the cache in either order;
    there is no version check on the cached entry.
    """

    def __init__(
        self,
        store: TaskStore,
        cache: TaskCache,
        *,
        stats: CacheStats | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "task:",
        default_page: int = DEFAULT_PAGE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self.store = store
        self.cache = cache
        self.stats = stats if stats is not None else CacheStats()
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.default_page = default_page
        self.default_page_size = default_page_size
        self._clock = clock

    def cache_key(self, task_id: int) -> str:
        return f"{self.key_prefix}{task_id}"

    async def create_task(self, task_data: TaskCreate) -> int:
        if not task_data.title:
            raise TaskValidationError("Title is required")

        task_id = await self.store.insert(
            task_data.title,
            task_data.description,
            TaskStatus.PENDING.value,
            self._clock(),
        )
        logger.info(f"Created task {task_id}")
        return task_id

    async def get_task(self, task_id: int) -> str | None:
        """
        Return the serialized task, or None when it does not exist.

        A cache hit is returned verbatim without a store round trip.
        """
        key = self.cache_key(task_id)

        cached = await self._cache_get(key)
        if cached is not None:
            self.stats.incr("hits")
            logger.debug(f"Cache hit for {key}")
            return cached

        self.stats.incr("misses")
        logger.debug(f"Cache miss for {key}, loading from store")

        task = await self.store.get_by_id(task_id)
        if task is None:
            return None

        snapshot = serialize_task(task)
        await self._cache_set(key, snapshot)
        return snapshot

    async def update_task(self, task_id: int, task_data: TaskUpdate) -> str | None:
        """Apply a partial update and return the serialized post-update task."""
        if task_data.status and task_data.status not in TaskStatus.values():
            raise TaskValidationError("Invalid status value")

        task = await self.store.update_by_id(task_id, task_data, self._clock())
        if task is None:
            return None

        snapshot = serialize_task(task)
        await self._cache_set(self.cache_key(task_id), snapshot)
        logger.info(f"Updated task {task_id}")
        return snapshot

    async def delete_task(self, task_id: int) -> bool:
        deleted = await self.store.delete_by_id(task_id)
        if deleted == 0:
            return False

        await self._cache_delete(self.cache_key(task_id))
        logger.info(f"Deleted task {task_id}")
        return True

    async def list_tasks(self, page: int | None = None, size: int | None = None) -> list[Task]:
        """
        List tasks newest first.

        Non-positive page or size, or values whose offset would not fit a
        64-bit column, use the defaults.
        """
        if size is None or not 0 < size <= MAX_INT64:
            size = self.default_page_size
        if page is None or not 0 < page <= MAX_INT64 or (page - 1) * size > MAX_INT64:
            page = self.default_page

        offset = (page - 1) * size
        return await self.store.list(size, offset)

    async def _cache_get(self, key: str) -> str | None:
        try:
            return await self.cache.get(key)
        except CacheError as e:
            self.stats.incr("read_errors")
            logger.warning(f"Cache read failed, falling back to store: {e}")
            return None

    async def _cache_set(self, key: str, snapshot: str) -> None:
        try:
            await self.cache.set(key, snapshot, self.ttl_seconds)
        except CacheError as e:
            # entry may stay stale until its TTL runs out
            self.stats.incr("write_errors")
            logger.warning(f"Cache write failed for {key}: {e}")

    async def _cache_delete(self, key: str) -> None:
        try:
            await self.cache.delete(key)
        except CacheError as e:
            self.stats.incr("delete_errors")
            logger.warning(f"Cache delete failed for {key}: {e}")
