from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.layer import TaskCache
from app.cache.stats import CacheStats
from app.core.config import SettingsDep
from app.database import get_db
from app.repositories.task_store import SQLTaskStore
from app.services.task_service import TaskService


def get_cache(request: Request) -> TaskCache:
    return request.app.state.cache


def get_cache_stats(request: Request) -> CacheStats:
    return request.app.state.cache_stats


def get_task_service(
    settings: SettingsDep,
    db: AsyncSession = Depends(get_db),
    cache: TaskCache = Depends(get_cache),
    stats: CacheStats = Depends(get_cache_stats),
) -> TaskService:
    """Build a per-request service around the request's DB session."""
    return TaskService(
        SQLTaskStore(db),
        cache,
        stats=stats,
        ttl_seconds=settings.task_cache_ttl_seconds,
        key_prefix=settings.cache_key_prefix,
        default_page=settings.default_page,
        default_page_size=settings.default_page_size,
    )
