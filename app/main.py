import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.cache.layer import build_cache
from app.cache.stats import CacheStats
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.database import create_db_and_tables
from app.exceptions import StoreError
from app.routers import tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    if settings.create_tables_on_startup:
        await create_db_and_tables()

    cache = build_cache(settings)
    if await cache.ping():
        logger.info("Task cache connection established")
    else:
        # Degraded: every cache call fails and reads fall through to the store
        logger.error("Task cache unreachable, serving from the database only")

    app.state.cache = cache
    app.state.cache_stats = CacheStats()
    yield
    await cache.close()


app = FastAPI(
    title="Task Management API",
    description="Task management API with PostgreSQL and a read-through Redis cache",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(tasks.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed ids and bodies are client errors with a fixed message."""
    errors = exc.errors()
    if any(err.get("loc", ())[:1] == ("path",) for err in errors):
        detail = "Invalid task ID"
    else:
        detail = "Invalid request payload"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/")
async def root():
    return {
        "message": "Welcome to Task Management API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check(request: Request):
    stats = getattr(request.app.state, "cache_stats", None)
    return {
        "status": "healthy",
        "cache": stats.snapshot() if stats is not None else None,
    }


def run():
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
