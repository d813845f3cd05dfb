# app/main.py
"""
Discovery events API.

Lifespan opens the optional stores (page config database, Redis cache) and
closes them together with the shared catalog HTTP client on shutdown.
"""

import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import discovery, health
from app.services.catalog.catalog_client import close_shared_http_client
from app.services.infrastructure.redis_client import fast_redis

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)

Closer = Callable[[], Awaitable[None]]


async def _close_all(closers: list[tuple[str, Closer]]) -> list[str]:
    """Run closers in order; collect failures instead of stopping at the first."""
    errors = []
    for name, close in closers:
        try:
            await close()
        except Exception as e:
            logger.error("Error closing service", service=name, error=str(e))
            errors.append(f"{name}: {e}")
    return errors


async def _open_stores() -> list[tuple[str, Closer]]:
    """Open configured stores; returns their closers, most recent first."""
    opened: list[tuple[str, Closer]] = []
    try:
        if settings.database_configured():
            await db_pool.initialize()
            opened.insert(0, ("database_pool", db_pool.close))
        else:
            logger.warning("DATABASE_URL not set, page configuration lookups disabled")

        if settings.DISCOVERY_CACHE_BACKEND == "redis":
            if settings.redis_url():
                await fast_redis.initialize()
                opened.insert(0, ("redis", fast_redis.close))
            else:
                logger.warning("Redis not configured, discovery cache reads will miss")
    except Exception as e:
        logger.error(
            "Failed to initialize services",
            error=str(e),
            completed_tasks=[name for name, _ in opened],
        )
        await _close_all(opened)
        raise
    return opened


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    opened = await _open_stores()
    logger.info(
        "Services initialized",
        services=[name for name, _ in opened],
        cache_backend=settings.DISCOVERY_CACHE_BACKEND,
    )

    yield

    logger.info("Application shutting down")
    errors = await _close_all([("catalog_http_client", close_shared_http_client), *opened])
    if errors:
        logger.warning("Some services had shutdown errors", errors=errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Discovery Events",
    description="Aggregated, cached program events for discovery pages",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CORSMiddleware, allowed_origins=settings.CORS_ALLOWED_ORIGINS)
app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(discovery.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        cache_status=response.headers.get("X-Cache"),
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
