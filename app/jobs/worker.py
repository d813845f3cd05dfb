"""
Background worker entrypoint.

    python -m app.jobs.worker [job]      # or WORKER_JOB=<job>

``discovery_warm`` runs the warm scheduler forever; ``discovery_warm_once``
runs a single pass (for platform cron triggers) and exits.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.jobs.discovery_warm_job import run_discovery_warm_job, start_discovery_warm_scheduler
from app.services.catalog.catalog_client import close_shared_http_client
from app.services.infrastructure.redis_client import fast_redis

logger = get_logger(__name__)

DEFAULT_JOB = "discovery_warm"

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "discovery_warm": start_discovery_warm_scheduler,
    "discovery_warm_once": run_discovery_warm_job,
}


def _resolve_job_name() -> str:
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Look up ``job_name`` in JOB_REGISTRY and await it. Unknown names raise ValueError."""
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        available = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {available}")

    logger.info("Starting background worker", job=name)
    await job()


async def _run_with_resources(job_name: str) -> None:
    if settings.database_configured():
        await db_pool.initialize()
    try:
        await run_worker(job_name)
    finally:
        await close_shared_http_client()
        await fast_redis.close()
        await db_pool.close()


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(_run_with_resources(_resolve_job_name()))


if __name__ == "__main__":
    main()
