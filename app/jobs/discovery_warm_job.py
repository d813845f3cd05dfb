"""
Discovery cache warm job.

Pre-computes the full and availability payloads for every active page that
opted into discovery caching, so visitors hit a warm cache. Each page's
refresh policy decides how often it is re-warmed; the last refresh time is
kept in Redis under discovery:refreshed:{slug}.
"""

import asyncio
import time
from dataclasses import asdict, dataclass

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.api.discovery_request import DiscoveryEventsRequest
from app.models.domain.discovery_domain import DiscoveryMode
from app.models.domain.page_config_domain import PageConfig
from app.services.discovery.concurrency import run_with_concurrency
from app.services.discovery.discovery_events_service import get_discovery_events
from app.services.infrastructure.redis_client import fast_redis
from app.services.page_config_service import page_config_service

logger = get_logger(__name__)

REFRESH_POLICY_SECONDS = {
    "5min": 5 * 60,
    "15min": 15 * 60,
    "30min": 30 * 60,
    "1hour": 60 * 60,
    "daily": 24 * 60 * 60,
}
DEFAULT_REFRESH_POLICY = "15min"
REFRESH_MARKER_TTL = 2 * 24 * 60 * 60


def refresh_marker_key(slug: str) -> str:
    return f"discovery:refreshed:{slug}"


def refresh_interval_seconds(policy: str | None) -> int:
    return REFRESH_POLICY_SECONDS.get(
        policy or DEFAULT_REFRESH_POLICY, REFRESH_POLICY_SECONDS[DEFAULT_REFRESH_POLICY]
    )


async def should_refresh_discovery(slug: str, policy: str | None, now: float | None = None) -> bool:
    """True when the slug was never warmed or its policy interval has elapsed."""
    raw = await fast_redis.get(refresh_marker_key(slug))
    if raw is None:
        return True
    try:
        last_refreshed = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid refresh marker in Redis", slug=slug, value=raw)
        return True
    now = time.time() if now is None else now
    return now - last_refreshed >= refresh_interval_seconds(policy)


async def mark_discovery_refreshed(slug: str, now: float | None = None) -> None:
    now = time.time() if now is None else now
    await fast_redis.set_with_ttl(refresh_marker_key(slug), str(now), REFRESH_MARKER_TTL)


@dataclass(slots=True)
class WarmDetail:
    slug: str
    status: str  # "warmed" or "error"
    duration_ms: int
    total_events: int | None = None


async def _warm_page(config: PageConfig) -> WarmDetail:
    started = time.monotonic()
    try:
        full = await get_discovery_events(
            DiscoveryEventsRequest(slug=config.slug, mode=DiscoveryMode.FULL, force_fresh=True)
        )
        await get_discovery_events(
            DiscoveryEventsRequest(
                slug=config.slug, mode=DiscoveryMode.AVAILABILITY, force_fresh=True
            )
        )
        await mark_discovery_refreshed(config.slug)
        return WarmDetail(
            slug=config.slug,
            status="warmed",
            duration_ms=int((time.monotonic() - started) * 1000),
            total_events=full.payload.meta.total_events,
        )
    except Exception as e:
        logger.error("Failed to warm discovery cache", slug=config.slug, error=str(e))
        return WarmDetail(
            slug=config.slug,
            status="error",
            duration_ms=int((time.monotonic() - started) * 1000),
        )


async def run_discovery_warm_job() -> dict:
    """Warm every due page once and return a summary."""
    started = time.monotonic()

    configs = await page_config_service.list_active_configs()
    active = [c for c in configs if c.is_active and c.discovery_cache_enabled]

    due: list[PageConfig] = []
    skipped: list[str] = []
    for config in active:
        if await should_refresh_discovery(config.slug, config.discovery_refresh_policy):
            due.append(config)
        else:
            skipped.append(config.slug)

    details = await run_with_concurrency(due, settings.DISCOVERY_WARM_CONCURRENCY, _warm_page)

    summary = {
        "total_active": len(active),
        "warmed": sum(1 for d in details if d.status == "warmed"),
        "skipped": len(skipped),
        "elapsed_ms": int((time.monotonic() - started) * 1000),
        "details": [asdict(d) for d in details],
    }
    logger.info(
        "Discovery warm job completed",
        total_active=summary["total_active"],
        warmed=summary["warmed"],
        skipped=summary["skipped"],
        elapsed_ms=summary["elapsed_ms"],
    )
    return summary


async def start_discovery_warm_scheduler():
    """Run the warm job forever at DISCOVERY_WARM_INTERVAL_MINUTES."""
    interval_minutes = settings.DISCOVERY_WARM_INTERVAL_MINUTES
    logger.info("Starting discovery warm scheduler", interval_minutes=interval_minutes)

    while True:
        try:
            await run_discovery_warm_job()
            await asyncio.sleep(interval_minutes * 60)
        except asyncio.CancelledError:
            logger.info("Discovery warm scheduler cancelled")
            raise
        except Exception as e:
            logger.error(
                "Error in discovery warm scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(60)


if __name__ == "__main__":
    asyncio.run(run_discovery_warm_job())
