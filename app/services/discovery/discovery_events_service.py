"""
Discovery events service: the cache-through entry point of the pipeline.

request -> context -> cache key -> cache read (unless force_fresh)
        -> on miss: fan-out fetch -> cache write (mode TTL)
        -> on fetch failure: serve whatever the cache holds for the same key.

No retry of the upstream fetch happens here; the catalog client owns that.
Two concurrent misses for the same key may both fetch and both write; the
cache TTL bounds the duplication.
"""

import time

from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_fetch_summary
from app.models.api.discovery_request import DiscoveryEventsRequest
from app.models.domain.discovery_domain import CacheStatus, FetchContext, FetchResult
from app.services.catalog.catalog_client import CatalogClientFactory, create_catalog_client
from app.services.discovery.cache_keys import cache_ttl_for, discovery_cache_key
from app.services.discovery.cache_store import CacheStore, InMemoryCacheStore, RedisCacheStore
from app.services.discovery.context_builder import ConfigResolver, ContextDefaults, build_context
from app.services.discovery.fan_out import FanOutLimits, fetch_and_transform_events
from app.services.page_config_service import page_config_service

logger = get_logger(__name__)


class DiscoveryEventsError(Exception):
    """Fresh fetch failed and no cached payload exists for the key."""

    def __init__(self, message: str, cache_key: str | None = None):
        super().__init__(message)
        self.cache_key = cache_key


class DiscoveryEventsService:
    def __init__(
        self,
        cache_store: CacheStore,
        config_resolver: ConfigResolver | None = None,
        client_factory: CatalogClientFactory = create_catalog_client,
        defaults: ContextDefaults | None = None,
        limits: FanOutLimits | None = None,
    ):
        self.cache_store = cache_store
        self.config_resolver = config_resolver
        self.client_factory = client_factory
        self.defaults = defaults
        self.limits = limits

    async def build_context(self, request: DiscoveryEventsRequest) -> FetchContext:
        return await build_context(request, self.config_resolver, self.defaults)

    async def get_discovery_events(self, request: DiscoveryEventsRequest) -> FetchResult:
        started = time.monotonic()
        context = await self.build_context(request)
        cache_key = discovery_cache_key(context)

        if not request.force_fresh:
            cached = await self.cache_store.get(cache_key)
            if cached is not None:
                logger.debug("Discovery cache hit", slug=context.slug, mode=context.mode.value)
                return FetchResult(cached, CacheStatus.HIT, cache_key, context)

        try:
            payload = await fetch_and_transform_events(
                context, self.client_factory(context.api_key), limits=self.limits
            )
        except Exception as e:
            stale = await self.cache_store.get(cache_key)
            if stale is None:
                logger.error(
                    "Discovery fetch failed with no cached fallback",
                    slug=context.slug,
                    mode=context.mode.value,
                    error=str(e),
                )
                raise DiscoveryEventsError(
                    f"Failed to fetch discovery events: {e}", cache_key=cache_key
                ) from e

            log_fetch_summary(
                context.slug,
                context.mode.value,
                CacheStatus.HIT.value,
                stale.meta.total_events,
                round((time.monotonic() - started) * 1000, 1),
                stale=True,
            )
            return FetchResult(stale, CacheStatus.HIT, cache_key, context)

        try:
            await self.cache_store.set(cache_key, payload, cache_ttl_for(context))
        except Exception as e:
            logger.warning("Failed to cache discovery payload", cache_key=cache_key[:60], error=str(e))

        log_fetch_summary(
            context.slug,
            context.mode.value,
            CacheStatus.MISS.value,
            payload.meta.total_events,
            round((time.monotonic() - started) * 1000, 1),
        )
        return FetchResult(payload, CacheStatus.MISS, cache_key, context)


def _default_cache_store() -> CacheStore:
    if settings.DISCOVERY_CACHE_BACKEND == "memory":
        return InMemoryCacheStore()
    return RedisCacheStore()


# Singleton instance
discovery_events_service = DiscoveryEventsService(
    cache_store=_default_cache_store(),
    config_resolver=page_config_service,
)


async def get_discovery_events(request: DiscoveryEventsRequest) -> FetchResult:
    """Public entry point: aggregated discovery events, cache-through."""
    return await discovery_events_service.get_discovery_events(request)
