from datetime import UTC, datetime

import pytest

from app.models.api.discovery_request import DiscoveryEventsRequest
from app.models.api.discovery_response import EventsMeta, EventsPayload, FullEvent
from app.models.domain.discovery_domain import CacheStatus, DiscoveryMode
from app.models.domain.page_config_domain import PageConfig
from app.services.discovery import discovery_events_service as service_module
from app.services.discovery.cache_store import InMemoryCacheStore
from app.services.discovery.context_builder import ContextDefaults
from app.services.discovery.discovery_events_service import (
    DiscoveryEventsError,
    DiscoveryEventsService,
)

DEFAULTS = ContextDefaults(api_key="global-key", org_ids=("org-1",))


def _payload(*event_ids: str) -> EventsPayload:
    return EventsPayload(
        data=[
            FullEvent(
                id=event_id,
                session_id="s1",
                title="Cached",
                start_date="2025-06-20T22:00:00Z",
                program_id="p1",
                program_name="Program",
            )
            for event_id in event_ids
        ],
        meta=EventsMeta(
            total_events=len(event_ids),
            organization_count=1,
            fetch_duration_ms=5,
            cached_at=datetime(2025, 6, 15, tzinfo=UTC),
            mode=DiscoveryMode.FULL,
        ),
    )


class RecordingStore(InMemoryCacheStore):
    def __init__(self):
        super().__init__()
        self.writes: list[tuple[str, int]] = []

    async def set(self, key, payload, ttl_seconds):
        self.writes.append((key, ttl_seconds))
        await super().set(key, payload, ttl_seconds)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def upstream(builders, catalog):
    """A catalog with one upcoming event, plus a record of which api keys built clients."""
    client = catalog(
        programs={"org-1": [builders.program("p1", [builders.session("s1", endDate="2099-12-31")])]},
        session_events={"s1": [builders.event("e1", "2099-06-20T22:00:00Z")]},
    )
    api_keys: list[str] = []

    def factory(api_key):
        api_keys.append(api_key)
        return client

    return client, factory, api_keys


def _service(store, factory, resolver=None):
    return DiscoveryEventsService(
        cache_store=store,
        config_resolver=resolver,
        client_factory=factory,
        defaults=DEFAULTS,
    )


@pytest.mark.asyncio
async def test_miss_fetches_and_caches_with_mode_ttl(store, upstream):
    client, factory, api_keys = upstream
    service = _service(store, factory)

    result = await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))

    assert result.cache_status is CacheStatus.MISS
    assert [e.id for e in result.payload.data] == ["e1"]
    assert api_keys == ["global-key"]
    assert store.writes == [(result.cache_key, 900)]


@pytest.mark.asyncio
async def test_hit_makes_no_upstream_calls(store, upstream):
    client, factory, _ = upstream
    service = _service(store, factory)
    request = DiscoveryEventsRequest(slug="riverside")
    first = await service.get_discovery_events(request)
    calls_after_first = client.call_count()

    second = await service.get_discovery_events(request)

    assert second.cache_status is CacheStatus.HIT
    assert second.cache_key == first.cache_key
    assert client.call_count() == calls_after_first
    assert second.payload == first.payload


@pytest.mark.asyncio
async def test_force_fresh_skips_cache_read(store, upstream):
    client, factory, _ = upstream
    service = _service(store, factory)
    await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))
    calls_after_first = client.call_count()

    result = await service.get_discovery_events(
        DiscoveryEventsRequest(slug="riverside", force_fresh=True)
    )

    assert result.cache_status is CacheStatus.MISS
    assert client.call_count() > calls_after_first
    assert len(store.writes) == 2


@pytest.mark.asyncio
async def test_modes_are_cached_separately(store, upstream):
    _, factory, _ = upstream
    service = _service(store, factory)
    await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))

    result = await service.get_discovery_events(
        DiscoveryEventsRequest(slug="riverside", mode="availability")
    )

    assert result.cache_status is CacheStatus.MISS
    assert result.payload.meta.mode is DiscoveryMode.AVAILABILITY
    assert store.writes[1] == (result.cache_key, 60)
    assert store.writes[0][0] != result.cache_key


@pytest.mark.asyncio
async def test_fetch_failure_serves_stale_entry(store, monkeypatch):
    service = _service(store, lambda api_key: object())
    context = await service.build_context(DiscoveryEventsRequest(slug="riverside"))
    stale = _payload("old-1", "old-2")
    await store.set(
        service_module.discovery_cache_key(context), stale, 900
    )

    async def failing_fetch(*args, **kwargs):
        raise RuntimeError("upstream down")

    monkeypatch.setattr(service_module, "fetch_and_transform_events", failing_fetch)

    result = await service.get_discovery_events(
        DiscoveryEventsRequest(slug="riverside", force_fresh=True)
    )

    assert result.cache_status is CacheStatus.HIT
    assert [e.id for e in result.payload.data] == ["old-1", "old-2"]


@pytest.mark.asyncio
async def test_fetch_failure_without_stale_entry_raises(store, monkeypatch):
    service = _service(store, lambda api_key: object())

    async def failing_fetch(*args, **kwargs):
        raise RuntimeError("upstream down")

    monkeypatch.setattr(service_module, "fetch_and_transform_events", failing_fetch)

    with pytest.raises(DiscoveryEventsError) as exc_info:
        await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))

    assert exc_info.value.cache_key.startswith("discovery:full:riverside:")
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert store.writes == []


@pytest.mark.asyncio
async def test_cache_write_failure_still_returns_payload(upstream):
    _, factory, _ = upstream

    class BrokenStore(InMemoryCacheStore):
        async def set(self, key, payload, ttl_seconds):
            raise ConnectionError("cache unavailable")

    service = _service(BrokenStore(), factory)

    result = await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))

    assert result.cache_status is CacheStatus.MISS
    assert [e.id for e in result.payload.data] == ["e1"]


@pytest.mark.asyncio
async def test_page_config_drives_client_and_ttl(store, upstream, config_resolver):
    _, factory, api_keys = upstream
    resolver = config_resolver(
        {"riverside": PageConfig(slug="riverside", api_key="page-key", cache_ttl=300)}
    )
    service = _service(store, factory, resolver)

    result = await service.get_discovery_events(DiscoveryEventsRequest(slug="riverside"))

    assert api_keys == ["page-key"]
    assert store.writes == [(result.cache_key, 300)]
    assert "page-key" not in result.cache_key
