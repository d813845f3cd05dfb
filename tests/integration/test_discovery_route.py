"""
Integration tests for the discovery routes: query mapping, cache headers,
error translation and cron authorization.
"""

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.middleware.cors import CORSMiddleware
from app.models.api.discovery_response import EventsMeta, EventsPayload, FullEvent
from app.models.domain.discovery_domain import CacheStatus, DiscoveryMode, FetchResult
from app.routes import discovery as discovery_routes
from app.services.discovery.cache_store import InMemoryCacheStore
from app.services.discovery.context_builder import ContextDefaults
from app.services.discovery.discovery_events_service import (
    DiscoveryEventsError,
    DiscoveryEventsService,
)

client = TestClient(app)


def _result(context, cache_status=CacheStatus.MISS) -> FetchResult:
    payload = EventsPayload(
        data=[
            FullEvent(
                id="e1",
                session_id="s1",
                title="Open Gym",
                start_date="2099-06-20T22:00:00Z",
                program_id="p1",
                program_name="Open Gym",
            )
        ],
        meta=EventsMeta(
            total_events=1,
            organization_count=len(context.org_ids),
            fetch_duration_ms=3,
            cached_at=datetime(2025, 6, 15, tzinfo=UTC),
            mode=context.mode,
        ),
    )
    return FetchResult(payload, cache_status, "discovery:full:test", context)


@pytest.fixture
def captured_requests(monkeypatch, builders):
    captured = []

    async def fake_get_discovery_events(request):
        captured.append(request)
        context = builders.context(
            slug=request.slug or "adhoc",
            org_ids=tuple(request.org_ids or ()),
            mode=request.mode,
            full_cache_ttl=900,
            availability_cache_ttl=60,
        )
        return _result(context, CacheStatus.HIT if not request.force_fresh else CacheStatus.MISS)

    monkeypatch.setattr(discovery_routes, "get_discovery_events", fake_get_discovery_events)
    return captured


def test_events_maps_query_parameters(captured_requests):
    response = client.get(
        "/api/discovery/events",
        params={
            "slug": "riverside",
            "apiKey": "k-1",
            "orgIds": "101,102_103",
            "facilityId": "fac-9",
            "includePast": "true",
            "startDate": "2025-06-01",
            "endDate": "2025-06-30",
            "mode": "full",
            "fresh": "1",
        },
    )

    assert response.status_code == 200
    request = captured_requests[0]
    assert request.slug == "riverside"
    assert request.api_key == "k-1"
    assert request.org_ids == ["101", "102", "103"]
    assert request.facility_id == "fac-9"
    assert request.include_past is True
    assert request.start_date_filter == "2025-06-01"
    assert request.end_date_filter == "2025-06-30"
    assert request.force_fresh is True


def test_events_sets_cache_headers(captured_requests):
    response = client.get("/api/discovery/events", params={"slug": "riverside"})

    assert response.status_code == 200
    assert response.headers["X-Cache"] == "HIT"
    assert response.headers["Cache-Control"] == "public, s-maxage=900, stale-while-revalidate=900"
    body = response.json()
    assert body["meta"]["total_events"] == 1
    assert body["meta"]["mode"] == "full"
    assert body["data"][0]["title"] == "Open Gym"


def test_availability_mode_uses_short_ttl(captured_requests):
    response = client.get(
        "/api/discovery/events", params={"slug": "riverside", "mode": "availability"}
    )

    assert response.status_code == 200
    assert captured_requests[0].mode is DiscoveryMode.AVAILABILITY
    assert "s-maxage=60" in response.headers["Cache-Control"]


def test_events_response_carries_request_id(captured_requests):
    response = client.get(
        "/api/discovery/events", headers={"X-Request-ID": "req-abc"}
    )

    assert response.headers["X-Request-ID"] == "req-abc"


@pytest.mark.parametrize(
    "params",
    [{"mode": "everything"}, {"startDate": "June 1st"}, {"endDate": "2025-13-01"}],
)
def test_invalid_parameters_return_422(captured_requests, params):
    response = client.get("/api/discovery/events", params=params)

    assert response.status_code == 422
    assert captured_requests == []


def test_hard_failure_returns_502(monkeypatch):
    async def failing(request):
        raise DiscoveryEventsError("upstream down", cache_key="discovery:full:x")

    monkeypatch.setattr(discovery_routes, "get_discovery_events", failing)

    response = client.get("/api/discovery/events", params={"slug": "riverside"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to fetch discovery events"}


def test_events_end_to_end_through_service(monkeypatch, builders, catalog):
    """Route -> service -> fan-out with a fake catalog; second call is a cache hit."""
    upstream = catalog(
        programs={"org-1": [builders.program("p1", [builders.session("s1", endDate="2099-12-31")])]},
        session_events={"s1": [builders.event("e1", "2099-06-20T22:00:00Z", maxParticipants=5)]},
    )
    service = DiscoveryEventsService(
        cache_store=InMemoryCacheStore(),
        client_factory=lambda api_key: upstream,
        defaults=ContextDefaults(api_key="global-key", org_ids=("org-1",)),
    )
    monkeypatch.setattr(discovery_routes, "get_discovery_events", service.get_discovery_events)

    first = client.get("/api/discovery/events", params={"slug": "riverside"})
    calls_after_first = upstream.call_count()
    second = client.get("/api/discovery/events", params={"slug": "riverside"})

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert upstream.call_count() == calls_after_first
    assert first.json()["data"][0]["spots_remaining"] == 5
    assert second.json() == first.json()


def test_cron_requires_secret(monkeypatch):
    monkeypatch.setattr(discovery_routes.settings, "CRON_SECRET", "s3cret")

    assert client.get("/api/cron/warm-discovery").status_code == 401
    assert (
        client.get(
            "/api/cron/warm-discovery", headers={"Authorization": "Bearer wrong"}
        ).status_code
        == 401
    )


def test_cron_runs_warm_job(monkeypatch):
    summary = {"total_active": 1, "warmed": 1, "skipped": 0, "elapsed_ms": 10, "details": []}

    async def fake_warm():
        return summary

    monkeypatch.setattr(discovery_routes.settings, "CRON_SECRET", "s3cret")
    monkeypatch.setattr(discovery_routes, "run_discovery_warm_job", fake_warm)

    response = client.get(
        "/api/cron/warm-discovery", headers={"Authorization": "Bearer s3cret"}
    )

    assert response.status_code == 200
    assert response.json() == summary


def test_cors_origin_matching():
    cors = CORSMiddleware(app=None, allowed_origins=["https://club.example"])

    assert cors.is_allowed("https://club.example")
    assert not cors.is_allowed("https://evil.example")
    assert not cors.is_allowed(None)


def test_cors_preflight_from_unknown_origin_is_rejected():
    response = client.options(
        "/api/discovery/events",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "GET"},
    )

    assert response.status_code == 403
