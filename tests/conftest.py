import asyncio
from datetime import UTC, datetime

import pytest

from app.models.domain.discovery_domain import (
    DiscoveryMode,
    FetchContext,
    ProgramFilterPolicy,
)
from app.models.domain.page_config_domain import PageConfig
from app.services.discovery.fan_out import FanOutLimits

# 2025-06-15 10:00 UTC is still 2025-06-15 in New York and already 2025-06-15 in Tokyo
NOW = datetime(2025, 6, 15, 10, 0, tzinfo=UTC)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return True


class FakeCatalogClient:
    """
    In-memory catalog keyed by org, program, session and segment ids.

    Records every call and the peak number of concurrent calls. Ids listed in
    ``failing`` raise on lookup to simulate upstream errors.
    """

    def __init__(
        self,
        programs: dict[str, list[dict]] | None = None,
        session_events: dict[str, list[dict]] | None = None,
        segments: dict[str, list[dict]] | None = None,
        segment_events: dict[str, list[dict]] | None = None,
        failing: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.programs = programs or {}
        self.session_events = session_events or {}
        self.segments = segments or {}
        self.segment_events = segment_events or {}
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _call(self, name: str, key: str, source: dict[str, list[dict]], *args) -> list[dict]:
        self.calls.append((name, *args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if key in self.failing:
                raise RuntimeError(f"upstream failure for {key}")
            return list(source.get(key, []))
        finally:
            self.in_flight -= 1

    async def list_programs(self, org_id, expand=None, facility_id=None):
        return await self._call("list_programs", org_id, self.programs, org_id, facility_id)

    async def list_session_events(self, org_id, program_id, session_id, expand=None):
        return await self._call(
            "list_session_events", session_id, self.session_events, org_id, program_id, session_id
        )

    async def list_segments(self, org_id, program_id, session_id):
        return await self._call(
            "list_segments", session_id, self.segments, org_id, program_id, session_id
        )

    async def list_segment_events(self, org_id, program_id, session_id, segment_id, expand=None):
        return await self._call(
            "list_segment_events",
            segment_id,
            self.segment_events,
            org_id,
            program_id,
            session_id,
            segment_id,
        )

    def call_count(self, name: str | None = None) -> int:
        if name is None:
            return len(self.calls)
        return sum(1 for call in self.calls if call[0] == name)


class FakeConfigResolver:
    def __init__(self, configs: dict[str, PageConfig] | None = None, error: Exception | None = None):
        self.configs = configs or {}
        self.error = error
        self.lookups: list[str] = []

    async def get_config_by_slug(self, slug: str) -> PageConfig | None:
        self.lookups.append(slug)
        if self.error:
            raise self.error
        return self.configs.get(slug)


def raw_program(program_id: str, sessions: list[dict], name: str | None = None, **extra) -> dict:
    return {"id": program_id, "name": name or f"Program {program_id}", "sessions": sessions, **extra}


def raw_session(session_id: str, **extra) -> dict:
    return {
        "id": session_id,
        "name": f"Session {session_id}",
        "timezone": "America/New_York",
        "startDate": "2025-06-01",
        "endDate": "2025-08-31",
        **extra,
    }


def raw_event(event_id: str, start: str, **extra) -> dict:
    return {"id": event_id, "startDate": start, "timezone": "America/New_York", **extra}


def make_context(**overrides) -> FetchContext:
    values = {
        "slug": "riverside",
        "api_key": "key-123",
        "api_key_scope": "abc123",
        "org_ids": ("org-1",),
        "mode": DiscoveryMode.FULL,
        "program_filter": ProgramFilterPolicy(),
    }
    values.update(overrides)
    return FetchContext(**values)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def catalog():
    """Factory for FakeCatalogClient instances."""
    return FakeCatalogClient


@pytest.fixture
def config_resolver():
    return FakeConfigResolver


@pytest.fixture
def builders():
    """Raw catalog payload and context builders."""

    class Builders:
        program = staticmethod(raw_program)
        session = staticmethod(raw_session)
        event = staticmethod(raw_event)
        context = staticmethod(make_context)

    return Builders


@pytest.fixture
def limits():
    return FanOutLimits(programs=3, sessions=5)
