"""
Fan-out over organizations -> programs -> sessions -> (segments ->) events.

Each level runs through run_with_concurrency so upstream request volume
tracks hierarchy depth, not catalog size. A failing organization or session
is logged and contributes zero events; it never aborts the aggregation.
"""

import time
from dataclasses import dataclass
from datetime import UTC, datetime

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.api.discovery_response import (
    AvailabilityEvent,
    EventsMeta,
    EventsPayload,
    FullEvent,
)
from app.models.domain.catalog_domain import Program, Segment, Session
from app.models.domain.discovery_domain import DiscoveryMode, FetchContext
from app.services.catalog.catalog_client import (
    EVENTS_EXPAND,
    PROGRAMS_EXPAND,
    CatalogClient,
)
from app.services.catalog.normalizer import normalize_event, normalize_program, normalize_segment
from app.services.discovery.concurrency import run_with_concurrency
from app.services.discovery.event_projector import parse_instant, project_event, should_skip_session

logger = get_logger(__name__)

DiscoveryEvent = FullEvent | AvailabilityEvent

_LATEST = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class FanOutLimits:
    programs: int = 3
    sessions: int = 5

    @classmethod
    def from_settings(cls) -> "FanOutLimits":
        return cls(
            programs=settings.DISCOVERY_PROGRAM_CONCURRENCY,
            sessions=settings.DISCOVERY_SESSION_CONCURRENCY,
        )


@dataclass(frozen=True, slots=True)
class _SessionUnit:
    org_id: str
    program: Program
    session: Session


class EventsFanOut:
    """Walks the catalog for one FetchContext and produces an EventsPayload."""

    def __init__(
        self,
        context: FetchContext,
        client: CatalogClient,
        now: datetime | None = None,
        limits: FanOutLimits | None = None,
    ):
        self.context = context
        self.client = client
        self.now = now or datetime.now(UTC)
        self.limits = limits or FanOutLimits.from_settings()

    async def run(self) -> EventsPayload:
        started = time.monotonic()

        org_results = await run_with_concurrency(
            list(self.context.org_ids), self.limits.programs, self._fetch_organization
        )
        events = [event for org_events in org_results for event in org_events]

        if self.context.mode is DiscoveryMode.FULL:
            events.sort(key=lambda e: parse_instant(e.start_date) or _LATEST)

        return EventsPayload(
            data=events,
            meta=EventsMeta(
                total_events=len(events),
                organization_count=len(self.context.org_ids),
                fetch_duration_ms=int((time.monotonic() - started) * 1000),
                cached_at=datetime.now(UTC),
                mode=self.context.mode,
            ),
        )

    async def _fetch_organization(self, org_id: str) -> list[DiscoveryEvent]:
        try:
            return await self._fetch_organization_events(org_id)
        except Exception as e:
            logger.error("Error fetching programs for organization", org_id=org_id, error=str(e))
            return []

    async def _fetch_organization_events(self, org_id: str) -> list[DiscoveryEvent]:
        raw_programs = await self.client.list_programs(
            org_id, expand=PROGRAMS_EXPAND, facility_id=self.context.facility_id
        )
        programs = [normalize_program(raw, organization_id=org_id) for raw in raw_programs]
        units = [
            _SessionUnit(org_id, program, session)
            for program in programs
            if self.context.program_filter.allows(program.id)
            for session in program.sessions
        ]

        session_results = await run_with_concurrency(
            units, self.limits.sessions, self._fetch_session_isolated
        )
        return [event for session_events in session_results for event in session_events]

    async def _fetch_session_isolated(self, unit: _SessionUnit) -> list[DiscoveryEvent]:
        try:
            return await self._fetch_session(unit)
        except Exception as e:
            logger.error(
                "Error fetching events for session",
                org_id=unit.org_id,
                program_id=unit.program.id,
                session_id=unit.session.id,
                error=str(e),
            )
            return []

    async def _fetch_session(self, unit: _SessionUnit) -> list[DiscoveryEvent]:
        if should_skip_session(unit.session, self.context.include_past, self.now):
            return []

        if not unit.session.is_segmented:
            raw_events = await self.client.list_session_events(
                unit.org_id, unit.program.id, unit.session.id, expand=EVENTS_EXPAND
            )
            return self._project(raw_events, unit)

        raw_segments = await self.client.list_segments(
            unit.org_id, unit.program.id, unit.session.id
        )
        segments = [normalize_segment(raw) for raw in raw_segments]

        async def fetch_segment(segment: Segment) -> list[DiscoveryEvent]:
            raw_events = await self.client.list_segment_events(
                unit.org_id, unit.program.id, unit.session.id, segment.id, expand=EVENTS_EXPAND
            )
            return self._project(raw_events, unit, segment)

        segment_results = await run_with_concurrency(
            segments, self.limits.sessions, fetch_segment
        )
        return [event for segment_events in segment_results for event in segment_events]

    def _project(
        self, raw_events: list[dict], unit: _SessionUnit, segment: Segment | None = None
    ) -> list[DiscoveryEvent]:
        projected = (
            project_event(
                normalize_event(raw), unit.program, unit.session, self.context, self.now, segment
            )
            for raw in raw_events
        )
        return [event for event in projected if event is not None]


async def fetch_and_transform_events(
    context: FetchContext,
    client: CatalogClient,
    now: datetime | None = None,
    limits: FanOutLimits | None = None,
) -> EventsPayload:
    return await EventsFanOut(context, client, now=now, limits=limits).run()
