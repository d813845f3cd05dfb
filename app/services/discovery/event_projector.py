"""
Event projection for the discovery pipeline.

Turns one catalog event (plus its owning program, session and optional
segment) into a FullEvent or AvailabilityEvent, or drops it when the date
filters exclude it. Every date comparison is made on local calendar dates in
the event's own timezone, never on the server clock's date. Functions take
``now`` explicitly so they stay pure and testable.
"""

from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.models.api.discovery_response import AvailabilityEvent, FullEvent
from app.models.domain.catalog_domain import CatalogEvent, Product, Program, Segment, Session
from app.models.domain.discovery_domain import FetchContext, RegistrationWindowStatus


def resolve_zone(timezone: str | None) -> tzinfo:
    """IANA zone for ``timezone``; missing or unknown zones fall back to UTC."""
    if not timezone:
        return UTC
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def parse_instant(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant. Naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def today_in_timezone(timezone: str | None, now: datetime) -> date:
    return now.astimezone(resolve_zone(timezone)).date()


def local_date(instant: str | None, timezone: str | None) -> date | None:
    """Calendar date of ``instant`` as seen in ``timezone``.

    Date-only values are already local calendar dates and are not shifted.
    """
    if instant and len(instant) == 10:
        try:
            return date.fromisoformat(instant)
        except ValueError:
            return None
    parsed = parse_instant(instant)
    if parsed is not None:
        return parsed.astimezone(resolve_zone(timezone)).date()
    if instant:
        # Unparseable instant: trust its calendar date prefix
        try:
            return date.fromisoformat(instant[:10])
        except ValueError:
            return None
    return None


def event_timezone(event: CatalogEvent, session: Session) -> str:
    return event.timezone or session.timezone or "UTC"


def passes_date_filters(
    event: CatalogEvent, session: Session, context: FetchContext, now: datetime
) -> bool:
    timezone = event_timezone(event, session)
    event_day = local_date(event.start_date, timezone)
    if event_day is None:
        return False

    if not context.include_past and event_day < today_in_timezone(timezone, now):
        return False
    if context.start_date_filter and event_day < date.fromisoformat(context.start_date_filter):
        return False
    if context.end_date_filter and event_day > date.fromisoformat(context.end_date_filter):
        return False
    return True


def should_skip_session(session: Session, include_past: bool, now: datetime) -> bool:
    """True when the whole session ended before today in its own timezone."""
    if include_past or not session.end_date:
        return False
    end_day = local_date(session.end_date, session.timezone)
    if end_day is None:
        return False
    return end_day < today_in_timezone(session.timezone, now)


def spots_remaining(
    max_participants: int | None, current_participants: int, spots_left: int | None = None
) -> int | None:
    if spots_left is not None:
        return max(0, spots_left)
    if max_participants is None:
        return None
    return max(0, max_participants - (current_participants or 0))


def registration_window_status(
    registration_start: str | None,
    registration_end: str | None,
    timezone: str | None,
    now: datetime,
) -> RegistrationWindowStatus:
    today = today_in_timezone(timezone, now)
    opens = local_date(registration_start, timezone)
    closes = local_date(registration_end, timezone)

    if opens and opens > today:
        return RegistrationWindowStatus.NOT_OPENED_YET
    if closes and closes < today:
        return RegistrationWindowStatus.CLOSED
    return RegistrationWindowStatus.OPEN


def price_summary(products: list[Product]) -> tuple[float | None, float | None]:
    """Return (starting_price, member_price): the lowest non-member and member prices."""
    starting_price: float | None = None
    member_price: float | None = None

    for product in products:
        for price in product.prices:
            if product.is_member:
                if member_price is None or price.amount < member_price:
                    member_price = price.amount
            elif starting_price is None or price.amount < starting_price:
                starting_price = price.amount

    return starting_price, member_price


def to_availability_event(
    event: CatalogEvent, session: Session, segment: Segment | None = None
) -> AvailabilityEvent:
    return AvailabilityEvent(
        id=event.id,
        session_id=session.id,
        segment_id=segment.id if segment else None,
        max_participants=event.max_participants,
        current_participants=event.current_participants,
        spots_remaining=spots_remaining(
            event.max_participants, event.current_participants, event.spots_left
        ),
        is_waitlist_enabled=session.waitlist_enabled or event.waitlist_enabled,
        waitlist_count=session.waitlist_count or event.waitlist_count,
    )


def to_full_event(
    event: CatalogEvent,
    program: Program,
    session: Session,
    now: datetime,
    segment: Segment | None = None,
) -> FullEvent:
    availability = to_availability_event(event, session, segment)
    starting_price, member_price = price_summary(session.products)
    segment_name = segment.name if segment else None

    return FullEvent(
        **availability.model_dump(),
        title=event.title or segment_name or session.name or program.name,
        start_date=event.start_date,
        end_date=event.end_date,
        timezone=event.timezone,
        program_id=program.id,
        program_name=program.name,
        session_name=segment_name or session.name or "",
        facility_name=session.facility_name or program.facility_name,
        space_name=", ".join(event.resource_names) or None,
        sport=program.sport,
        type=program.type,
        link_seo=session.link_seo or program.link_seo,
        registration_window_status=registration_window_status(
            session.registration_start_date,
            session.registration_end_date,
            session.timezone,
            now,
        ),
        starting_price=starting_price,
        member_price=member_price,
        segment_name=segment_name,
        is_segmented=segment is not None,
    )


def project_event(
    event: CatalogEvent,
    program: Program,
    session: Session,
    context: FetchContext,
    now: datetime,
    segment: Segment | None = None,
) -> FullEvent | AvailabilityEvent | None:
    """Project one event for the context's mode; None when the date filters drop it."""
    if not passes_date_filters(event, session, context, now):
        return None
    if context.is_availability:
        return to_availability_event(event, session, segment)
    return to_full_event(event, program, session, now, segment)
