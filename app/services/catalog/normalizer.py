"""
Normalization of raw catalog payloads into catalog domain models.

The catalog returns nested arrays either bare or wrapped in ``{"data": [...]}``
and mixes snake_case with camelCase keys. Everything is resolved here so the
discovery pipeline only ever sees app.models.domain.catalog_domain types.
"""

from typing import Any

from app.models.domain.catalog_domain import (
    CatalogEvent,
    Price,
    Product,
    Program,
    Segment,
    Session,
)


def normalize_array(data: Any) -> list[Any]:
    """Unwrap a bare or ``{"data": [...]}``-wrapped list; anything else is empty."""
    if not data:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


def _first(raw: dict, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None and value != "" else None


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _lower(value: Any) -> str | None:
    return value.lower() if isinstance(value, str) and value else None


def _nested_name(raw: dict, key: str) -> str | None:
    nested = raw.get(key)
    return nested.get("name") if isinstance(nested, dict) else None


def normalize_price(raw: dict) -> Price:
    amount = _first(raw, "price", "amount")
    try:
        amount = float(amount) if amount is not None else 0.0
    except (TypeError, ValueError):
        amount = 0.0
    return Price(
        id=str(raw.get("id")),
        amount=amount,
        currency=raw.get("currency") or "USD",
        name=raw.get("name"),
    )


def normalize_product(raw: dict) -> Product:
    return Product(
        id=str(raw.get("id")),
        name=raw.get("name") or "",
        membership_required=bool(
            _first(raw, "membership_required", "membershipRequired", "membership_gated")
        ),
        is_member_product=bool(_first(raw, "is_member_product", "isMemberProduct")),
        prices=[normalize_price(p) for p in normalize_array(raw.get("prices"))],
    )


def normalize_session(raw: dict) -> Session:
    return Session(
        id=str(raw.get("id")),
        program_id=_optional_str(_first(raw, "program_id", "programId")),
        name=raw.get("name"),
        start_date=_first(raw, "start_date", "startDate"),
        end_date=_first(raw, "end_date", "endDate"),
        timezone=_first(raw, "timezone", "timeZone"),
        registration_start_date=_first(raw, "registration_start_date", "registrationStartDate"),
        registration_end_date=_first(raw, "registration_end_date", "registrationEndDate"),
        is_segmented=bool(_first(raw, "is_segmented", "isSegmented")),
        facility_name=_nested_name(raw, "facility") or _first(raw, "facility_name", "facilityName"),
        link_seo=_first(raw, "link_seo", "linkSEO", "linkSeo"),
        waitlist_enabled=bool(
            _first(raw, "is_waitlist_enabled", "isWaitlistEnabled", "waitlist_enabled", "waitlistEnabled")
        ),
        waitlist_count=_optional_int(_first(raw, "waitlist_count", "waitlistCount")),
        products=[normalize_product(p) for p in normalize_array(raw.get("products"))],
    )


def normalize_program(raw: dict, organization_id: str | None = None) -> Program:
    """Normalize a raw program, including its expanded sessions, products and prices."""
    return Program(
        id=str(raw.get("id")),
        name=raw.get("name") or "",
        organization_id=organization_id
        or _optional_str(_first(raw, "organization_id", "organizationId")),
        type=_lower(raw.get("type")),
        sport=_lower(raw.get("sport")),
        facility_id=_optional_str(_first(raw, "facility_id", "facilityId")),
        facility_name=_nested_name(raw, "facility") or _first(raw, "facility_name", "facilityName"),
        link_seo=_first(raw, "link_seo", "linkSEO", "linkSeo"),
        sessions=[normalize_session(s) for s in normalize_array(raw.get("sessions"))],
    )


def normalize_segment(raw: dict) -> Segment:
    return Segment(
        id=str(raw.get("id")),
        session_id=_optional_str(_first(raw, "session_id", "sessionId")),
        name=raw.get("name"),
        start_date=_first(raw, "start_date", "startDate"),
        end_date=_first(raw, "end_date", "endDate"),
    )


def normalize_event(raw: dict) -> CatalogEvent:
    resources = [
        _optional_str(r.get("name"))
        for r in normalize_array(raw.get("resources"))
        if isinstance(r, dict)
    ]
    return CatalogEvent(
        id=str(raw.get("id")),
        start_date=_first(raw, "startDate", "start_date", "date"),
        end_date=_first(raw, "endDate", "end_date"),
        timezone=_first(raw, "timezone", "timeZone"),
        title=raw.get("title") or raw.get("name"),
        max_participants=_optional_int(
            _first(raw, "maxParticipants", "max_participants", "capacity")
        ),
        current_participants=_optional_int(
            _first(raw, "participantsNumber", "currentParticipants", "current_participants")
        )
        or 0,
        spots_left=_optional_int(_first(raw, "spotsLeft", "spots_left")),
        waitlist_enabled=bool(_first(raw, "isWaitlistEnabled", "is_waitlist_enabled")),
        waitlist_count=_optional_int(_first(raw, "waitlistCount", "waitlist_count")),
        resource_names=[name for name in resources if name],
    )
