# app/models/api/discovery_response.py
"""
Discovery events response models.
Returned by the events route and stored verbatim (as JSON) in the cache.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from app.models.domain.discovery_domain import DiscoveryMode, RegistrationWindowStatus


class AvailabilityEvent(BaseModel):
    """Capacity-only view of an event, used for frequent polling refreshes."""

    id: str = Field(..., description="Event ID")
    session_id: str = Field(..., description="Owning session ID")
    segment_id: str | None = Field(None, description="Owning segment ID for segmented sessions")
    max_participants: int | None = Field(None, description="Capacity, when the catalog sets one")
    current_participants: int | None = Field(None, description="Registered participants")
    spots_remaining: int | None = Field(None, description="Never negative; unset without capacity")
    is_waitlist_enabled: bool = Field(default=False, description="Whether a waitlist is offered")
    waitlist_count: int | None = Field(None, description="People on the waitlist")


class FullEvent(AvailabilityEvent):
    """Event with all display, pricing and scheduling fields."""

    title: str = Field(..., description="Display title")
    start_date: str = Field(..., description="Start instant as returned by the catalog")
    end_date: str | None = Field(None, description="End instant as returned by the catalog")
    timezone: str | None = Field(None, description="IANA timezone of the event")
    program_id: str = Field(..., description="Owning program ID")
    program_name: str = Field(..., description="Owning program name")
    session_name: str = Field(default="", description="Session (or segment) name")
    facility_name: str | None = Field(None, description="Facility name")
    space_name: str | None = Field(None, description="Court/field/room names")
    sport: str | None = Field(None, description="Sport tag")
    type: str | None = Field(None, description="Program type tag")
    link_seo: str | None = Field(None, description="Registration link")
    registration_window_status: RegistrationWindowStatus = Field(
        default=RegistrationWindowStatus.OPEN, description="Registration window state today"
    )
    starting_price: float | None = Field(None, description="Lowest non-member price")
    member_price: float | None = Field(None, description="Lowest member price")
    segment_name: str | None = Field(None, description="Segment name for segmented sessions")
    is_segmented: bool = Field(default=False, description="Whether the event belongs to a segment")


class EventsMeta(BaseModel):
    total_events: int = Field(..., description="Number of events in data")
    organization_count: int = Field(..., description="Organizations fanned out over")
    fetch_duration_ms: int = Field(..., description="Upstream fetch duration")
    cached_at: datetime = Field(..., description="When the payload was computed")
    mode: DiscoveryMode = Field(..., description="Variant of every element in data")


class EventsPayload(BaseModel):
    """Aggregated events for one discovery scope. All of data shares meta.mode's variant."""

    data: list[FullEvent] | list[AvailabilityEvent] = Field(default_factory=list)
    meta: EventsMeta

    @model_validator(mode="before")
    @classmethod
    def select_record_type(cls, values: Any) -> Any:
        """Validate data items as the record type named by meta.mode."""
        if not isinstance(values, dict):
            return values

        meta = values.get("meta")
        mode = meta.get("mode") if isinstance(meta, dict) else getattr(meta, "mode", None)
        record_type = (
            AvailabilityEvent if DiscoveryMode(mode or "full") is DiscoveryMode.AVAILABILITY
            else FullEvent
        )

        items = []
        for item in values.get("data") or []:
            if type(item) is record_type:
                items.append(item)
                continue
            if isinstance(item, BaseModel):
                item = item.model_dump()
            items.append(record_type.model_validate(item))
        return {**values, "data": items}
