# app/models/api/discovery_request.py
"""
Discovery events request model.
Accepted by the cache-through entry point and built by the events route.
"""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from app.models.domain.discovery_domain import DiscoveryMode


class DiscoveryEventsRequest(BaseModel):
    """Request for the aggregated events of one discovery page."""

    slug: str | None = Field(default=None, description="Page slug; omit for global defaults")
    api_key: str | None = Field(default=None, description="Catalog API key override")
    org_ids: list[str] | None = Field(default=None, description="Organization ids override")
    facility_id: str | None = Field(default=None, description="Restrict programs to a facility")
    include_past: bool = Field(default=False, description="Keep events before today")
    start_date_filter: str | None = Field(
        default=None, description="Earliest local event date (YYYY-MM-DD, inclusive)"
    )
    end_date_filter: str | None = Field(
        default=None, description="Latest local event date (YYYY-MM-DD, inclusive)"
    )
    mode: DiscoveryMode = Field(default=DiscoveryMode.FULL, description="Output variant")
    force_fresh: bool = Field(default=False, description="Skip the cache read")

    @field_validator("start_date_filter", "end_date_filter")
    @classmethod
    def validate_calendar_date(cls, value: str | None) -> str | None:
        if not value:
            return None
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError as e:
            raise ValueError("date filters must be calendar dates in YYYY-MM-DD format") from e

    @field_validator("org_ids")
    @classmethod
    def drop_blank_org_ids(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [org_id.strip() for org_id in value if org_id and org_id.strip()]
