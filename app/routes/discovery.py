"""
Discovery API Routes
Public events feed for embedded discovery pages plus the cache-warming cron hook.
"""

import re
import secrets

from fastapi import APIRouter, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.jobs.discovery_warm_job import run_discovery_warm_job
from app.models.api.discovery_request import DiscoveryEventsRequest
from app.services.discovery.discovery_events_service import (
    DiscoveryEventsError,
    get_discovery_events,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["discovery"])

_ORG_ID_SEPARATORS = re.compile(r"[,_]")


def parse_org_ids(raw: str | None) -> list[str] | None:
    """Split an ``orgIds`` query value on commas or underscores."""
    if not raw:
        return None
    org_ids = [part.strip() for part in _ORG_ID_SEPARATORS.split(raw) if part.strip()]
    return org_ids or None


def cache_control_header(ttl_seconds: int) -> str:
    return f"public, s-maxage={ttl_seconds}, stale-while-revalidate={ttl_seconds}"


@router.get("/discovery/events")
async def get_events(
    slug: str | None = Query(None),
    api_key: str | None = Query(None, alias="apiKey"),
    org_ids: str | None = Query(None, alias="orgIds"),
    facility_id: str | None = Query(None, alias="facilityId"),
    include_past: bool = Query(False, alias="includePast"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    mode: str = Query("full"),
    fresh: bool = Query(False),
):
    """Aggregated events for a discovery page, served through the cache."""
    try:
        request = DiscoveryEventsRequest(
            slug=slug or None,
            api_key=api_key or None,
            org_ids=parse_org_ids(org_ids),
            facility_id=facility_id or None,
            include_past=include_past,
            start_date_filter=start_date,
            end_date_filter=end_date,
            mode=mode,
            force_fresh=fresh,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"loc": err["loc"], "msg": err["msg"]} for err in e.errors()],
        )

    try:
        result = await get_discovery_events(request)
    except DiscoveryEventsError as e:
        logger.error("Discovery events unavailable", slug=slug, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch discovery events",
        )

    return JSONResponse(
        content=result.payload.model_dump(mode="json"),
        headers={
            "X-Cache": result.cache_status.value,
            "Cache-Control": cache_control_header(result.context.cache_ttl),
        },
    )


@router.get("/cron/warm-discovery")
async def warm_discovery(authorization: str | None = Header(None)):
    """Run one cache-warming pass. Guarded by CRON_SECRET when it is set."""
    if settings.CRON_SECRET:
        expected = f"Bearer {settings.CRON_SECRET}"
        if not authorization or not secrets.compare_digest(authorization, expected):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        return await run_discovery_warm_job()
    except Exception as e:
        logger.error("Discovery warm run failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to warm discovery cache",
        )
