"""
Catalog API client for the public programs/sessions/events API.
Handles auth headers, retry with backoff and event pagination.
Returns raw payload lists; normalization happens in app.services.catalog.normalizer.
"""

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.catalog.normalizer import normalize_array

logger = get_logger(__name__)

PROGRAMS_EXPAND = "sessions,sessions.products,sessions.products.prices"
EVENTS_EXPAND = "resources,capacity"
PROGRAMS_PER_PAGE = 100

# Retry configuration
MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_EVENT_PAGES = 50


class CatalogClientError(Exception):
    """Custom exception for catalog API errors."""

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class CatalogClient(Protocol):
    """What the discovery fan-out needs from the catalog."""

    async def list_programs(
        self, org_id: str, expand: str = PROGRAMS_EXPAND, facility_id: str | None = None
    ) -> list[dict]: ...

    async def list_session_events(
        self, org_id: str, program_id: str, session_id: str, expand: str = EVENTS_EXPAND
    ) -> list[dict]: ...

    async def list_segments(self, org_id: str, program_id: str, session_id: str) -> list[dict]: ...

    async def list_segment_events(
        self,
        org_id: str,
        program_id: str,
        session_id: str,
        segment_id: str,
        expand: str = EVENTS_EXPAND,
    ) -> list[dict]: ...


CatalogClientFactory = Callable[[str], CatalogClient]


class BondCatalogClient:
    """
    HTTP client for one catalog API key.

    Instances are cheap: they share the process-wide httpx.AsyncClient
    unless one is passed in explicitly.
    """

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.CATALOG_API_BASE_URL).rstrip("/")
        self._client = http_client or get_shared_http_client()

    def _headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request_with_retry(self, endpoint: str, params: dict[str, Any]) -> httpx.Response:
        """Execute a GET with retry and backoff on throttling and transport errors."""
        url = f"{self.base_url}{endpoint}"
        query = {k: str(v) for k, v in params.items() if v is not None}

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.get(url, params=query, headers=self._headers())
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Catalog API retrying request",
                        endpoint=endpoint,
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise CatalogClientError(
                        f"Catalog API request failed: {e}", endpoint=endpoint
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Catalog API request error, retrying",
                    endpoint=endpoint,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise CatalogClientError("Catalog API retry loop exhausted", endpoint=endpoint)

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict:
        response = await self._request_with_retry(endpoint, params or {})

        if not response.is_success:
            logger.warning(
                "Catalog API request failed",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise CatalogClientError(
                f"Catalog API error (HTTP {response.status_code})",
                status_code=response.status_code,
                endpoint=endpoint,
            )

        try:
            body = response.json() if response.text else {}
        except ValueError as e:
            raise CatalogClientError(
                f"Invalid catalog response format: {e}", endpoint=endpoint
            ) from e
        return body if isinstance(body, dict) else {"data": body}

    async def _get_all_pages(self, endpoint: str, params: dict[str, Any]) -> list[dict]:
        """Follow meta.totalPages until every page of a listing has been read."""
        items: list[dict] = []
        page = 1
        total_pages = 1

        while page <= total_pages and page <= MAX_EVENT_PAGES:
            body = await self._get(endpoint, {**params, "page": page})
            items.extend(normalize_array(body))
            total_pages = _total_pages(body.get("meta"))
            page += 1

        return items

    async def list_programs(
        self, org_id: str, expand: str = PROGRAMS_EXPAND, facility_id: str | None = None
    ) -> list[dict]:
        body = await self._get(
            f"/organization/{org_id}/programs",
            {
                "expand": expand,
                "page": 1,
                "per_page": PROGRAMS_PER_PAGE,
                "facility_id": facility_id,
            },
        )
        return normalize_array(body)

    async def list_session_events(
        self, org_id: str, program_id: str, session_id: str, expand: str = EVENTS_EXPAND
    ) -> list[dict]:
        return await self._get_all_pages(
            f"/organization/{org_id}/programs/{program_id}/sessions/{session_id}/events",
            {"expand": expand},
        )

    async def list_segments(self, org_id: str, program_id: str, session_id: str) -> list[dict]:
        body = await self._get(
            f"/organization/{org_id}/programs/{program_id}/sessions/{session_id}/segments"
        )
        return normalize_array(body)

    async def list_segment_events(
        self,
        org_id: str,
        program_id: str,
        session_id: str,
        segment_id: str,
        expand: str = EVENTS_EXPAND,
    ) -> list[dict]:
        return await self._get_all_pages(
            f"/organization/{org_id}/programs/{program_id}/sessions/{session_id}"
            f"/segments/{segment_id}/events",
            {"expand": expand},
        )


def _total_pages(meta: Any) -> int:
    if not isinstance(meta, dict):
        return 1
    if meta.get("totalPages"):
        return int(meta["totalPages"])
    pagination = meta.get("pagination")
    if isinstance(pagination, dict) and pagination.get("lastPage"):
        return int(pagination["lastPage"])
    return 1


# Shared HTTP connection pool for all API keys
_shared_http_client: httpx.AsyncClient | None = None


def get_shared_http_client() -> httpx.AsyncClient:
    global _shared_http_client
    if _shared_http_client is None or _shared_http_client.is_closed:
        timeout = httpx.Timeout(settings.CATALOG_REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        _shared_http_client = httpx.AsyncClient(timeout=timeout, limits=limits)
    return _shared_http_client


async def close_shared_http_client() -> None:
    """Close the shared HTTP client (application shutdown)."""
    global _shared_http_client
    if _shared_http_client is not None:
        await _shared_http_client.aclose()
        _shared_http_client = None


def create_catalog_client(api_key: str) -> BondCatalogClient:
    """Default CatalogClientFactory."""
    return BondCatalogClient(api_key)
