"""
Page configuration lookups for discovery pages.

Reads the discovery_pages table maintained by the admin surface. Discovery
only needs the catalog credentials, organization list, cache TTLs, program
filter policy and cache-warming flags; feature toggles live in the
``features`` JSON column.
"""

from typing import Any

from app.db.helpers import fetch_all, fetch_one, with_db_retry
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger
from app.models.domain.page_config_domain import PageConfig

logger = get_logger(__name__)

PAGE_CONFIG_COLUMNS = """
    slug,
    api_key,
    organization_ids,
    cache_ttl,
    included_program_ids,
    excluded_program_ids,
    is_active,
    features
"""


def _id_list(value: Any) -> list[str]:
    if not value:
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def row_to_page_config(row: dict[str, Any]) -> PageConfig:
    features = row.get("features") or {}
    return PageConfig(
        slug=row["slug"],
        api_key=row.get("api_key") or None,
        organization_ids=_id_list(row.get("organization_ids")),
        cache_ttl=_optional_int(row.get("cache_ttl")),
        availability_cache_ttl=_optional_int(features.get("availabilityCacheTtl")),
        program_filter_mode=features.get("programFilterMode") or "all",
        included_program_ids=_id_list(row.get("included_program_ids")),
        excluded_program_ids=_id_list(row.get("excluded_program_ids")),
        is_active=bool(row.get("is_active", True)),
        discovery_cache_enabled=features.get("discoveryCacheEnabled") is True,
        discovery_refresh_policy=features.get("discoveryRefreshPolicy") or "15min",
    )


class PageConfigService:
    """Config resolver backed by Postgres. Returns nothing when no database is configured."""

    @with_db_retry()
    async def get_config_by_slug(self, slug: str) -> PageConfig | None:
        if not db_pool.is_ready:
            logger.debug("Page config store unavailable", slug=slug)
            return None

        row = await fetch_one(
            f"SELECT {PAGE_CONFIG_COLUMNS} FROM discovery_pages WHERE slug = %s",
            (slug,),
        )
        return row_to_page_config(row) if row else None

    @with_db_retry()
    async def list_active_configs(self) -> list[PageConfig]:
        if not db_pool.is_ready:
            return []

        rows = await fetch_all(
            f"SELECT {PAGE_CONFIG_COLUMNS} FROM discovery_pages "
            "WHERE is_active = true ORDER BY slug"
        )
        return [row_to_page_config(row) for row in rows]


# Singleton instance
page_config_service = PageConfigService()
