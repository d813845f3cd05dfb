"""
Builds the immutable FetchContext for one discovery request.

Page configuration (looked up by slug) overrides the request's own values
only where it supplies them. Resolution problems never fail the request;
they degrade to global defaults.
"""

from dataclasses import dataclass, field
from typing import Protocol

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.api.discovery_request import DiscoveryEventsRequest
from app.models.domain.discovery_domain import (
    FetchContext,
    ProgramFilterMode,
    ProgramFilterPolicy,
)
from app.models.domain.page_config_domain import PageConfig
from app.services.discovery.cache_keys import hash_scope

logger = get_logger(__name__)

ADHOC_SLUG = "adhoc"


class ConfigResolver(Protocol):
    async def get_config_by_slug(self, slug: str) -> PageConfig | None: ...


@dataclass(frozen=True, slots=True)
class ContextDefaults:
    """Global fallbacks used when neither the request nor the page sets a value."""

    api_key: str = ""
    org_ids: tuple[str, ...] = ()
    full_cache_ttl: int = 15 * 60
    availability_cache_ttl: int = 60

    @classmethod
    def from_settings(cls) -> "ContextDefaults":
        return cls(
            api_key=settings.CATALOG_API_KEY,
            org_ids=tuple(settings.CATALOG_DEFAULT_ORG_IDS),
            full_cache_ttl=settings.DISCOVERY_FULL_CACHE_TTL,
            availability_cache_ttl=settings.DISCOVERY_AVAILABILITY_CACHE_TTL,
        )


@dataclass(slots=True)
class _Resolved:
    api_key: str
    org_ids: tuple[str, ...]
    full_cache_ttl: int
    availability_cache_ttl: int
    program_filter: ProgramFilterPolicy = field(default_factory=ProgramFilterPolicy)


async def _resolve_page_config(
    slug: str | None, config_resolver: ConfigResolver | None
) -> PageConfig | None:
    if not slug or config_resolver is None:
        return None
    try:
        config = await config_resolver.get_config_by_slug(slug)
    except Exception as e:
        logger.warning("Page config lookup failed, using defaults", slug=slug, error=str(e))
        return None
    if config is None:
        logger.debug("No page config for slug, using defaults", slug=slug)
    return config


def _apply_page_config(resolved: _Resolved, config: PageConfig) -> None:
    resolved.api_key = config.api_key or resolved.api_key
    if config.organization_ids:
        resolved.org_ids = tuple(config.organization_ids)
    resolved.full_cache_ttl = config.cache_ttl or resolved.full_cache_ttl
    if isinstance(config.availability_cache_ttl, int):
        resolved.availability_cache_ttl = config.availability_cache_ttl
    resolved.program_filter = ProgramFilterPolicy(
        mode=ProgramFilterMode.parse(config.program_filter_mode),
        included_ids=tuple(config.included_program_ids or ()),
        excluded_ids=tuple(config.excluded_program_ids or ()),
    )


async def build_context(
    request: DiscoveryEventsRequest,
    config_resolver: ConfigResolver | None = None,
    defaults: ContextDefaults | None = None,
) -> FetchContext:
    defaults = defaults or ContextDefaults.from_settings()

    resolved = _Resolved(
        api_key=request.api_key or defaults.api_key,
        org_ids=tuple(request.org_ids) if request.org_ids else defaults.org_ids,
        full_cache_ttl=defaults.full_cache_ttl,
        availability_cache_ttl=defaults.availability_cache_ttl,
    )

    config = await _resolve_page_config(request.slug, config_resolver)
    if config is not None:
        _apply_page_config(resolved, config)

    return FetchContext(
        slug=request.slug or ADHOC_SLUG,
        api_key=resolved.api_key,
        api_key_scope=hash_scope(resolved.api_key or "default"),
        org_ids=resolved.org_ids,
        facility_id=request.facility_id,
        include_past=request.include_past,
        start_date_filter=request.start_date_filter,
        end_date_filter=request.end_date_filter,
        mode=request.mode,
        program_filter=resolved.program_filter,
        full_cache_ttl=resolved.full_cache_ttl,
        availability_cache_ttl=resolved.availability_cache_ttl,
    )
