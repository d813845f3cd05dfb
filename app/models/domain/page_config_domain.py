"""
Domain model for discovery page configuration.

Only the fields the events pipeline and the cache warm job read are
modelled here; branding and layout settings belong to the admin surface.
"""

from dataclasses import dataclass, field


@dataclass(slots=True)
class PageConfig:
    """Represents a discovery_pages row."""

    slug: str
    api_key: str | None = None
    organization_ids: list[str] = field(default_factory=list)
    cache_ttl: int | None = None
    availability_cache_ttl: int | None = None
    program_filter_mode: str = "all"
    included_program_ids: list[str] = field(default_factory=list)
    excluded_program_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    discovery_cache_enabled: bool = False
    discovery_refresh_policy: str = "15min"
