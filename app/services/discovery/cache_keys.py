"""
Cache key derivation for discovery payloads.

Keys are a pure function of the FetchContext. Full and availability payloads
live under separate namespaces so they never collide and keep their own TTLs.
The API key only ever appears as a short non-cryptographic hash.
"""

from app.models.domain.discovery_domain import DiscoveryMode, FetchContext

FULL_NAMESPACE = "discovery:full"
AVAILABILITY_NAMESPACE = "discovery:availability"


def hash_scope(value: str) -> str:
    """32-bit rolling hash rendered as hex."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return format(h, "x")


def scope_fragment(context: FetchContext) -> str:
    policy = context.program_filter
    return ":".join(
        [
            ",".join(sorted(context.org_ids)),
            context.facility_id or "all",
            "past" if context.include_past else "future",
            context.start_date_filter or "none",
            context.end_date_filter or "none",
            policy.mode.value,
            ",".join(policy.included_ids) or "none",
            ",".join(policy.excluded_ids) or "none",
            context.api_key_scope,
        ]
    )


def discovery_cache_key(context: FetchContext) -> str:
    namespace = (
        AVAILABILITY_NAMESPACE if context.mode is DiscoveryMode.AVAILABILITY else FULL_NAMESPACE
    )
    return f"{namespace}:{context.slug}:{scope_fragment(context)}"


def cache_ttl_for(context: FetchContext) -> int:
    return context.cache_ttl
