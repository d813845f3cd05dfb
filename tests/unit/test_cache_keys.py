from dataclasses import replace

import pytest

from app.models.domain.discovery_domain import (
    DiscoveryMode,
    ProgramFilterMode,
    ProgramFilterPolicy,
)
from app.services.discovery.cache_keys import (
    cache_ttl_for,
    discovery_cache_key,
    hash_scope,
)


def test_hash_scope_matches_rolling_hash():
    # "a" -> 97 -> 0x61; "ab" -> 97*31 + 98 = 3105 -> 0xc21
    assert hash_scope("a") == "61"
    assert hash_scope("ab") == "c21"
    assert hash_scope("") == "0"


def test_hash_scope_stays_within_32_bits():
    value = hash_scope("x" * 500)
    assert int(value, 16) < 2**32


def test_same_context_gives_identical_key(builders):
    first = builders.context(org_ids=("org-2", "org-1"))
    second = builders.context(org_ids=("org-2", "org-1"))

    assert discovery_cache_key(first) == discovery_cache_key(second)


def test_org_order_does_not_change_key(builders):
    a = builders.context(org_ids=("org-1", "org-2"))
    b = builders.context(org_ids=("org-2", "org-1"))

    assert discovery_cache_key(a) == discovery_cache_key(b)


def test_key_layout(builders):
    context = builders.context(
        org_ids=("org-2", "org-1"),
        facility_id="fac-9",
        include_past=True,
        start_date_filter="2025-06-01",
        api_key_scope="beef",
    )

    assert discovery_cache_key(context) == (
        "discovery:full:riverside:org-1,org-2:fac-9:past:2025-06-01:none:all:none:none:beef"
    )


@pytest.mark.parametrize(
    "change",
    [
        {"slug": "lakeside"},
        {"org_ids": ("org-1", "org-3")},
        {"facility_id": "fac-1"},
        {"include_past": True},
        {"start_date_filter": "2025-07-01"},
        {"end_date_filter": "2025-07-31"},
        {"api_key_scope": "other"},
        {"program_filter": ProgramFilterPolicy(ProgramFilterMode.INCLUDE, ("p1",))},
        {"program_filter": ProgramFilterPolicy(ProgramFilterMode.EXCLUDE, (), ("p1",))},
    ],
)
def test_single_field_change_changes_key(builders, change):
    base = builders.context()
    changed = replace(base, **change)

    assert discovery_cache_key(base) != discovery_cache_key(changed)


def test_modes_never_share_a_key(builders):
    full = builders.context(mode=DiscoveryMode.FULL)
    availability = replace(full, mode=DiscoveryMode.AVAILABILITY)

    full_key = discovery_cache_key(full)
    availability_key = discovery_cache_key(availability)

    assert full_key.startswith("discovery:full:")
    assert availability_key.startswith("discovery:availability:")
    assert full_key != availability_key


def test_raw_api_key_never_appears_in_key(builders):
    context = builders.context(api_key="super-secret-key", api_key_scope=hash_scope("super-secret-key"))

    assert "super-secret-key" not in discovery_cache_key(context)


def test_ttl_follows_mode(builders):
    full = builders.context(full_cache_ttl=900, availability_cache_ttl=60)
    availability = replace(full, mode=DiscoveryMode.AVAILABILITY)

    assert cache_ttl_for(full) == 900
    assert cache_ttl_for(availability) == 60
