# app/models/domain/discovery_domain.py
"""
Discovery Domain Models
Request-scoped values for the discovery events pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.api.discovery_response import EventsPayload


class DiscoveryMode(str, Enum):
    FULL = "full"  # Display, pricing and scheduling fields; long TTL
    AVAILABILITY = "availability"  # Capacity and waitlist only; short TTL


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"


class RegistrationWindowStatus(str, Enum):
    NOT_OPENED_YET = "not_opened_yet"
    OPEN = "open"
    CLOSED = "closed"


class ProgramFilterMode(str, Enum):
    ALL = "all"
    INCLUDE = "include"
    EXCLUDE = "exclude"

    @classmethod
    def parse(cls, value: str | None) -> "ProgramFilterMode":
        try:
            return cls((value or "all").strip().lower())
        except ValueError:
            return cls.ALL


@dataclass(frozen=True, slots=True)
class ProgramFilterPolicy:
    """Which programs are eligible before their sessions are fetched.

    An empty id list disables the filter for its mode, so ``include`` with
    nothing listed behaves like ``all``.
    """

    mode: ProgramFilterMode = ProgramFilterMode.ALL
    included_ids: tuple[str, ...] = ()
    excluded_ids: tuple[str, ...] = ()

    def allows(self, program_id: str) -> bool:
        if self.mode is ProgramFilterMode.INCLUDE and self.included_ids:
            return program_id in self.included_ids
        if self.mode is ProgramFilterMode.EXCLUDE and self.excluded_ids:
            return program_id not in self.excluded_ids
        return True


@dataclass(frozen=True, slots=True)
class FetchContext:
    """Everything one discovery fetch depends on. Built once, never mutated."""

    slug: str
    api_key: str
    api_key_scope: str
    org_ids: tuple[str, ...]
    facility_id: str | None = None
    include_past: bool = False
    start_date_filter: str | None = None
    end_date_filter: str | None = None
    mode: DiscoveryMode = DiscoveryMode.FULL
    program_filter: ProgramFilterPolicy = field(default_factory=ProgramFilterPolicy)
    full_cache_ttl: int = 15 * 60
    availability_cache_ttl: int = 60

    @property
    def is_availability(self) -> bool:
        return self.mode is DiscoveryMode.AVAILABILITY

    @property
    def cache_ttl(self) -> int:
        return self.availability_cache_ttl if self.is_availability else self.full_cache_ttl


@dataclass(slots=True)
class FetchResult:
    """Return value of a discovery fetch. Never persisted."""

    payload: "EventsPayload"
    cache_status: CacheStatus
    cache_key: str
    context: FetchContext
