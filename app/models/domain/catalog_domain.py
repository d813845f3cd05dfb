# app/models/domain/catalog_domain.py
"""
Catalog Domain Models
Normalized shapes of the upstream catalog hierarchy:
Program -> Session -> (Segment ->) Event.

Produced once by app.services.catalog.normalizer at the client boundary;
the discovery pipeline never looks at raw catalog payloads after that.
"""

from dataclasses import dataclass, field


@dataclass(slots=True)
class Price:
    id: str
    amount: float
    currency: str = "USD"
    name: str | None = None


@dataclass(slots=True)
class Product:
    """A purchasable registration option attached to a session."""

    id: str
    name: str
    membership_required: bool = False
    is_member_product: bool = False
    prices: list[Price] = field(default_factory=list)

    @property
    def is_member(self) -> bool:
        return self.membership_required or self.is_member_product


@dataclass(slots=True)
class Segment:
    """A slice of a segmented session that owns its own events."""

    id: str
    session_id: str | None
    name: str | None = None
    start_date: str | None = None
    end_date: str | None = None


@dataclass(slots=True)
class Session:
    id: str
    program_id: str | None
    name: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    timezone: str | None = None
    registration_start_date: str | None = None
    registration_end_date: str | None = None
    is_segmented: bool = False
    facility_name: str | None = None
    link_seo: str | None = None
    waitlist_enabled: bool = False
    waitlist_count: int | None = None
    products: list[Product] = field(default_factory=list)


@dataclass(slots=True)
class Program:
    id: str
    name: str
    organization_id: str | None = None
    type: str | None = None
    sport: str | None = None
    facility_id: str | None = None
    facility_name: str | None = None
    link_seo: str | None = None
    sessions: list[Session] = field(default_factory=list)


@dataclass(slots=True)
class CatalogEvent:
    """A single calendar occurrence of a session or segment."""

    id: str
    start_date: str | None
    end_date: str | None = None
    timezone: str | None = None
    title: str | None = None
    max_participants: int | None = None
    current_participants: int = 0
    spots_left: int | None = None
    waitlist_enabled: bool = False
    waitlist_count: int | None = None
    resource_names: list[str] = field(default_factory=list)
