"""
rentindex/domain/listings.py

Domain models exchanged between source adapters and the pipeline core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


class PropertyType:
    APARTMENT = "APARTMENT"
    CONDO = "CONDO"
    SERVICED_APARTMENT = "SERVICED_APARTMENT"
    PENTHOUSE = "PENTHOUSE"
    HOUSE = "HOUSE"
    VILLA = "VILLA"
    TOWNHOUSE = "TOWNHOUSE"

    ALL = (
        APARTMENT,
        CONDO,
        SERVICED_APARTMENT,
        PENTHOUSE,
        HOUSE,
        VILLA,
        TOWNHOUSE,
    )


@dataclass(frozen=True)
class DiscoveredUrl:
    """
    One listing URL found on a source's category pages.
    """

    url: str
    source_listing_id: str | None = None


@dataclass
class ScrapedListing:
    """
    Fields extracted by a source adapter from one listing page.
    """

    title: str
    property_type: str = PropertyType.APARTMENT
    description: str | None = None
    city: str | None = None
    district: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    size_sqm: float | None = None
    price_original: str | None = None
    price_monthly_usd: float | None = None
    currency: str | None = None
    image_urls: list[str] = field(default_factory=list)
    amenities: list[str] = field(default_factory=list)
    posted_at: datetime | None = None
    source_listing_id: str | None = None

    @property
    def first_image_url(self) -> str | None:
        return self.image_urls[0] if self.image_urls else None

    @property
    def has_usable_price(self) -> bool:
        return self.price_monthly_usd is not None and self.price_monthly_usd > 0


@dataclass(frozen=True)
class Classification:
    """
    Classifier verdict for one listing.

    ``property_type`` is None only when ``rejected`` is True. ``signal`` names
    where the decision came from: title, headline, url or default.
    """

    property_type: str | None
    rejected: bool = False
    matched_keyword: str | None = None
    signal: str = "default"

    @property
    def is_keyword_match(self) -> bool:
        return not self.rejected and self.matched_keyword is not None
