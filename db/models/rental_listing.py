"""
db/models/rental_listing.py

Current-state view of one rental property.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin
from db.types import JSONType


class RentalListing(Base, TimestampMixin):
    __tablename__ = "rental_listings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    source_listing_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    canonical_url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    district: Mapped[str | None] = mapped_column(String(128), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    property_type: Mapped[str] = mapped_column(String(32), nullable=False)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_sqm: Mapped[float | None] = mapped_column(Float, nullable=True)

    price_original: Mapped[str | None] = mapped_column(String(128), nullable=True)
    price_monthly_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)

    image_urls: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    amenities: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manual_override: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Human correction; scraping must not change property_type or reactivate",
    )
    content_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_rental_listings_source_listing_id", "source", "source_listing_id"),
        Index("ix_rental_listings_source_fingerprint", "source", "content_fingerprint"),
        Index("ix_rental_listings_active_last_seen", "is_active", "last_seen_at"),
        Index("ix_rental_listings_city_district", "city", "district"),
    )
