"""
Repository for append-only listing snapshots.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models.rental_listing import RentalListing
from db.models.rental_snapshot import RentalSnapshot


class RentalSnapshotRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def record(self, listing: RentalListing, *, scraped_at: datetime) -> RentalSnapshot:
        snapshot = RentalSnapshot(
            listing_id=listing.id,
            source=listing.source,
            city=listing.city,
            district=listing.district,
            bedrooms=listing.bedrooms,
            property_type=listing.property_type,
            price_monthly_usd=listing.price_monthly_usd,
            posted_at=listing.posted_at,
            scraped_at=scraped_at,
        )
        self._session.add(snapshot)
        return snapshot

    def priced_between(self, *, start: datetime, end: datetime) -> list[RentalSnapshot]:
        """
        Snapshots with a price, scraped in the half-open window [start, end).
        """

        stmt = (
            select(RentalSnapshot)
            .where(
                RentalSnapshot.scraped_at >= start,
                RentalSnapshot.scraped_at < end,
                RentalSnapshot.price_monthly_usd.is_not(None),
            )
            .order_by(RentalSnapshot.scraped_at.asc())
        )
        return list(self._session.scalars(stmt).all())

    def for_listing(self, listing_id: uuid.UUID, *, limit: int = 500) -> list[RentalSnapshot]:
        stmt = (
            select(RentalSnapshot)
            .where(RentalSnapshot.listing_id == listing_id)
            .order_by(RentalSnapshot.scraped_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def count_for_listing(self, listing_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(RentalSnapshot).where(RentalSnapshot.listing_id == listing_id)
        return int(self._session.scalar(stmt) or 0)
