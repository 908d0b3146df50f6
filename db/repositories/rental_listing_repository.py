"""
Repository for rental listing lookup, lifecycle updates and stale sweeps.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from db.models.rental_listing import RentalListing
from db.types import utcnow


class RentalListingRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, listing_id: uuid.UUID) -> RentalListing | None:
        return self._session.get(RentalListing, listing_id)

    def get_by_canonical_url(self, canonical_url: str) -> RentalListing | None:
        stmt = select(RentalListing).where(RentalListing.canonical_url == canonical_url)
        return self._session.scalars(stmt).first()

    def get_by_source_listing_id(self, *, source: str, source_listing_id: str) -> RentalListing | None:
        stmt = (
            select(RentalListing)
            .where(
                RentalListing.source == source,
                RentalListing.source_listing_id == source_listing_id,
            )
            .order_by(RentalListing.last_seen_at.desc())
        )
        return self._session.scalars(stmt).first()

    def get_by_fingerprint(self, *, source: str, fingerprint: str) -> RentalListing | None:
        stmt = (
            select(RentalListing)
            .where(
                RentalListing.source == source,
                RentalListing.content_fingerprint == fingerprint,
            )
            .order_by(RentalListing.last_seen_at.desc())
        )
        return self._session.scalars(stmt).first()

    def resolve(
        self,
        *,
        source: str,
        canonical_url: str,
        source_listing_id: str | None = None,
        fingerprint: str | None = None,
    ) -> RentalListing | None:
        """
        Find the stored listing for a scrape: canonical URL first, then the
        source's native id, then the content fingerprint.
        """

        listing = self.get_by_canonical_url(canonical_url)
        if listing is not None:
            return listing
        if source_listing_id:
            listing = self.get_by_source_listing_id(source=source, source_listing_id=source_listing_id)
            if listing is not None:
                return listing
        if fingerprint:
            return self.get_by_fingerprint(source=source, fingerprint=fingerprint)
        return None

    def last_seen_by_url(
        self,
        *,
        canonical_urls: Iterable[str],
    ) -> dict[str, datetime]:
        urls = list(dict.fromkeys(canonical_urls))
        found: dict[str, datetime] = {}
        for start in range(0, len(urls), 500):
            chunk = urls[start:start + 500]
            stmt = select(RentalListing.canonical_url, RentalListing.last_seen_at).where(
                RentalListing.canonical_url.in_(chunk)
            )
            for canonical_url, last_seen_at in self._session.execute(stmt).all():
                found[canonical_url] = last_seen_at
        return found

    def add(self, listing: RentalListing) -> RentalListing:
        self._session.add(listing)
        self._session.flush()
        return listing

    def deactivate(self, listing: RentalListing) -> bool:
        if not listing.is_active:
            return False
        listing.is_active = False
        return True

    def mark_stale(self, *, cutoff: datetime) -> int:
        """
        Bulk-deactivate active listings last seen before ``cutoff``.
        """

        stmt = (
            update(RentalListing)
            .where(
                RentalListing.is_active.is_(True),
                RentalListing.last_seen_at < cutoff,
            )
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return int(self._session.execute(stmt).rowcount or 0)

    def count_inactive(self) -> int:
        stmt = select(func.count()).select_from(RentalListing).where(RentalListing.is_active.is_(False))
        return int(self._session.scalar(stmt) or 0)

    def list_listings(
        self,
        *,
        limit: int = 100,
        source: str | None = None,
        city: str | None = None,
        active_only: bool = False,
    ) -> list[RentalListing]:
        stmt: Select[tuple[RentalListing]] = select(RentalListing)
        if source:
            stmt = stmt.where(RentalListing.source == source)
        if city:
            stmt = stmt.where(RentalListing.city == city)
        if active_only:
            stmt = stmt.where(RentalListing.is_active.is_(True))
        stmt = stmt.order_by(RentalListing.last_seen_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def set_manual_override(
        self,
        *,
        listing_id: uuid.UUID,
        property_type: str | None = None,
        is_active: bool | None = None,
    ) -> RentalListing | None:
        listing = self.get(listing_id)
        if listing is None:
            return None
        listing.manual_override = True
        if property_type is not None:
            listing.property_type = property_type
        if is_active is not None:
            listing.is_active = is_active
        return listing

    def clear_manual_override(self, *, listing_id: uuid.UUID) -> RentalListing | None:
        listing = self.get(listing_id)
        if listing is None:
            return None
        listing.manual_override = False
        return listing
