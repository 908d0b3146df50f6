"""
db/models/rental_index.py

Derived price index rows. Both tables can be dropped and rebuilt from
snapshots at any time.

Unknown district is stored as "" and unknown bedrooms as -1 so the full
grouping tuple can carry a unique constraint.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

UNKNOWN_DISTRICT = ""
UNKNOWN_BEDROOMS = -1


class RentalIndexDaily(Base, TimestampMixin):
    __tablename__ = "rental_index_daily"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    index_date: Mapped[date] = mapped_column(Date, nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    district: Mapped[str] = mapped_column(String(128), nullable=False, default=UNKNOWN_DISTRICT)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=UNKNOWN_BEDROOMS)
    property_type: Mapped[str] = mapped_column(String(32), nullable=False)
    listing_count: Mapped[int] = mapped_column(Integer, nullable=False)
    median_price: Mapped[float] = mapped_column(Float, nullable=False)
    mean_price: Mapped[float] = mapped_column(Float, nullable=False)
    p25_price: Mapped[float] = mapped_column(Float, nullable=False)
    p75_price: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "index_date",
            "city",
            "district",
            "bedrooms",
            "property_type",
            name="uq_rental_index_daily_bucket",
        ),
        Index("ix_rental_index_daily_index_date", "index_date"),
    )


class RentalIndexMonthly(Base, TimestampMixin):
    __tablename__ = "rental_index_monthly"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False, comment="YYYY-MM")
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    district: Mapped[str] = mapped_column(String(128), nullable=False, default=UNKNOWN_DISTRICT)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=UNKNOWN_BEDROOMS)
    property_type: Mapped[str] = mapped_column(String(32), nullable=False)
    listing_count: Mapped[int] = mapped_column(Integer, nullable=False)
    median_price: Mapped[float] = mapped_column(Float, nullable=False)
    mean_price: Mapped[float] = mapped_column(Float, nullable=False)
    p25_price: Mapped[float] = mapped_column(Float, nullable=False)
    p75_price: Mapped[float] = mapped_column(Float, nullable=False)
    days_covered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "year_month",
            "city",
            "district",
            "bedrooms",
            "property_type",
            name="uq_rental_index_monthly_bucket",
        ),
        Index("ix_rental_index_monthly_year_month", "year_month"),
    )
