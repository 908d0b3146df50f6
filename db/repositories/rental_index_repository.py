"""
Repository for daily and monthly price index rows.

Writes are upserts on the full grouping tuple, so rebuilding a day or a
month overwrites its rows instead of duplicating them.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.rental_index import RentalIndexDaily, RentalIndexMonthly
from db.repositories.dialect import upsert_insert
from db.types import utcnow

_BUCKET_COLUMNS = ("city", "district", "bedrooms", "property_type")
_STAT_COLUMNS = ("listing_count", "median_price", "mean_price", "p25_price", "p75_price")


class RentalIndexRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_daily(self, *, index_date: date, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            self._upsert(
                RentalIndexDaily,
                key_column="index_date",
                key_value=index_date,
                row=row,
                stat_columns=_STAT_COLUMNS,
            )
        return len(rows)

    def upsert_monthly(self, *, year_month: str, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            self._upsert(
                RentalIndexMonthly,
                key_column="year_month",
                key_value=year_month,
                row=row,
                stat_columns=(*_STAT_COLUMNS, "days_covered"),
            )
        return len(rows)

    def daily_between(self, *, start: date, end: date) -> list[RentalIndexDaily]:
        """
        Daily rows with ``start <= index_date < end``.
        """

        stmt = (
            select(RentalIndexDaily)
            .where(RentalIndexDaily.index_date >= start, RentalIndexDaily.index_date < end)
            .order_by(RentalIndexDaily.index_date.asc())
        )
        return list(self._session.scalars(stmt).all())

    def daily_for(self, index_date: date) -> list[RentalIndexDaily]:
        stmt = select(RentalIndexDaily).where(RentalIndexDaily.index_date == index_date)
        return list(self._session.scalars(stmt).all())

    def monthly_for(self, year_month: str) -> list[RentalIndexMonthly]:
        stmt = select(RentalIndexMonthly).where(RentalIndexMonthly.year_month == year_month)
        return list(self._session.scalars(stmt).all())

    def _upsert(
        self,
        model: type[Any],
        *,
        key_column: str,
        key_value: Any,
        row: dict[str, Any],
        stat_columns: tuple[str, ...],
    ) -> None:
        now = utcnow()
        stmt = upsert_insert(self._session, model).values(
            **{key_column: key_value},
            **{column: row[column] for column in _BUCKET_COLUMNS},
            **{column: row[column] for column in stat_columns},
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[key_column, *_BUCKET_COLUMNS],
            set_={
                **{column: getattr(stmt.excluded, column) for column in stat_columns},
                "updated_at": now,
            },
        )
        self._session.execute(stmt)
