"""
Repository for the scrape queue state machine.

PENDING/RETRY --claim--> PROCESSING --complete--> DONE | RETRY
                                    --release---> PENDING | RETRY

Every transition is a single conditional UPDATE so concurrent workers, in
the same process or not, never claim or finalize the same item twice. The
repository never commits; callers commit right after ``claim()`` so the
claim becomes visible to other workers before any network I/O starts.
"""

from __future__ import annotations

import uuid
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from db.models.scrape_queue import MAX_QUEUE_ATTEMPTS, ScrapeQueueItem, ScrapeQueueStatus
from db.repositories.dialect import upsert_insert
from db.types import utcnow

MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class QueueOutcome:
    """
    Result of processing one claimed item.

    ``failed=False`` finalizes the item as DONE, with ``reason`` recorded for
    filtered or not-found items. ``failed=True`` counts an attempt and sends
    the item back to RETRY until the attempt cap, then DONE.
    """

    failed: bool = False
    reason: str | None = None

    @classmethod
    def done(cls, reason: str | None = None) -> "QueueOutcome":
        return cls(failed=False, reason=reason)

    @classmethod
    def failure(cls, error: str) -> "QueueOutcome":
        return cls(failed=True, reason=error)


class ScrapeQueueRepository:
    def __init__(self, session: Session, *, max_attempts: int = MAX_QUEUE_ATTEMPTS) -> None:
        self._session = session
        self._max_attempts = max(1, max_attempts)

    def enqueue(
        self,
        *,
        source: str,
        canonical_url: str,
        source_listing_id: str | None = None,
        priority: int = 0,
    ) -> None:
        """
        Idempotent upsert on (source, canonical_url).

        A DONE item is re-queued as PENDING with its attempt counter reset.
        PENDING, RETRY and PROCESSING items keep their state; their priority is
        only ever raised and ``updated_at`` is refreshed.
        """

        now = utcnow()
        table = ScrapeQueueItem.__table__
        stmt = upsert_insert(self._session, ScrapeQueueItem).values(
            id=uuid.uuid4(),
            source=source,
            canonical_url=canonical_url,
            source_listing_id=source_listing_id,
            status=ScrapeQueueStatus.PENDING,
            attempts=0,
            priority=priority,
            created_at=now,
            updated_at=now,
        )
        is_done = table.c.status == ScrapeQueueStatus.DONE
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "canonical_url"],
            set_={
                "status": case((is_done, ScrapeQueueStatus.PENDING), else_=table.c.status),
                "attempts": case((is_done, 0), else_=table.c.attempts),
                "priority": case(
                    (is_done, stmt.excluded.priority),
                    (stmt.excluded.priority > table.c.priority, stmt.excluded.priority),
                    else_=table.c.priority,
                ),
                "last_error": case((is_done, None), else_=table.c.last_error),
                "source_listing_id": case(
                    (is_done, func.coalesce(stmt.excluded.source_listing_id, table.c.source_listing_id)),
                    else_=table.c.source_listing_id,
                ),
                "updated_at": now,
            },
        )
        self._session.execute(stmt)

    def claim(
        self,
        *,
        source: str,
        limit: int,
        exclude_ids: Collection[uuid.UUID] = (),
    ) -> list[ScrapeQueueItem]:
        """
        Move up to ``limit`` claimable items to PROCESSING under a fresh token.

        Highest priority first, then oldest. The outer status check makes a
        row that another worker claimed first drop out of the UPDATE.
        ``exclude_ids`` keeps items already handled in the current run from
        being claimed again before their retry is due.
        """

        if limit <= 0:
            return []

        token = uuid.uuid4().hex
        now = utcnow()
        conditions = [
            ScrapeQueueItem.source == source,
            ScrapeQueueItem.status.in_(ScrapeQueueStatus.CLAIMABLE),
        ]
        if exclude_ids:
            conditions.append(ScrapeQueueItem.id.not_in(list(exclude_ids)))
        candidates = (
            select(ScrapeQueueItem.id)
            .where(*conditions)
            .order_by(
                ScrapeQueueItem.priority.desc(),
                ScrapeQueueItem.created_at.asc(),
                ScrapeQueueItem.id.asc(),
            )
            .limit(limit)
            # Row locks on PostgreSQL; SQLite serializes writers instead.
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(ScrapeQueueItem)
            .where(
                ScrapeQueueItem.id.in_(candidates),
                ScrapeQueueItem.status.in_(ScrapeQueueStatus.CLAIMABLE),
            )
            .values(
                status=ScrapeQueueStatus.PROCESSING,
                claim_token=token,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self._session.execute(stmt)
        return self.get_claimed(token)

    def get_claimed(self, claim_token: str) -> list[ScrapeQueueItem]:
        stmt = (
            select(ScrapeQueueItem)
            .where(
                ScrapeQueueItem.claim_token == claim_token,
                ScrapeQueueItem.status == ScrapeQueueStatus.PROCESSING,
            )
            .order_by(ScrapeQueueItem.priority.desc(), ScrapeQueueItem.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(self._session.scalars(stmt).all())

    def complete(self, item: ScrapeQueueItem, outcome: QueueOutcome) -> str | None:
        """
        Finalize a claimed item. Returns the resulting status, or None when
        the claim was no longer held (expired and re-claimed elsewhere).
        """

        now = utcnow()
        reason = outcome.reason[:MAX_ERROR_LENGTH] if outcome.reason else None
        if outcome.failed:
            attempts_after = ScrapeQueueItem.attempts + 1
            values = {
                "attempts": attempts_after,
                "status": case(
                    (attempts_after >= self._max_attempts, ScrapeQueueStatus.DONE),
                    else_=ScrapeQueueStatus.RETRY,
                ),
                "last_error": reason,
            }
            new_status = (
                ScrapeQueueStatus.DONE
                if item.attempts + 1 >= self._max_attempts
                else ScrapeQueueStatus.RETRY
            )
        else:
            values = {
                "attempts": ScrapeQueueItem.attempts + 1,
                "status": ScrapeQueueStatus.DONE,
                "last_error": reason,
            }
            new_status = ScrapeQueueStatus.DONE

        stmt = (
            update(ScrapeQueueItem)
            .where(*self._held_claim(item))
            .values(claim_token=None, claimed_at=None, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            return None
        return new_status

    def release(self, item: ScrapeQueueItem) -> bool:
        """
        Hand a claimed item back without counting an attempt.
        """

        previous_status = ScrapeQueueStatus.RETRY if item.attempts > 0 else ScrapeQueueStatus.PENDING
        stmt = (
            update(ScrapeQueueItem)
            .where(*self._held_claim(item))
            .values(
                status=previous_status,
                claim_token=None,
                claimed_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def release_expired_claims(self, *, source: str | None, older_than: datetime) -> int:
        """
        Return PROCESSING items claimed before ``older_than`` to RETRY.
        """

        conditions = [
            ScrapeQueueItem.status == ScrapeQueueStatus.PROCESSING,
            ScrapeQueueItem.claimed_at < older_than,
        ]
        if source is not None:
            conditions.append(ScrapeQueueItem.source == source)
        stmt = (
            update(ScrapeQueueItem)
            .where(*conditions)
            .values(
                status=ScrapeQueueStatus.RETRY,
                claim_token=None,
                claimed_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return int(self._session.execute(stmt).rowcount or 0)

    def queued_urls(self, *, source: str, canonical_urls: Iterable[str]) -> set[str]:
        """
        Subset of ``canonical_urls`` currently waiting (PENDING or RETRY).
        """

        return self._urls_where(
            source=source,
            canonical_urls=canonical_urls,
            conditions=(ScrapeQueueItem.status.in_(ScrapeQueueStatus.CLAIMABLE),),
        )

    def recently_finished_urls(
        self,
        *,
        source: str,
        canonical_urls: Iterable[str],
        since: datetime,
    ) -> set[str]:
        return self._urls_where(
            source=source,
            canonical_urls=canonical_urls,
            conditions=(
                ScrapeQueueItem.status == ScrapeQueueStatus.DONE,
                ScrapeQueueItem.updated_at >= since,
            ),
        )

    def get_item(self, *, source: str, canonical_url: str) -> ScrapeQueueItem | None:
        stmt = select(ScrapeQueueItem).where(
            ScrapeQueueItem.source == source,
            ScrapeQueueItem.canonical_url == canonical_url,
        )
        return self._session.scalars(stmt).first()

    def status_counts(self, *, source: str | None = None) -> dict[str, int]:
        stmt = select(ScrapeQueueItem.status, func.count()).group_by(ScrapeQueueItem.status)
        if source is not None:
            stmt = stmt.where(ScrapeQueueItem.source == source)
        counts = {status: 0 for status in _ALL_STATUSES}
        for status, count in self._session.execute(stmt).all():
            counts[status] = int(count)
        return counts

    def _urls_where(
        self,
        *,
        source: str,
        canonical_urls: Iterable[str],
        conditions: tuple,
    ) -> set[str]:
        urls = list(dict.fromkeys(canonical_urls))
        if not urls:
            return set()
        found: set[str] = set()
        for chunk in _chunks(urls, 500):
            stmt = select(ScrapeQueueItem.canonical_url).where(
                ScrapeQueueItem.source == source,
                ScrapeQueueItem.canonical_url.in_(chunk),
                *conditions,
            )
            found.update(self._session.scalars(stmt).all())
        return found

    @staticmethod
    def _held_claim(item: ScrapeQueueItem) -> tuple:
        return (
            ScrapeQueueItem.id == item.id,
            ScrapeQueueItem.claim_token == item.claim_token,
            ScrapeQueueItem.status == ScrapeQueueStatus.PROCESSING,
        )


_ALL_STATUSES = (
    ScrapeQueueStatus.PENDING,
    ScrapeQueueStatus.PROCESSING,
    ScrapeQueueStatus.RETRY,
    ScrapeQueueStatus.DONE,
)


def _chunks(values: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]
