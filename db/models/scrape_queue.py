"""
db/models/scrape_queue.py

Durable per-source work list of listing URLs waiting to be scraped.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

MAX_QUEUE_ATTEMPTS = 3


class ScrapeQueueStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    RETRY = "RETRY"
    DONE = "DONE"

    CLAIMABLE = (PENDING, RETRY)


class ScrapeQueueItem(Base, TimestampMixin):
    __tablename__ = "scrape_queue"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    canonical_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    source_listing_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ScrapeQueueStatus.PENDING,
        comment="PENDING, PROCESSING, RETRY, DONE",
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "canonical_url", name="uq_scrape_queue_source_canonical_url"),
        Index("ix_scrape_queue_source_status_priority", "source", "status", "priority", "created_at"),
        Index("ix_scrape_queue_claim_token", "claim_token"),
    )
