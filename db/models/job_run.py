"""
db/models/job_run.py

Audit record written once per pipeline job invocation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin
from db.types import JSONType


class JobRunType:
    DISCOVER = "DISCOVER"
    PROCESS_QUEUE = "PROCESS_QUEUE"
    BUILD_DAILY_INDEX = "BUILD_DAILY_INDEX"
    BUILD_MONTHLY_INDEX = "BUILD_MONTHLY_INDEX"
    MARK_STALE = "MARK_STALE"


class JobRunStatus:
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class JobRun(Base, TimestampMixin):
    __tablename__ = "job_runs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    job_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="DISCOVER, PROCESS_QUEUE, BUILD_DAILY_INDEX, BUILD_MONTHLY_INDEX, MARK_STALE",
    )
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=JobRunStatus.RUNNING)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Invocation parameters",
    )
    counts: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_job_runs_job_type_status", "job_type", "status"),
        Index("ix_job_runs_started_at", "started_at"),
    )
