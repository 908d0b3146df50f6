"""
rentindex/domain/results.py

Structured results returned by pipeline jobs. Each result mirrors the
counts stored on the job's JobRun row.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from db.models.job_run import JobRunStatus


@dataclass
class JobResult:
    job_run_id: uuid.UUID | None = None
    status: str = JobRunStatus.SUCCESS
    error: str | None = None

    def counts(self) -> dict[str, Any]:
        """
        Count fields persisted on the JobRun, without the run bookkeeping.
        """

        payload = asdict(self)
        for key in ("job_run_id", "status", "error"):
            payload.pop(key, None)
        return payload

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["job_run_id"] = str(self.job_run_id) if self.job_run_id else None
        return payload


@dataclass
class DiscoverResult(JobResult):
    source: str = ""
    discovered: int = 0
    unique: int = 0
    capped: int = 0
    skipped_queued: int = 0
    skipped_fresh: int = 0
    queued_new: int = 0
    queued_stale: int = 0

    @property
    def enqueued(self) -> int:
        return self.queued_new + self.queued_stale


@dataclass
class ProcessQueueResult(JobResult):
    source: str = ""
    claimed: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    snapshots: int = 0
    deactivated: int = 0
    filtered: int = 0
    no_price: int = 0
    skipped: int = 0
    retried: int = 0
    failed: int = 0
    released_expired: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class MarkStaleResult(JobResult):
    threshold_days: int = 0
    cutoff: datetime | None = None
    deactivated: int = 0
    already_inactive: int = 0


@dataclass
class BuildIndexResult(JobResult):
    period: str = ""
    snapshots: int = 0
    groups: int = 0
    rows_upserted: int = 0
    period_start: date | None = None
    period_end: date | None = None
