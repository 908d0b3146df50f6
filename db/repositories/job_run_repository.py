"""
Repository for JobRun audit records.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.job_run import JobRun, JobRunStatus


class JobRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_run(
        self,
        *,
        job_type: str,
        source: str | None,
        started_at: datetime,
        request_payload: dict[str, Any] | None = None,
    ) -> JobRun:
        run = JobRun(
            job_type=job_type,
            source=source,
            status=JobRunStatus.RUNNING,
            started_at=started_at,
            request_payload=request_payload,
        )
        self._session.add(run)
        self._session.flush()
        return run

    def get_run(self, run_id: uuid.UUID) -> JobRun | None:
        return self._session.get(JobRun, run_id)

    def list_runs(
        self,
        *,
        limit: int = 50,
        job_type: str | None = None,
        source: str | None = None,
        status: str | None = None,
    ) -> list[JobRun]:
        stmt: Select[tuple[JobRun]] = select(JobRun)

        if job_type:
            stmt = stmt.where(JobRun.job_type == job_type)
        if source:
            stmt = stmt.where(JobRun.source == source)
        if status:
            stmt = stmt.where(JobRun.status == status)

        stmt = stmt.order_by(JobRun.started_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def finish_run(
        self,
        *,
        run_id: uuid.UUID,
        status: str,
        ended_at: datetime,
        counts: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> JobRun | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        run.status = status
        run.ended_at = ended_at
        run.duration_ms = max(0, int((ended_at - run.started_at).total_seconds() * 1000))
        run.counts = counts
        run.error_message = error_message
        return run
