"""
JobRun bookkeeping shared by every pipeline job.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from db.models.job_run import JobRunStatus
from db.repositories.job_run_repository import JobRunRepository
from db.types import utcnow
from rentindex.domain.results import JobResult
from rentindex.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000

SessionFactory = Callable[[], Session]
ResultT = TypeVar("ResultT", bound=JobResult)


def format_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"[:MAX_ERROR_MESSAGE_LENGTH]


def _json_safe(payload: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(payload, default=str))


class JobRunTracker:
    """
    Writes the RUNNING row when a job starts and closes it when it ends.

    Each call uses its own short session, so a job's own rollbacks never
    lose its audit record.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def start(
        self,
        *,
        job_type: str,
        source: str | None = None,
        request_payload: dict[str, Any] | None = None,
    ) -> uuid.UUID:
        with self._session_factory() as session:
            run = JobRunRepository(session).create_run(
                job_type=job_type,
                source=source,
                started_at=self._clock(),
                request_payload=_json_safe(request_payload or {}),
            )
            session.commit()
            return run.id

    def finish(self, run_id: uuid.UUID, result: JobResult) -> None:
        with self._session_factory() as session:
            JobRunRepository(session).finish_run(
                run_id=run_id,
                status=result.status,
                ended_at=self._clock(),
                counts=_json_safe(result.counts()),
                error_message=result.error[:MAX_ERROR_MESSAGE_LENGTH] if result.error else None,
            )
            session.commit()


class PipelineJob:
    """
    Base for jobs that record exactly one JobRun per invocation.
    """

    job_type: str = ""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        tracker: JobRunTracker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._tracker = tracker or JobRunTracker(session_factory, clock=clock)

    def _tracked(
        self,
        result: ResultT,
        body: Callable[[ResultT], None],
        *,
        source: str | None = None,
        request_payload: dict[str, Any] | None = None,
        job_type: str | None = None,
    ) -> ResultT:
        """
        Run ``body`` under a JobRun. Exceptions escaping ``body`` mark the
        run FAILED and are not re-raised; per-item work already committed
        stays committed.
        """

        job_type = job_type or self.job_type
        run_id = self._tracker.start(
            job_type=job_type,
            source=source,
            request_payload=request_payload,
        )
        result.job_run_id = run_id
        log_event(logger, logging.INFO, "job_started", job_type=job_type, source=source, job_run_id=run_id)

        try:
            body(result)
        except Exception as exc:
            result.status = JobRunStatus.FAILED
            result.error = format_error(exc)
            log_event(
                logger,
                logging.ERROR,
                "job_failed",
                job_type=job_type,
                source=source,
                job_run_id=run_id,
                error=result.error,
            )

        self._tracker.finish(run_id, result)
        log_event(
            logger,
            logging.INFO,
            "job_finished",
            job_type=job_type,
            source=source,
            job_run_id=run_id,
            status=result.status,
            counts=result.counts(),
        )
        return result
