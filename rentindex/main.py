from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from rentindex.schemas.rentals import HealthResponse


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised and
    lists every problem at once so one restart fixes them all.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    database_url = os.getenv("DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if not (database_url or local_database_url or cloud_database_url):
        errors.append(
            "No database URL configured. Set DATABASE_URL, LOCAL_DATABASE_URL or CLOUD_DATABASE_URL."
        )

    hour_raw = os.getenv("RENTALS_DAILY_RUN_HOUR_UTC", "").strip()
    if hour_raw and (not hour_raw.isdigit() or not 0 <= int(hour_raw) <= 23):
        errors.append(f"RENTALS_DAILY_RUN_HOUR_UTC='{hour_raw}' must be an hour between 0 and 23.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import get_session_factory

    try:
        with get_session_factory()() as db:
            db.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.
    Aborts startup when any is missing. Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the scheduler on boot; shut it down on exit."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")

    from rentindex.scraping.config import get_pipeline_settings

    if not get_pipeline_settings().scheduler_enabled:
        logging.getLogger(__name__).info("Scheduler disabled by RENTALS_SCHEDULER_ENABLED")
        application.state.scheduler_running = False
        yield
        return

    from rentindex.scheduler.jobs import build_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    application.state.scheduler_running = True
    logging.getLogger(__name__).info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        from rentindex.services.pipeline_service import get_rental_pipeline_service

        get_rental_pipeline_service().request_shutdown()
        scheduler.shutdown(wait=True)
        application.state.scheduler_running = False
        logging.getLogger(__name__).info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="RentIndex Pipeline API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from rentindex.api.routers import rentals_router

    application.include_router(rentals_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="ok",
            scheduler_running=bool(getattr(application.state, "scheduler_running", False)),
        )

    return application


app = create_app()
