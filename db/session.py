"""
db/session.py

SQLAlchemy engine and session factory.

Pipeline jobs open one short-lived session per unit of work (claim batch,
queue item, JobRun update) through ``get_session_factory()``; API requests
use ``get_db()``.
"""

from __future__ import annotations

import os
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine() -> Engine:
    database_url = resolve_database_url()
    if not database_url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    # Worker threads each hold a session, so the pool must cover them.
    worker_count = max(1, _get_int_env("RENTALS_WORKER_COUNT", 2))
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=max(_get_int_env("DB_POOL_SIZE", 5), worker_count + 2),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
    )


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the shared sessionmaker bound to the lazy engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
