"""
Dialect-aware INSERT ... ON CONFLICT construction.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def upsert_insert(session: Session, model: type[Any]) -> Any:
    """
    Return a dialect-specific ``insert()`` that supports ``on_conflict_do_update``.
    """

    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Upserts are not supported for dialect '{name}'.")
