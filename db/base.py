"""
db/base.py

Declarative base and shared mixins for all SQLAlchemy models.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from db.types import UTCDateTime, utcnow


class Base(DeclarativeBase):
    """
    Project-wide declarative base.
    All models must inherit from this class.
    """

    type_annotation_map: dict[type, Any] = {
        datetime: UTCDateTime(),
        uuid.UUID: Uuid(as_uuid=True),
    }


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at to any model.
    updated_at is refreshed on every ORM or Core UPDATE via onupdate;
    ON CONFLICT upserts must set it explicitly.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
