"""Base model classes and mixins for field ops models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """Adds created_at / updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class AuditMixin:
    """Adds created_by / updated_by user ids (users live outside this package)."""

    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    updated_by: Mapped[int | None] = mapped_column(Integer, default=None)


def column_dict(obj) -> dict:
    """Plain JSON-friendly dict of a mapped object's table columns."""
    row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        row[column.key] = value
    return row
