"""Change ledger - append-only log of row-level mutations on watched tables."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow

ACTIONS = ("INSERT", "UPDATE", "DELETE")


class ChangeLedgerEntry(Base):
    __tablename__ = "changes"
    __table_args__ = (
        Index("ix_changes_table_id", "table_name", "id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(50))
    record_id: Mapped[int] = mapped_column(Integer)
    action: Mapped[str] = mapped_column(String(10))  # INSERT, UPDATE, DELETE
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "timestamp": self.changed_at.isoformat() if self.changed_at else None,
        }

    def __repr__(self) -> str:
        return f"<Change {self.id} {self.action} {self.table_name}:{self.record_id}>"
