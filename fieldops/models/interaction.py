"""Interaction model - one touch with a contact, scoped to a section."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, TimestampMixin


class Interaction(TimestampMixin, AuditMixin, Base):
    __tablename__ = "interactions"
    __table_args__ = (
        Index("ix_interactions_contact_created", "contact_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contact_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), index=True
    )
    section: Mapped[str] = mapped_column(String(50), default="canvass")  # canvass, dispatch, ...
    interaction_type: Mapped[str] = mapped_column(String(50))

    contact: Mapped["Contact"] = relationship(back_populates="interactions")  # noqa: F821
    field_values: Mapped[list["InteractionFieldValue"]] = relationship(  # noqa: F821
        back_populates="interaction", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Interaction {self.id} {self.section}/{self.interaction_type}>"
