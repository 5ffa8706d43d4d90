"""Custom field definitions (EAV pattern) and per-entity values."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

FIELD_TYPES = ("text", "select", "boolean")


class CustomField(Base):
    """Defines a custom attribute for one section (contacts, canvass, dispatch, ...)."""

    __tablename__ = "custom_fields"
    __table_args__ = (
        UniqueConstraint("section", "field_name", name="uq_custom_fields_section_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    section: Mapped[str] = mapped_column(String(50), index=True)
    field_name: Mapped[str] = mapped_column(String(200))
    field_type: Mapped[str] = mapped_column(String(20))  # text, select, boolean
    options: Mapped[list | None] = mapped_column(JSON, default=None)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<CustomField {self.section}/{self.field_name!r}>"


class ContactFieldValue(Base):
    """Stores a custom field value for a contact, always as text."""

    __tablename__ = "contact_field_values"
    __table_args__ = (
        UniqueConstraint("contact_id", "field_id", name="uq_contact_field_values"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contact_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), index=True
    )
    field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("custom_fields.id", ondelete="CASCADE"), index=True
    )
    value: Mapped[str | None] = mapped_column(Text, default=None)

    contact: Mapped["Contact"] = relationship(back_populates="field_values")  # noqa: F821
    field: Mapped[CustomField] = relationship()

    def __repr__(self) -> str:
        return f"<ContactFieldValue contact={self.contact_id} field={self.field_id}>"


class InteractionFieldValue(Base):
    """Stores a custom field value for an interaction, always as text."""

    __tablename__ = "interaction_field_values"
    __table_args__ = (
        UniqueConstraint("interaction_id", "field_id", name="uq_interaction_field_values"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    interaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("interactions.id", ondelete="CASCADE"), index=True
    )
    field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("custom_fields.id", ondelete="CASCADE"), index=True
    )
    value: Mapped[str | None] = mapped_column(Text, default=None)

    interaction: Mapped["Interaction"] = relationship(back_populates="field_values")  # noqa: F821
    field: Mapped[CustomField] = relationship()

    def __repr__(self) -> str:
        return f"<InteractionFieldValue interaction={self.interaction_id} field={self.field_id}>"
