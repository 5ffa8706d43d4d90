"""Contact model."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, TimestampMixin


class Contact(TimestampMixin, AuditMixin, Base):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    firstname: Mapped[str | None] = mapped_column(String(100), default=None)
    surname: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    phone: Mapped[str | None] = mapped_column(String(50), default=None)
    unit: Mapped[str | None] = mapped_column(String(50), default=None)
    street_name: Mapped[str | None] = mapped_column(String(200), default=None)
    street_number: Mapped[str | None] = mapped_column(String(50), default=None)
    address: Mapped[str | None] = mapped_column(String(255), default=None)
    city: Mapped[str | None] = mapped_column(String(100), default=None)
    postal: Mapped[str | None] = mapped_column(String(20), default=None)
    electoral_district: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    poll_id: Mapped[str | None] = mapped_column(String(50), default=None, index=True)
    voted: Mapped[bool] = mapped_column(Boolean, default=False)
    ride_status: Mapped[str | None] = mapped_column(String(50), default=None)
    last_contacted: Mapped[str | None] = mapped_column(String(50), default=None)
    last_contacted_by: Mapped[str | None] = mapped_column(String(100), default=None)

    # Relationships
    field_values: Mapped[list["ContactFieldValue"]] = relationship(  # noqa: F821
        back_populates="contact", cascade="all, delete-orphan"
    )
    interactions: Mapped[list["Interaction"]] = relationship(  # noqa: F821
        back_populates="contact", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.firstname, self.surname) if p]
        return " ".join(parts) or "Unnamed"

    def __repr__(self) -> str:
        return f"<Contact {self.id} {self.full_name!r}>"
