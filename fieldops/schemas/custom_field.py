"""Custom field schemas."""

from __future__ import annotations

from pydantic import BaseModel


class CustomFieldCreate(BaseModel):
    section: str
    field_name: str
    field_type: str = "text"  # text/select/boolean
    options: list[str] | str | None = None


class CustomFieldUpdate(BaseModel):
    field_name: str | None = None
    field_type: str | None = None
    options: list[str] | str | None = None
