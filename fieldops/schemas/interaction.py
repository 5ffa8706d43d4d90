"""Interaction and canvass schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class InteractionCreate(BaseModel):
    interaction_type: str
    section: str = "canvass"
    custom_fields: dict[str, Any] | None = None


class CanvassChangeIn(BaseModel):
    contact_id: int
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class CanvassCommit(BaseModel):
    changes: list[CanvassChangeIn]
    section: str = "canvass"
    interaction_type: str = "canvass"
    user_id: int | None = None
