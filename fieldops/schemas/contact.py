"""Contact and dispatch schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ContactCreate(BaseModel):
    external_id: str | None = None
    firstname: str | None = None
    surname: str | None = None
    email: str | None = None
    phone: str | None = None
    unit: str | None = None
    street_name: str | None = None
    street_number: str | None = None
    address: str | None = None
    city: str | None = None
    postal: str | None = None
    electoral_district: str | None = None
    poll_id: str | None = None
    voted: bool = False
    ride_status: str | None = None
    custom_fields: dict[str, Any] | None = None


class ContactUpdate(BaseModel):
    external_id: str | None = None
    firstname: str | None = None
    surname: str | None = None
    email: str | None = None
    phone: str | None = None
    unit: str | None = None
    street_name: str | None = None
    street_number: str | None = None
    address: str | None = None
    city: str | None = None
    postal: str | None = None
    electoral_district: str | None = None
    poll_id: str | None = None
    voted: bool | None = None
    ride_status: str | None = None
    last_contacted: str | None = None
    last_contacted_by: str | None = None
    custom_fields: dict[str, Any] | None = None


class ContactImport(BaseModel):
    contacts: list[ContactCreate] = Field(min_length=1)


class RideStatusUpdate(BaseModel):
    contact_id: int
    ride_status: str


class VotedUpdate(BaseModel):
    contact_id: int
    voted: bool


class BulkDispatchUpdate(BaseModel):
    contact_ids: list[int] = Field(min_length=1)
    ride_status: str | None = None
    voted: bool | None = None
