"""Contact service - CRUD, search, dispatch status and live snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import column_dict
from ..models.contact import Contact
from . import custom_field_svc
from .custom_field_svc import CustomFieldCache

logger = logging.getLogger(__name__)

CONTACT_SECTION = "contacts"

# Columns a caller may write. Anything else is dropped before reaching the ORM.
CONTACT_COLUMNS = frozenset({
    "external_id",
    "firstname",
    "surname",
    "email",
    "phone",
    "unit",
    "street_name",
    "street_number",
    "address",
    "city",
    "postal",
    "electoral_district",
    "poll_id",
    "voted",
    "ride_status",
    "last_contacted",
    "last_contacted_by",
})

SORT_KEYS = {
    "id": Contact.id,
    "firstname": Contact.firstname,
    "surname": Contact.surname,
    "electoral_district": Contact.electoral_district,
    "poll_id": Contact.poll_id,
    "ride_status": Contact.ride_status,
    "updated_at": Contact.updated_at,
}

GROUPING_FIELDS = {
    "electoral_district": Contact.electoral_district,
    "poll_id": Contact.poll_id,
}


@dataclass
class ContactFilters:
    search: str | None = None
    ride_status: str | None = None
    voted: bool | None = None
    electoral_district: str | None = None
    poll_id: str | None = None
    surname_prefix: str | None = None


def sanitize_contact_data(data: Mapping[str, Any]) -> dict[str, Any]:
    clean = {k: v for k, v in data.items() if k in CONTACT_COLUMNS}
    dropped = set(data) - set(clean) - {"custom_fields"}
    if dropped:
        logger.debug("Ignoring non-contact keys: %s", ", ".join(sorted(dropped)))
    return clean


async def serialize_contacts(db: AsyncSession, contacts: list[Contact]) -> list[dict]:
    """Full rows with the ``custom_fields`` map pivoted in."""
    values = await custom_field_svc.get_custom_field_values(
        db, "contact", [c.id for c in contacts]
    )
    rows = []
    for contact in contacts:
        row = column_dict(contact)
        row["custom_fields"] = values.get(contact.id, {})
        rows.append(row)
    return rows


async def list_contacts(
    db: AsyncSession,
    filters: ContactFilters | None = None,
    *,
    sort_key: str = "surname",
    sort_direction: str = "asc",
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Contact], int]:
    """List contacts with optional filters and pagination. Returns (contacts, total)."""
    filters = filters or ContactFilters()
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unsupported sort key: {sort_key!r}")

    stmt = select(Contact)
    if filters.search:
        q = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                Contact.firstname.ilike(q),
                Contact.surname.ilike(q),
                Contact.email.ilike(q),
                Contact.phone.ilike(q),
            )
        )
    if filters.ride_status:
        stmt = stmt.where(Contact.ride_status == filters.ride_status)
    if filters.voted is not None:
        stmt = stmt.where(Contact.voted == filters.voted)
    if filters.electoral_district:
        stmt = stmt.where(Contact.electoral_district == filters.electoral_district)
    if filters.poll_id:
        stmt = stmt.where(Contact.poll_id == filters.poll_id)
    if filters.surname_prefix:
        stmt = stmt.where(Contact.surname.ilike(f"{filters.surname_prefix}%"))

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    column = SORT_KEYS[sort_key]
    order = column.desc() if sort_direction == "desc" else column.asc()
    stmt = stmt.order_by(order, Contact.id.asc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def get_contact(db: AsyncSession, contact_id: int) -> Contact | None:
    result = await db.execute(select(Contact).where(Contact.id == contact_id))
    return result.scalar_one_or_none()


async def get_contact_with_fields(db: AsyncSession, contact_id: int) -> dict | None:
    """Fixed columns plus ``custom_fields`` keyed by field name."""
    contact = await get_contact(db, contact_id)
    if not contact:
        return None
    return (await serialize_contacts(db, [contact]))[0]


async def get_contacts_by_ids(db: AsyncSession, contact_ids: list[int]) -> dict[int, dict]:
    if not contact_ids:
        return {}
    result = await db.execute(select(Contact).where(Contact.id.in_(contact_ids)))
    rows = await serialize_contacts(db, list(result.scalars().all()))
    return {row["id"]: row for row in rows}


async def snapshot_contacts(db: AsyncSession) -> list[dict]:
    """Every contact, ordered by id, as sent in ``initialContacts``."""
    result = await db.execute(select(Contact).order_by(Contact.id))
    return await serialize_contacts(db, list(result.scalars().all()))


async def create_contact(
    db: AsyncSession,
    data: Mapping[str, Any],
    *,
    user_id: int | None = None,
    cache: CustomFieldCache | None = None,
) -> Contact:
    contact = Contact(**sanitize_contact_data(data), created_by=user_id, updated_by=user_id)
    db.add(contact)
    custom_fields = data.get("custom_fields")
    if custom_fields:
        await db.flush()
        await custom_field_svc.upsert_custom_fields(
            db, "contact", contact.id, CONTACT_SECTION, custom_fields, cache=cache, commit=False
        )
    await db.commit()
    await db.refresh(contact)
    return contact


async def create_many_contacts(
    db: AsyncSession,
    rows: list[Mapping[str, Any]],
    *,
    user_id: int | None = None,
    cache: CustomFieldCache | None = None,
) -> list[int]:
    """Insert a batch in one transaction; nothing is kept if any row fails.

    Each row's ``custom_fields`` are written in the same transaction.
    """
    contacts = [
        Contact(**sanitize_contact_data(row), created_by=user_id, updated_by=user_id)
        for row in rows
    ]
    try:
        db.add_all(contacts)
        await db.flush()
        for contact, row in zip(contacts, rows):
            custom_fields = row.get("custom_fields")
            if custom_fields:
                await custom_field_svc.upsert_custom_fields(
                    db, "contact", contact.id, CONTACT_SECTION, custom_fields,
                    cache=cache, commit=False,
                )
        ids = [c.id for c in contacts]
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning("Contact import of %d rows rolled back", len(rows))
        raise
    return ids


def _apply_updates(contact: Contact, data: Mapping[str, Any], user_id: int | None) -> None:
    for key, value in sanitize_contact_data(data).items():
        setattr(contact, key, value)
    contact.updated_by = user_id


async def update_contact(
    db: AsyncSession,
    contact_id: int,
    data: Mapping[str, Any],
    *,
    user_id: int | None = None,
    cache: CustomFieldCache | None = None,
) -> Contact | None:
    """Update allow-listed columns and, optionally, contact custom fields."""
    contact = await get_contact(db, contact_id)
    if not contact:
        return None
    _apply_updates(contact, data, user_id)
    custom_fields = data.get("custom_fields")
    if custom_fields:
        await custom_field_svc.upsert_custom_fields(
            db, "contact", contact.id, CONTACT_SECTION, custom_fields, cache=cache, commit=False
        )
    await db.commit()
    await db.refresh(contact)
    return contact


async def update_ride_status(
    db: AsyncSession, contact_id: int, ride_status: str, *, user_id: int | None = None
) -> Contact | None:
    return await update_contact(db, contact_id, {"ride_status": ride_status}, user_id=user_id)


async def update_voted_status(
    db: AsyncSession, contact_id: int, voted: bool, *, user_id: int | None = None
) -> Contact | None:
    return await update_contact(db, contact_id, {"voted": voted}, user_id=user_id)


async def bulk_dispatch_update(
    db: AsyncSession,
    contact_ids: list[int],
    *,
    ride_status: str | None = None,
    voted: bool | None = None,
    user_id: int | None = None,
) -> int:
    """Apply ride status and/or voted flag to many contacts in one transaction."""
    updates: dict[str, Any] = {}
    if ride_status:
        updates["ride_status"] = ride_status
    if voted is not None:
        updates["voted"] = voted
    if not updates or not contact_ids:
        return 0

    result = await db.execute(select(Contact).where(Contact.id.in_(contact_ids)))
    contacts = list(result.scalars().all())
    try:
        for contact in contacts:
            _apply_updates(contact, updates, user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return len(contacts)


async def delete_contact(db: AsyncSession, contact_id: int) -> bool:
    """Delete a contact. Returns True if found and deleted."""
    contact = await get_contact(db, contact_id)
    if not contact:
        return False
    await db.delete(contact)
    await db.commit()
    return True


async def grouping_values(db: AsyncSession, field: str) -> list[str]:
    """Distinct non-empty values of a grouping column (district / poll)."""
    column = GROUPING_FIELDS.get(field)
    if column is None:
        raise ValueError(f"Unsupported grouping field: {field!r}")
    stmt = (
        select(column)
        .where(column.is_not(None), column != "")
        .distinct()
        .order_by(column.asc())
    )
    result = await db.execute(stmt)
    return [value for value in result.scalars().all()]
