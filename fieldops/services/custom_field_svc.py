"""Custom field definition + value service (EAV)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.custom_field import (
    FIELD_TYPES,
    ContactFieldValue,
    CustomField,
    InteractionFieldValue,
)

logger = logging.getLogger(__name__)

SECTIONS = ("contacts", "canvass", "dispatch", "scrutineer", "interactions")

DEFAULT_FIELDS = (
    ("canvass", "Support Level", "select",
     ["Strong Support", "Lean Support", "Undecided", "Lean Against", "Strong Against"]),
    ("canvass", "Wants Sign", "boolean", None),
    ("interactions", "Interaction Type", "select",
     ["Phone Call", "Door Knock", "Email", "Text Message", "Social Media", "Event"]),
    ("interactions", "Notes", "text", None),
    ("dispatch", "Ride Status", "select",
     ["Requested", "Scheduled", "En Route", "Completed", "Cancelled"]),
    ("dispatch", "Voted", "boolean", None),
)

# entity_type -> (value model, foreign key attribute)
_VALUE_MODELS = {
    "contact": (ContactFieldValue, "contact_id"),
    "interaction": (InteractionFieldValue, "interaction_id"),
}

_UPDATABLE = frozenset({"field_name", "field_type", "options"})


@dataclass(frozen=True)
class FieldDef:
    """Detached, cacheable view of a ``CustomField`` row."""

    id: int
    section: str
    field_name: str
    field_type: str
    options: tuple[str, ...] | None
    is_default: bool

    @classmethod
    def from_model(cls, field: CustomField) -> FieldDef:
        return cls(
            id=field.id,
            section=field.section,
            field_name=field.field_name,
            field_type=field.field_type,
            options=tuple(field.options) if field.options is not None else None,
            is_default=bool(field.is_default),
        )


class CustomFieldCache:
    """Per-section field definitions kept in memory between CRUD calls."""

    def __init__(self) -> None:
        self._sections: dict[str, dict[str, FieldDef]] = {}

    async def get_section(self, db: AsyncSession, section: str) -> dict[str, FieldDef]:
        cached = self._sections.get(section)
        if cached is None:
            fields = await list_custom_fields(db, section)
            cached = {f.field_name: FieldDef.from_model(f) for f in fields}
            self._sections[section] = cached
        return cached

    def invalidate(self, section: str | None = None) -> None:
        if section is None:
            self._sections.clear()
        else:
            self._sections.pop(section, None)


def _value_model(entity_type: str):
    try:
        return _VALUE_MODELS[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type!r}") from None


def to_text(value: Any) -> str | None:
    """Normalise a submitted value to the stored text form."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _clean_options(field_type: str, options) -> list[str] | None:
    if field_type != "select" or options is None:
        return None
    if isinstance(options, str):
        options = options.split(",")
    return [str(o).strip() for o in options if str(o).strip()]


async def list_custom_fields(db: AsyncSession, section: str) -> list[CustomField]:
    """Fields of one section in creation order."""
    stmt = select(CustomField).where(CustomField.section == section).order_by(CustomField.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_custom_field(db: AsyncSession, field_id: int) -> CustomField | None:
    result = await db.execute(select(CustomField).where(CustomField.id == field_id))
    return result.scalar_one_or_none()


async def _find_by_name(db: AsyncSession, section: str, field_name: str) -> CustomField | None:
    stmt = select(CustomField).where(
        CustomField.section == section, CustomField.field_name == field_name
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_custom_field(
    db: AsyncSession,
    section: str,
    field_name: str,
    field_type: str = "text",
    options: list[str] | str | None = None,
    *,
    is_default: bool = False,
    cache: CustomFieldCache | None = None,
) -> CustomField:
    field_name = (field_name or "").strip()
    if not field_name:
        raise ValueError("Field name is required")
    if field_type not in FIELD_TYPES:
        raise ValueError(f"Unsupported field type: {field_type!r}")
    if await _find_by_name(db, section, field_name):
        raise ValueError(f"Field {field_name!r} already exists in section {section!r}")

    field = CustomField(
        section=section,
        field_name=field_name,
        field_type=field_type,
        options=_clean_options(field_type, options),
        is_default=is_default,
    )
    db.add(field)
    await db.commit()
    await db.refresh(field)
    if cache is not None:
        cache.invalidate(section)
    return field


async def update_custom_field(
    db: AsyncSession,
    field_id: int,
    *,
    cache: CustomFieldCache | None = None,
    **changes,
) -> CustomField | None:
    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update custom field attribute(s): {', '.join(sorted(unknown))}")

    field = await get_custom_field(db, field_id)
    if not field:
        return None

    if "field_name" in changes:
        new_name = (changes["field_name"] or "").strip()
        if not new_name:
            raise ValueError("Field name is required")
        if new_name != field.field_name:
            if await _find_by_name(db, field.section, new_name):
                raise ValueError(
                    f"Field {new_name!r} already exists in section {field.section!r}"
                )
            field.field_name = new_name
    if "field_type" in changes:
        if changes["field_type"] not in FIELD_TYPES:
            raise ValueError(f"Unsupported field type: {changes['field_type']!r}")
        field.field_type = changes["field_type"]
    if "options" in changes or "field_type" in changes:
        field.options = _clean_options(field.field_type, changes.get("options", field.options))

    await db.commit()
    await db.refresh(field)
    if cache is not None:
        cache.invalidate(field.section)
    return field


async def delete_custom_field(
    db: AsyncSession, field_id: int, *, cache: CustomFieldCache | None = None
) -> bool:
    """Delete a field and every value stored for it. Default fields are protected."""
    field = await get_custom_field(db, field_id)
    if not field:
        return False
    if field.is_default:
        raise ValueError(f"Default field {field.field_name!r} cannot be deleted")

    # Values go through the ORM so the owning entities show up in the change ledger.
    for model, _ in _VALUE_MODELS.values():
        result = await db.execute(select(model).where(model.field_id == field_id))
        for value in result.scalars().all():
            await db.delete(value)
    await db.delete(field)
    await db.commit()
    if cache is not None:
        cache.invalidate(field.section)
    return True


async def ensure_default_fields(db: AsyncSession, *, cache: CustomFieldCache | None = None) -> None:
    """Insert the built-in fields, refreshing type/options of existing ones."""
    for section, field_name, field_type, options in DEFAULT_FIELDS:
        field = await _find_by_name(db, section, field_name)
        if field is None:
            db.add(CustomField(
                section=section,
                field_name=field_name,
                field_type=field_type,
                options=options,
                is_default=True,
            ))
        else:
            field.field_type = field_type
            field.options = options
            field.is_default = True
    await db.commit()
    if cache is not None:
        cache.invalidate()


async def get_custom_field_values(
    db: AsyncSession, entity_type: str, entity_ids: list[int]
) -> dict[int, dict[str, str]]:
    """Returns ``{entity_id: {field_name: value}}``; unset values are absent keys."""
    if not entity_ids:
        return {}
    model, fk = _value_model(entity_type)
    owner = getattr(model, fk)
    stmt = (
        select(owner, CustomField.field_name, model.value)
        .join(CustomField, CustomField.id == model.field_id)
        .where(owner.in_(entity_ids))
        .order_by(CustomField.id)
    )
    values: dict[int, dict[str, str]] = {}
    for entity_id, field_name, value in (await db.execute(stmt)).all():
        if value is None:
            continue
        values.setdefault(entity_id, {})[field_name] = value
    return values


async def upsert_custom_fields(
    db: AsyncSession,
    entity_type: str,
    entity_id: int,
    section: str,
    values: Mapping[str, Any],
    *,
    cache: CustomFieldCache | None = None,
    commit: bool = True,
) -> int:
    """Insert-or-update values by field name; returns how many were written.

    Names with no matching field in ``section`` are skipped: a submission may
    race the deletion of a field.
    """
    if not values:
        return 0
    model, fk = _value_model(entity_type)
    if cache is not None:
        fields = await cache.get_section(db, section)
    else:
        fields = {f.field_name: FieldDef.from_model(f) for f in await list_custom_fields(db, section)}

    wanted = {}
    for name, raw in values.items():
        field_def = fields.get(name)
        if field_def is None:
            logger.debug("Skipping unknown %s field %r for %s %s", section, name, entity_type, entity_id)
            continue
        wanted[field_def.id] = to_text(raw)

    if wanted:
        # Cached definitions may outlive a concurrent delete.
        live = set((await db.execute(
            select(CustomField.id).where(CustomField.id.in_(list(wanted)))
        )).scalars().all())
        gone = set(wanted) - live
        if gone:
            logger.debug("Skipping deleted %s fields %s for %s %s", section, sorted(gone), entity_type, entity_id)
            for field_id in gone:
                del wanted[field_id]
            if cache is not None:
                cache.invalidate(section)

    if wanted:
        stmt = select(model).where(
            getattr(model, fk) == entity_id, model.field_id.in_(list(wanted))
        )
        existing = {row.field_id: row for row in (await db.execute(stmt)).scalars().all()}
        for field_id, text_value in wanted.items():
            row = existing.get(field_id)
            if row is None:
                db.add(model(**{fk: entity_id, "field_id": field_id, "value": text_value}))
            elif row.value != text_value:
                row.value = text_value

    if commit:
        await db.commit()
    return len(wanted)
