"""Interaction service - canvass/dispatch touches with custom field values."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import column_dict
from ..models.contact import Contact
from ..models.interaction import Interaction
from . import custom_field_svc
from .custom_field_svc import CustomFieldCache

logger = logging.getLogger(__name__)

# Policy: a second canvass of the same contact within this window edits the
# earlier interaction instead of recording a new one.
DEFAULT_SESSION_WINDOW = timedelta(hours=2)


class CanvassCommitError(Exception):
    """A canvass batch failed and was rolled back as a whole."""


@dataclass
class CanvassChange:
    contact_id: int
    custom_fields: dict[str, Any] = field(default_factory=dict)


async def serialize_interactions(db: AsyncSession, interactions: list[Interaction]) -> list[dict]:
    values = await custom_field_svc.get_custom_field_values(
        db, "interaction", [i.id for i in interactions]
    )
    rows = []
    for interaction in interactions:
        row = column_dict(interaction)
        row["custom_fields"] = values.get(interaction.id, {})
        rows.append(row)
    return rows


async def get_interaction(db: AsyncSession, interaction_id: int) -> Interaction | None:
    result = await db.execute(select(Interaction).where(Interaction.id == interaction_id))
    return result.scalar_one_or_none()


async def get_interactions_by_ids(db: AsyncSession, interaction_ids: list[int]) -> dict[int, dict]:
    if not interaction_ids:
        return {}
    result = await db.execute(select(Interaction).where(Interaction.id.in_(interaction_ids)))
    rows = await serialize_interactions(db, list(result.scalars().all()))
    return {row["id"]: row for row in rows}


async def list_interactions(db: AsyncSession, contact_id: int) -> list[Interaction]:
    """All interactions for a contact, newest first."""
    stmt = (
        select(Interaction)
        .where(Interaction.contact_id == contact_id)
        .order_by(Interaction.created_at.desc(), Interaction.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def latest_interaction(
    db: AsyncSession,
    contact_id: int,
    section: str | None = None,
    *,
    since: datetime | None = None,
) -> Interaction | None:
    stmt = select(Interaction).where(Interaction.contact_id == contact_id)
    if section:
        stmt = stmt.where(Interaction.section == section)
    if since is not None:
        stmt = stmt.where(Interaction.created_at >= since)
    stmt = stmt.order_by(Interaction.created_at.desc(), Interaction.id.desc()).limit(1)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_interaction(
    db: AsyncSession,
    contact_id: int,
    interaction_type: str,
    *,
    section: str = "canvass",
    custom_fields: Mapping[str, Any] | None = None,
    user_id: int | None = None,
    cache: CustomFieldCache | None = None,
) -> Interaction:
    interaction = Interaction(
        contact_id=contact_id,
        section=section,
        interaction_type=interaction_type,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(interaction)
    if custom_fields:
        await db.flush()
        await custom_field_svc.upsert_custom_fields(
            db, "interaction", interaction.id, section, custom_fields, cache=cache, commit=False
        )
    await db.commit()
    await db.refresh(interaction)
    return interaction


async def delete_interaction(db: AsyncSession, interaction_id: int) -> bool:
    interaction = await get_interaction(db, interaction_id)
    if not interaction:
        return False
    await db.delete(interaction)
    await db.commit()
    return True


async def commit_canvass_changes(
    db: AsyncSession,
    changes: list[CanvassChange],
    *,
    user_id: int | None = None,
    section: str = "canvass",
    interaction_type: str = "canvass",
    window: timedelta = DEFAULT_SESSION_WINDOW,
    now: datetime | None = None,
    cache: CustomFieldCache | None = None,
) -> list[Interaction]:
    """Create or merge one interaction per change, all in one transaction.

    Raises ``CanvassCommitError`` after rolling back if any change fails.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - window
    touched: list[Interaction] = []
    try:
        for change in changes:
            contact = (
                await db.execute(select(Contact).where(Contact.id == change.contact_id))
            ).scalar_one_or_none()
            if contact is None:
                raise LookupError(f"Contact {change.contact_id} not found")

            interaction = await latest_interaction(db, contact.id, section, since=cutoff)
            if interaction is None:
                interaction = Interaction(
                    contact_id=contact.id,
                    section=section,
                    interaction_type=interaction_type,
                    created_by=user_id,
                    updated_by=user_id,
                    created_at=now,
                )
                db.add(interaction)
                await db.flush()
            else:
                interaction.updated_by = user_id
                interaction.updated_at = now

            await custom_field_svc.upsert_custom_fields(
                db, "interaction", interaction.id, section, change.custom_fields,
                cache=cache, commit=False,
            )
            contact.last_contacted = now.isoformat()
            contact.last_contacted_by = str(user_id) if user_id is not None else None
            touched.append(interaction)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.warning("Canvass batch of %d changes rolled back: %s", len(changes), exc)
        raise CanvassCommitError(str(exc)) from exc

    for interaction in touched:
        await db.refresh(interaction)
    return touched
