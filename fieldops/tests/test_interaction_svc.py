"""Test interactions and the canvass batch commit."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.models.contact import Contact
from fieldops.models.custom_field import InteractionFieldValue
from fieldops.models.interaction import Interaction
from fieldops.services import interaction_svc
from fieldops.services.interaction_svc import CanvassChange, CanvassCommitError

START = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_create_and_list_interactions(seeded: AsyncSession, contact: Contact):
    db = seeded
    first = await interaction_svc.create_interaction(
        db, contact.id, "Door Knock", section="interactions", custom_fields={"Notes": "Not home"}
    )
    second = await interaction_svc.create_interaction(db, contact.id, "Phone Call", section="interactions")

    interactions = await interaction_svc.list_interactions(db, contact.id)
    assert [i.id for i in interactions] == [second.id, first.id]

    rows = await interaction_svc.serialize_interactions(db, interactions)
    assert rows[1]["custom_fields"] == {"Notes": "Not home"}
    assert rows[0]["custom_fields"] == {}


@pytest.mark.asyncio
async def test_latest_interaction_by_section(db: AsyncSession, contact: Contact):
    canvass = await interaction_svc.create_interaction(db, contact.id, "canvass", section="canvass")
    dispatch = await interaction_svc.create_interaction(db, contact.id, "ride", section="dispatch")

    assert (await interaction_svc.latest_interaction(db, contact.id)).id == dispatch.id
    assert (await interaction_svc.latest_interaction(db, contact.id, "canvass")).id == canvass.id
    assert await interaction_svc.latest_interaction(db, contact.id, "scrutineer") is None


@pytest.mark.asyncio
async def test_canvass_commit_creates_interactions(seeded: AsyncSession, contact: Contact):
    db = seeded
    touched = await interaction_svc.commit_canvass_changes(
        db,
        [CanvassChange(contact.id, {"Support Level": "Lean Support", "Wants Sign": True})],
        user_id=3,
        now=START,
    )
    assert len(touched) == 1

    rows = await interaction_svc.serialize_interactions(db, touched)
    assert rows[0]["custom_fields"] == {"Support Level": "Lean Support", "Wants Sign": "true"}

    await db.refresh(contact)
    assert contact.last_contacted == START.isoformat()
    assert contact.last_contacted_by == "3"


@pytest.mark.asyncio
async def test_canvass_within_window_updates_in_place(seeded: AsyncSession, contact: Contact):
    db = seeded
    first = await interaction_svc.commit_canvass_changes(
        db, [CanvassChange(contact.id, {"Support Level": "Undecided"})], now=START
    )
    again = await interaction_svc.commit_canvass_changes(
        db,
        [CanvassChange(contact.id, {"Support Level": "Strong Support"})],
        now=START + timedelta(minutes=90),
    )
    assert again[0].id == first[0].id
    assert await _count(db, Interaction) == 1
    assert await _count(db, InteractionFieldValue) == 1

    values = await interaction_svc.serialize_interactions(db, again)
    assert values[0]["custom_fields"]["Support Level"] == "Strong Support"


@pytest.mark.asyncio
async def test_canvass_outside_window_creates_new(seeded: AsyncSession, contact: Contact):
    db = seeded
    await interaction_svc.commit_canvass_changes(
        db, [CanvassChange(contact.id, {"Support Level": "Undecided"})], now=START
    )
    later = await interaction_svc.commit_canvass_changes(
        db,
        [CanvassChange(contact.id, {"Support Level": "Lean Against"})],
        now=START + timedelta(hours=3),
    )
    assert await _count(db, Interaction) == 2

    # A custom window is honoured.
    await interaction_svc.commit_canvass_changes(
        db,
        [CanvassChange(contact.id, {"Wants Sign": False})],
        now=START + timedelta(hours=8),
        window=timedelta(hours=6),
    )
    assert await _count(db, Interaction) == 2
    latest = await interaction_svc.latest_interaction(db, contact.id, "canvass")
    assert latest.id == later[0].id


@pytest.mark.asyncio
async def test_canvass_batch_rolls_back_on_failure(seeded: AsyncSession, contact: Contact):
    db = seeded
    with pytest.raises(CanvassCommitError, match="not found"):
        await interaction_svc.commit_canvass_changes(
            db,
            [
                CanvassChange(contact.id, {"Support Level": "Undecided"}),
                CanvassChange(99999, {"Support Level": "Undecided"}),
            ],
            now=START,
        )
    assert await _count(db, Interaction) == 0
    assert await _count(db, InteractionFieldValue) == 0


@pytest.mark.asyncio
async def test_canvass_skips_unknown_fields(seeded: AsyncSession, contact: Contact):
    touched = await interaction_svc.commit_canvass_changes(
        seeded, [CanvassChange(contact.id, {"Deleted Field": "x"})], now=START
    )
    assert len(touched) == 1
    assert await _count(seeded, InteractionFieldValue) == 0


@pytest.mark.asyncio
async def test_delete_interaction(db: AsyncSession, contact: Contact):
    interaction = await interaction_svc.create_interaction(db, contact.id, "Door Knock")
    assert await interaction_svc.delete_interaction(db, interaction.id) is True
    assert await interaction_svc.get_interaction(db, interaction.id) is None
    assert await interaction_svc.delete_interaction(db, interaction.id) is False
