"""Interaction and canvass-commit JSON API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import FieldOpsSettings
from ..database import get_db
from ..deps import get_field_cache, get_settings, get_user_id
from ..schemas.interaction import CanvassCommit, InteractionCreate
from ..services import contact_svc, interaction_svc
from ..services.custom_field_svc import CustomFieldCache
from ..services.interaction_svc import CanvassChange, CanvassCommitError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/contacts/{contact_id}/interactions")
async def list_interactions(contact_id: int, db: AsyncSession = Depends(get_db)):
    if not await contact_svc.get_contact(db, contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    interactions = await interaction_svc.list_interactions(db, contact_id)
    return {"interactions": await interaction_svc.serialize_interactions(db, interactions)}


@router.post("/contacts/{contact_id}/interactions", status_code=201)
async def create_interaction(
    contact_id: int,
    data: InteractionCreate,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
    user_id: int | None = Depends(get_user_id),
):
    if not await contact_svc.get_contact(db, contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    interaction = await interaction_svc.create_interaction(
        db,
        contact_id,
        data.interaction_type,
        section=data.section,
        custom_fields=data.custom_fields,
        user_id=user_id,
        cache=cache,
    )
    rows = await interaction_svc.serialize_interactions(db, [interaction])
    return rows[0]


@router.post("/canvass/commit")
async def commit_canvass(
    data: CanvassCommit,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
    settings: FieldOpsSettings = Depends(get_settings),
    user_id: int | None = Depends(get_user_id),
):
    changes = [CanvassChange(c.contact_id, dict(c.custom_fields)) for c in data.changes]
    try:
        interactions = await interaction_svc.commit_canvass_changes(
            db,
            changes,
            user_id=data.user_id if data.user_id is not None else user_id,
            section=data.section,
            interaction_type=data.interaction_type,
            window=settings.interaction_session_window,
            cache=cache,
        )
    except CanvassCommitError as exc:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return {
        "success": True,
        "interactions": await interaction_svc.serialize_interactions(db, interactions),
    }


@router.delete("/interactions/{interaction_id}")
async def delete_interaction(interaction_id: int, db: AsyncSession = Depends(get_db)):
    deleted = await interaction_svc.delete_interaction(db, interaction_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Interaction not found")
    return {"deleted": True}
