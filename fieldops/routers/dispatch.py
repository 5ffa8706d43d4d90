"""Dispatch (ride status / voted) JSON API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_user_id
from ..models.base import column_dict
from ..schemas.contact import BulkDispatchUpdate, RideStatusUpdate, VotedUpdate
from ..services import contact_svc

router = APIRouter(prefix="/api/dispatch")


@router.post("/ride-status")
async def update_ride_status(
    data: RideStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_user_id),
):
    contact = await contact_svc.update_ride_status(
        db, data.contact_id, data.ride_status, user_id=user_id
    )
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return column_dict(contact)


@router.post("/voted")
async def update_voted(
    data: VotedUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_user_id),
):
    contact = await contact_svc.update_voted_status(db, data.contact_id, data.voted, user_id=user_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return column_dict(contact)


@router.post("/bulk")
async def bulk_update(
    data: BulkDispatchUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_user_id),
):
    if not data.ride_status and data.voted is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    updated = await contact_svc.bulk_dispatch_update(
        db, data.contact_ids, ride_status=data.ride_status, voted=data.voted, user_id=user_id
    )
    return {"updated": updated}
