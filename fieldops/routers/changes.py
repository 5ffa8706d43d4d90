"""Change ledger read API used by reconnecting clients."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import FieldOpsSettings
from ..database import get_db
from ..deps import get_settings
from ..services import change_svc

router = APIRouter(prefix="/api/changes")


@router.get("")
async def poll_for_changes(
    since: int = Query(0, ge=0),
    table: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=change_svc.MAX_PAGE_LIMIT),
    db: AsyncSession = Depends(get_db),
    settings: FieldOpsSettings = Depends(get_settings),
):
    try:
        entries = await change_svc.list_since(
            db, since, table, limit or settings.change_page_limit
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "changes": [e.to_dict() for e in entries],
        "last_change_id": entries[-1].id if entries else since,
    }


@router.get("/last-id")
async def get_last_change_id(
    table: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    try:
        last_id = await change_svc.current_max_id(db, table)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"last_change_id": last_id}


@router.get("/backfill")
async def backfill_changes(
    since: int = Query(0, ge=0),
    table: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=change_svc.MAX_PAGE_LIMIT),
    db: AsyncSession = Depends(get_db),
    settings: FieldOpsSettings = Depends(get_settings),
):
    try:
        batch = await change_svc.backfill(db, since, table, limit or settings.change_page_limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return batch.to_dict()
