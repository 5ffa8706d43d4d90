"""Custom field definition CRUD (settings screens)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_field_cache
from ..models.base import column_dict
from ..schemas.custom_field import CustomFieldCreate, CustomFieldUpdate
from ..services import custom_field_svc
from ..services.custom_field_svc import CustomFieldCache

router = APIRouter(prefix="/api/custom-fields")


def _check_section(section: str) -> None:
    if section not in custom_field_svc.SECTIONS:
        raise HTTPException(status_code=400, detail=f"Unknown section: {section!r}")


@router.get("")
async def list_custom_fields(section: str = Query(...), db: AsyncSession = Depends(get_db)):
    _check_section(section)
    fields = await custom_field_svc.list_custom_fields(db, section)
    return {"section": section, "fields": [column_dict(f) for f in fields]}


@router.post("", status_code=201)
async def create_custom_field(
    data: CustomFieldCreate,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
):
    _check_section(data.section)
    try:
        field = await custom_field_svc.create_custom_field(
            db, data.section, data.field_name, data.field_type, data.options, cache=cache
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return column_dict(field)


@router.patch("/{field_id}")
async def update_custom_field(
    field_id: int,
    data: CustomFieldUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
):
    try:
        field = await custom_field_svc.update_custom_field(
            db, field_id, cache=cache, **data.model_dump(exclude_unset=True)
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not field:
        raise HTTPException(status_code=404, detail="Custom field not found")
    return column_dict(field)


@router.delete("/{field_id}")
async def delete_custom_field(
    field_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
):
    try:
        deleted = await custom_field_svc.delete_custom_field(db, field_id, cache=cache)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not deleted:
        raise HTTPException(status_code=404, detail="Custom field not found")
    return {"deleted": True}
