"""Contact JSON API: listing, CRUD, bulk import and grouping values."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_field_cache, get_user_id
from ..schemas.contact import ContactCreate, ContactImport, ContactUpdate
from ..services import contact_svc
from ..services.custom_field_svc import CustomFieldCache

router = APIRouter(prefix="/api/contacts")


@router.get("")
async def list_contacts(
    search: str | None = Query(None),
    ride_status: str | None = Query(None),
    voted: bool | None = Query(None),
    electoral_district: str | None = Query(None),
    poll_id: str | None = Query(None),
    surname_prefix: str | None = Query(None),
    sort: str = Query("surname"),
    direction: str = Query("asc", pattern="^(asc|desc)$"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    filters = contact_svc.ContactFilters(
        search=search,
        ride_status=ride_status,
        voted=voted,
        electoral_district=electoral_district,
        poll_id=poll_id,
        surname_prefix=surname_prefix,
    )
    try:
        contacts, total = await contact_svc.list_contacts(
            db, filters, sort_key=sort, sort_direction=direction, offset=offset, limit=limit
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "contacts": await contact_svc.serialize_contacts(db, contacts),
        "total": total,
        "offset": offset,
        "limit": limit,
    }


@router.post("", status_code=201)
async def create_contact(
    data: ContactCreate,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
    user_id: int | None = Depends(get_user_id),
):
    try:
        contact = await contact_svc.create_contact(
            db, data.model_dump(exclude_none=True), user_id=user_id, cache=cache
        )
    except IntegrityError:
        raise HTTPException(status_code=400, detail="A contact with this external_id already exists")
    return await contact_svc.get_contact_with_fields(db, contact.id)


@router.post("/import", status_code=201)
async def import_contacts(
    data: ContactImport,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_user_id),
    cache: CustomFieldCache = Depends(get_field_cache),
):
    rows = [row.model_dump(exclude_none=True) for row in data.contacts]
    try:
        ids = await contact_svc.create_many_contacts(db, rows, user_id=user_id, cache=cache)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Import rejected: duplicate external_id")
    return {"imported": len(ids), "ids": ids}


@router.get("/groupings/{field}")
async def grouping_values(field: str, db: AsyncSession = Depends(get_db)):
    try:
        values = await contact_svc.grouping_values(db, field)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"field": field, "values": values}


@router.get("/{contact_id}")
async def get_contact(contact_id: int, db: AsyncSession = Depends(get_db)):
    contact = await contact_svc.get_contact_with_fields(db, contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.patch("/{contact_id}")
async def update_contact(
    contact_id: int,
    data: ContactUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CustomFieldCache = Depends(get_field_cache),
    user_id: int | None = Depends(get_user_id),
):
    try:
        contact = await contact_svc.update_contact(
            db, contact_id, data.model_dump(exclude_unset=True), user_id=user_id, cache=cache
        )
    except IntegrityError:
        raise HTTPException(status_code=400, detail="A contact with this external_id already exists")
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return await contact_svc.get_contact_with_fields(db, contact.id)


@router.delete("/{contact_id}")
async def delete_contact(contact_id: int, db: AsyncSession = Depends(get_db)):
    deleted = await contact_svc.delete_contact(db, contact_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"deleted": True}
