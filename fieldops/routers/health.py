"""Health and readiness checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "fieldops"}


@router.get("/ready")
async def readiness_check(request: Request, db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    notifier = request.app.state.notifier
    return {
        "status": "ready",
        "service": "fieldops",
        "notifier": notifier.running,
        "live_connections": len(request.app.state.registry),
    }
