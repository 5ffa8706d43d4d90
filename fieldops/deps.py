"""FastAPI dependencies for per-app state and the acting user."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request

from .config import FieldOpsSettings
from .services.custom_field_svc import CustomFieldCache


def get_settings(request: Request) -> FieldOpsSettings:
    return request.app.state.settings


def get_field_cache(request: Request) -> CustomFieldCache:
    return request.app.state.field_cache


async def get_user_id(x_user_id: str | None = Header(default=None)) -> int | None:
    """Acting user from ``X-User-Id``. Authentication itself happens upstream."""
    if x_user_id is None or not x_user_id.strip():
        return None
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-User-Id must be an integer") from None
