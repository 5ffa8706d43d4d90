"""FastAPI application factory for Field Ops."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import FieldOpsSettings, settings as default_settings
from .database import Database
from .live.notifier import ChangeNotifier
from .live.registry import LiveSessionRegistry
from .routers import changes, contacts, custom_fields, dispatch, health, interactions, live
from .services import custom_field_svc
from .services.custom_field_svc import CustomFieldCache

logger = logging.getLogger(__name__)


def create_app(
    settings_obj: FieldOpsSettings | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Build the app. Every runtime component hangs off ``app.state``."""
    settings_obj = settings_obj or default_settings
    owns_database = database is None
    database = database or Database.from_settings(settings_obj)
    registry = LiveSessionRegistry(queue_size=settings_obj.live_queue_size)
    notifier = ChangeNotifier(
        database,
        poll_interval=settings_obj.change_poll_interval_seconds,
        page_limit=settings_obj.change_page_limit,
    )
    notifier.add_listener(registry.broadcast)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.init()
        # Auto-create tables for SQLite (local dev); other databases use Alembic migrations
        if database.is_sqlite:
            await database.create_all()
        if settings_obj.seed_default_fields:
            async with database.session() as db:
                await custom_field_svc.ensure_default_fields(db, cache=app.state.field_cache)
        if settings_obj.notifier_enabled:
            await notifier.start()
        yield
        await registry.close_all()
        await notifier.stop()
        if owns_database:
            await database.shutdown()

    app = FastAPI(title=settings_obj.app_title, lifespan=lifespan)
    app.state.settings = settings_obj
    app.state.database = database
    app.state.field_cache = CustomFieldCache()
    app.state.registry = registry
    app.state.notifier = notifier

    app.include_router(contacts.router)
    app.include_router(dispatch.router)
    app.include_router(interactions.router)
    app.include_router(custom_fields.router)
    app.include_router(changes.router)
    app.include_router(live.router)
    app.include_router(health.router)
    return app


app = create_app()
