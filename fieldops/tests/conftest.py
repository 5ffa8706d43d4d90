"""Async test fixtures for Field Ops tests using SQLite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.app import create_app
from fieldops.config import FieldOpsSettings
from fieldops.database import Database
from fieldops.models.contact import Contact
from fieldops.services import custom_field_svc


def make_settings(tmp_path: Path, **overrides) -> FieldOpsSettings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'fieldops_test.db'}",
        "change_poll_interval_seconds": 0.05,
        "live_reconnect_delay_seconds": 0.0,
        "live_reconnect_jitter_seconds": 0.0,
    }
    values.update(overrides)
    return FieldOpsSettings(**values)


@pytest.fixture
def settings_factory(tmp_path: Path):
    """Builds settings pointing at a SQLite file under ``tmp_path``."""

    def factory(db_name: str = "fieldops_test.db", **overrides) -> FieldOpsSettings:
        return make_settings(
            tmp_path, database_url=f"sqlite+aiosqlite:///{tmp_path / db_name}", **overrides
        )

    return factory


@pytest.fixture
def test_settings(settings_factory) -> FieldOpsSettings:
    return settings_factory()


@pytest_asyncio.fixture
async def database(test_settings: FieldOpsSettings):
    database = Database.from_settings(test_settings)
    await database.init()
    await database.create_all()
    yield database
    await database.shutdown()


@pytest_asyncio.fixture
async def engine(database: Database):
    return database.engine


@pytest_asyncio.fixture
async def db(database: Database):
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(db: AsyncSession):
    """Database with the default custom fields in place."""
    await custom_field_svc.ensure_default_fields(db)
    return db


@pytest_asyncio.fixture
async def contact(db: AsyncSession) -> Contact:
    c = Contact(firstname="Ann", surname="Lee", electoral_district="North", poll_id="12")
    db.add(c)
    await db.commit()
    await db.refresh(c)
    return c


@pytest_asyncio.fixture
async def app(test_settings: FieldOpsSettings, database: Database):
    """App wired to the test database; the notifier is not started."""
    return create_app(test_settings, database=database)


@pytest_asyncio.fixture
async def client(app):
    """HTTPX async test client against the Field Ops app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
