"""Async database handle owned by the application's composition root."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base
from .services.change_svc import COMMIT_LISTENERS_KEY, TrackedSession

logger = logging.getLogger(__name__)


class DatabaseNotInitialized(RuntimeError):
    """Raised when a session is requested before ``Database.init()``."""


def _sqlite_pragmas(engine: Engine, busy_timeout_ms: int) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
        cursor.close()


class Database:
    """Engine + session factory with an explicit init/shutdown lifecycle.

    Sessions are ``TrackedSession``-backed, so every flush that touches a
    watched table appends to the change ledger in the same transaction.
    Callables registered with :meth:`add_commit_listener` run after any
    commit that wrote ledger rows.
    """

    def __init__(self, url: str, *, echo: bool = False, busy_timeout_ms: int = 5000):
        self.url = url
        self.echo = echo
        self.busy_timeout_ms = busy_timeout_ms
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._commit_listeners: list[Callable[[], None]] = []

    @classmethod
    def from_settings(cls, settings_obj) -> Database:
        return cls(
            settings_obj.database_url,
            echo=settings_obj.echo_sql,
            busy_timeout_ms=settings_obj.sqlite_busy_timeout_ms,
        )

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> Database:
        """Wrap a pre-built engine (useful for testing)."""
        db = cls(str(engine.url))
        db._bind(engine)
        return db

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    def _bind(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            sync_session_class=TrackedSession,
            expire_on_commit=False,
            info={COMMIT_LISTENERS_KEY: self._commit_listeners},
        )

    async def init(self) -> None:
        if self.engine is not None:
            return
        engine = create_async_engine(self.url, echo=self.echo)
        if self.is_sqlite:
            _sqlite_pragmas(engine.sync_engine, self.busy_timeout_ms)
        self._bind(engine)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database initialized (%s)", engine.url.render_as_string(hide_password=True))

    async def create_all(self) -> None:
        if self.engine is None:
            raise DatabaseNotInitialized("Call Database.init() before create_all()")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def shutdown(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self._session_factory = None
        logger.info("Database connections closed")

    def session(self) -> AsyncSession:
        if self._session_factory is None:
            raise DatabaseNotInitialized("Database not initialized. Call Database.init() first.")
        return self._session_factory()

    def add_commit_listener(self, listener: Callable[[], None]) -> None:
        self._commit_listeners.append(listener)

    def remove_commit_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._commit_listeners:
            self._commit_listeners.remove(listener)


async def get_db(request: Request):
    """FastAPI dependency that yields an async session."""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
