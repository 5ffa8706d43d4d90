"""Background notifier that tails the change ledger and fans events out."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..database import Database
from ..services import change_svc
from .messages import change_event

logger = logging.getLogger(__name__)

Listener = Callable[[dict, str], object]


class ChangeNotifier:
    """Keeps a cursor over the ledger and emits resolved change events.

    The task wakes as soon as a commit writes ledger rows and otherwise
    re-checks every ``poll_interval`` seconds, which also picks up writes
    made by other processes sharing the database.
    """

    def __init__(
        self,
        database: Database,
        *,
        poll_interval: float = 2.0,
        page_limit: int = change_svc.MAX_PAGE_LIMIT,
    ) -> None:
        self._database = database
        self._poll_interval = poll_interval
        self._page_limit = page_limit
        self._listeners: list[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self.cursor = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def wake(self) -> None:
        self._wake_event.set()

    async def start(self, cursor: int | None = None) -> None:
        if self._task is not None:
            return
        if cursor is None:
            async with self._database.session() as db:
                cursor = await change_svc.current_max_id(db)
        self.cursor = cursor
        self._stop_event.clear()
        self._database.add_commit_listener(self.wake)
        self._task = asyncio.create_task(self._run_loop(), name="change-notifier")
        logger.info("Change notifier started at change %d", self.cursor)

    async def stop(self) -> None:
        self._database.remove_commit_listener(self.wake)
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._wake_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake_event.clear()
            try:
                await self.pump()
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover
                logger.exception("Change notifier pass failed")

    async def pump(self) -> int:
        """Emit everything after the cursor; returns the number of events sent."""
        emitted = 0
        async with self._database.session() as db:
            while True:
                batch = await change_svc.backfill(db, self.cursor, limit=self._page_limit)
                if batch.last_change_id == self.cursor:
                    break
                self.cursor = batch.last_change_id
                for table_name, rows in batch.changes.items():
                    if rows:
                        self._emit(change_event(table_name, rows, self.cursor), table_name)
                        emitted += 1
                if not batch.has_more:
                    break
        return emitted

    def _emit(self, event: dict, table_name: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, table_name)
            except Exception:
                logger.exception("Change listener failed for %s event", event["type"])
