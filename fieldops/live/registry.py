"""Live session registry - open WebSocket connections and their send queues.

Each connection owns a bounded queue drained by its own sender task, so a
slow or broken client never stalls delivery to the others. A connection
whose queue overflows is evicted; the client's reconnect brings it back
with a fresh snapshot.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Iterable

from ..services.change_svc import WATCHED_TABLES

logger = logging.getLogger(__name__)

CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_GOING_AWAY = 1001


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class LiveConnection:
    """One client socket plus its outbound queue and delivery cursor."""

    def __init__(
        self,
        websocket,
        session_id: str,
        *,
        queue_size: int = 256,
        tables: Iterable[str] = WATCHED_TABLES,
    ):
        self.websocket = websocket
        self.session_id = session_id
        self.tables = frozenset(tables)
        self.state = ConnectionState.CONNECTING
        # Events at or below the snapshot watermark are already in the snapshot.
        self.snapshot_change_id = 0
        self.last_sent_change_id = 0
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=queue_size)
        self.sender: asyncio.Task | None = None

    def enqueue(self, message: dict) -> bool:
        if self.state is ConnectionState.CLOSED:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def is_stale(self, message: dict) -> bool:
        change_id = message.get("last_change_id")
        return change_id is not None and change_id <= self.snapshot_change_id

    def __repr__(self) -> str:
        return f"<LiveConnection {self.session_id!r} {self.state.value}>"


class LiveSessionRegistry:
    """Fan-out set of live connections."""

    def __init__(self, *, queue_size: int = 256):
        self.queue_size = queue_size
        self._connections: set[LiveConnection] = set()
        self._background: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def connections(self) -> list[LiveConnection]:
        return list(self._connections)

    def connections_for(self, session_id: str) -> list[LiveConnection]:
        return [c for c in self._connections if c.session_id == session_id]

    def register(
        self, websocket, session_id: str, *, tables: Iterable[str] = WATCHED_TABLES
    ) -> LiveConnection:
        """Join the fan-out set in CONNECTING state; events queue until ``open``."""
        if not session_id:
            raise ValueError("A session id is required for a live connection")
        connection = LiveConnection(
            websocket, session_id, queue_size=self.queue_size, tables=tables
        )
        self._connections.add(connection)
        logger.info("Live connection registered for session %s", session_id)
        return connection

    async def open(self, connection: LiveConnection, snapshot: dict, change_id: int) -> None:
        """Send the snapshot, then start draining queued events newer than it.

        A connection evicted while it was still connecting stays closed.
        """
        if connection.state is ConnectionState.CLOSED:
            return
        await connection.websocket.send_text(json.dumps(snapshot, default=str))
        if connection.state is ConnectionState.CLOSED:
            return
        connection.snapshot_change_id = change_id
        connection.last_sent_change_id = change_id
        connection.state = ConnectionState.OPEN
        connection.sender = asyncio.create_task(
            self._send_loop(connection), name=f"live-sender-{connection.session_id}"
        )

    def broadcast(self, message: dict, table_name: str | None = None) -> int:
        """Queue ``message`` on every connection subscribed to ``table_name``."""
        delivered = 0
        for connection in list(self._connections):
            if table_name is not None and table_name not in connection.tables:
                continue
            if connection.enqueue(message):
                delivered += 1
            else:
                logger.warning(
                    "Evicting slow live connection for session %s", connection.session_id
                )
                self._discard(connection)
                self._spawn_close(connection, CLOSE_TRY_AGAIN_LATER, "Client too slow")
        return delivered

    def _discard(self, connection: LiveConnection) -> None:
        """Drop a connection and cancel its sender, without awaiting."""
        self._connections.discard(connection)
        connection.state = ConnectionState.CLOSED
        sender = connection.sender
        if sender is not None and not sender.done() and sender is not asyncio.current_task():
            sender.cancel()

    def _spawn_close(self, connection: LiveConnection, code: int, reason: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._close_socket(connection, code, reason)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _close_socket(self, connection: LiveConnection, code: int, reason: str) -> None:
        try:
            await connection.websocket.close(code=code, reason=reason)
        except Exception:
            logger.debug("Socket for session %s already closed", connection.session_id)

    async def close(self, connection: LiveConnection) -> None:
        """Release everything held for ``connection``; safe to call twice."""
        self._discard(connection)
        sender, connection.sender = connection.sender, None
        if sender is not None and sender is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await sender
        logger.info("Live connection closed for session %s", connection.session_id)

    async def close_all(self) -> None:
        for connection in list(self._connections):
            await self.close(connection)
            await self._close_socket(connection, CLOSE_GOING_AWAY, "Server shutting down")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _send_loop(self, connection: LiveConnection) -> None:
        try:
            while True:
                message = await connection.queue.get()
                if connection.is_stale(message):
                    continue
                await connection.websocket.send_text(json.dumps(message, default=str))
                change_id = message.get("last_change_id")
                if change_id is not None:
                    connection.last_sent_change_id = max(connection.last_sent_change_id, change_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning(
                "Live send failed for session %s; dropping connection",
                connection.session_id,
                exc_info=True,
            )
            self._discard(connection)
            self._spawn_close(connection, CLOSE_GOING_AWAY, "Send failed")
