"""Python clients for the backfill API and the live-update channel."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable
from urllib.parse import urlencode

import httpx
import websockets
from websockets.exceptions import WebSocketException

from .messages import CONTACT_EVENT_TYPES, INITIAL_CONTACTS, INTERACTION_UPDATE
from .reconciler import Collection, apply_message, merge_changes

logger = logging.getLogger(__name__)


@dataclass
class CatchUpResult:
    """Cursor plus the per-table collections rebuilt from backfill pages."""

    last_change_id: int
    pages: int = 0
    collections: dict[str, Collection] = field(default_factory=dict)


class BackfillClient:
    """Async HTTP client for the change ledger endpoints.

    Usage::

        async with BackfillClient("http://localhost:8000") as client:
            entries = await client.poll_for_changes(0)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BackfillClient:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, endpoint: str, **params) -> Any:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        params = {k: v for k, v in params.items() if v is not None}
        resp = await self._client.get(endpoint, params=params)
        resp.raise_for_status()
        return resp.json()

    async def poll_for_changes(
        self, last_known_change_id: int = 0, table: str | None = None, limit: int | None = None
    ) -> list[dict]:
        """Raw ledger entries after ``last_known_change_id`` (at most 100)."""
        data = await self._get("/api/changes", since=last_known_change_id, table=table, limit=limit)
        return data["changes"]

    async def get_last_change_id(self, table: str | None = None) -> int:
        data = await self._get("/api/changes/last-id", table=table)
        return int(data["last_change_id"])

    async def backfill(self, since: int = 0, table: str | None = None) -> dict:
        return await self._get("/api/changes/backfill", since=since, table=table)

    async def catch_up(
        self,
        since: int = 0,
        table: str | None = None,
        collections: dict[str, Collection] | None = None,
    ) -> CatchUpResult:
        """Page through resolved changes until the ledger is drained."""
        result = CatchUpResult(last_change_id=since, collections=dict(collections or {}))
        while True:
            page = await self.backfill(result.last_change_id, table)
            result.pages += 1
            for table_name, rows in page["changes"].items():
                current = result.collections.get(table_name, {})
                result.collections[table_name] = merge_changes(current, rows)
            advanced = page["last_change_id"] > result.last_change_id
            result.last_change_id = page["last_change_id"]
            if not page.get("has_more") or not advanced:
                return result


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    WAITING = "waiting"


class LiveClient:
    """Reconnecting consumer of ``/live`` that keeps reconciled local state.

    Every successful connect starts from the server's ``initialContacts``
    snapshot. After an error or close the client waits a fixed delay plus
    random jitter and connects again, until :meth:`stop` is called.
    """

    def __init__(
        self,
        url: str,
        session_id: str,
        *,
        reconnect_delay: float = 5.0,
        jitter: float = 1.0,
        connect: Callable | None = None,
        on_message: Callable[[dict], Any] | None = None,
    ):
        if not session_id:
            raise ValueError("session_id is required")
        self.url = url
        self.session_id = session_id
        self.reconnect_delay = reconnect_delay
        self.jitter = jitter
        self._connect = connect or websockets.connect
        self._on_message = on_message
        self.state = ClientState.DISCONNECTED
        self.contacts: Collection = {}
        self.interactions: Collection = {}
        self.last_change_id = 0
        self.connections = 0
        self._websocket = None
        self._stop_event = asyncio.Event()

    @property
    def endpoint(self) -> str:
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode({'sessionId': self.session_id})}"

    def _set_state(self, state: ClientState) -> None:
        if state is not self.state:
            logger.debug("Live client %s -> %s", self.state.value, state.value)
            self.state = state

    def next_delay(self) -> float:
        return self.reconnect_delay + random.uniform(0, self.jitter)

    def handle_message(self, raw: str | bytes) -> dict | None:
        """Apply one inbound frame; malformed frames are logged and skipped."""
        try:
            message = json.loads(raw)
        except (ValueError, TypeError) as exc:
            logger.warning("Ignoring malformed live message: %s", exc)
            return None
        if not isinstance(message, dict) or "type" not in message:
            logger.warning("Ignoring live message without a type")
            return None

        kind = message["type"]
        if kind == INITIAL_CONTACTS or kind in CONTACT_EVENT_TYPES:
            self.contacts = apply_message(self.contacts, message)
        elif kind == INTERACTION_UPDATE:
            self.interactions = merge_changes(self.interactions, message.get("changes") or [])

        change_id = message.get("last_change_id")
        if isinstance(change_id, int):
            if kind == INITIAL_CONTACTS:
                self.last_change_id = change_id
            else:
                self.last_change_id = max(self.last_change_id, change_id)

        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                logger.exception("Live message callback failed for %s", kind)
        return message

    async def run_once(self) -> None:
        """One connection lifetime: connect, consume until closed."""
        self._set_state(ClientState.CONNECTING)
        async with self._connect(self.endpoint) as websocket:
            self._websocket = websocket
            self.connections += 1
            self._set_state(ClientState.CONNECTED)
            logger.info("Live channel connected (%s)", self.url)
            try:
                async for raw in websocket:
                    self.handle_message(raw)
                    if self._stop_event.is_set():
                        break
            finally:
                self._websocket = None

    async def run(self) -> None:
        self._stop_event.clear()
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Live channel error: %s", exc)
            if self._stop_event.is_set():
                break
            self._set_state(ClientState.WAITING)
            delay = self.next_delay()
            logger.info("Reconnecting live channel in %.1fs", delay)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        self._set_state(ClientState.DISCONNECTED)

    def request_stop(self) -> None:
        """Ask :meth:`run` to return after the current message."""
        self._stop_event.set()

    async def stop(self) -> None:
        self.request_stop()
        if self._websocket is not None:
            await self._websocket.close()
