"""Test the live session registry (fan-out, isolation, teardown)."""

from __future__ import annotations

import asyncio
import json

import pytest

from fieldops.live.messages import change_event, initial_contacts
from fieldops.live.registry import (
    CLOSE_TRY_AGAIN_LATER,
    ConnectionState,
    LiveSessionRegistry,
)


class FakeWebSocket:
    def __init__(self, fail_after: int | None = None) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self.close_code = None
        self.fail_after = fail_after

    async def send_text(self, data: str) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise ConnectionResetError("socket gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _open(registry: LiveSessionRegistry, ws: FakeWebSocket, session_id: str, change_id: int = 0):
    connection = registry.register(ws, session_id)
    await registry.open(connection, initial_contacts([], change_id), change_id)
    return connection


@pytest.mark.asyncio
async def test_register_requires_session_id():
    registry = LiveSessionRegistry()
    with pytest.raises(ValueError):
        registry.register(FakeWebSocket(), "")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_snapshot_is_sent_first_and_state_is_open():
    registry = LiveSessionRegistry()
    ws = FakeWebSocket()
    connection = registry.register(ws, "s1")
    assert connection.state is ConnectionState.CONNECTING

    # Events raised before the snapshot is sent wait in the queue.
    registry.broadcast(change_event("contacts", [{"id": 1}], 8), "contacts")
    await registry.open(connection, initial_contacts([{"id": 1}], 7), 7)
    await _settle()

    assert connection.state is ConnectionState.OPEN
    assert ws.types() == ["initialContacts", "contactUpdate"]
    assert connection.last_sent_change_id == 8
    await registry.close_all()


@pytest.mark.asyncio
async def test_events_covered_by_snapshot_are_skipped():
    registry = LiveSessionRegistry()
    ws = FakeWebSocket()
    connection = registry.register(ws, "s1")
    registry.broadcast(change_event("contacts", [{"id": 1}], 5), "contacts")
    registry.broadcast(change_event("interactions", [{"id": 3}], 5), "interactions")
    registry.broadcast(change_event("contacts", [{"id": 2}], 6), "contacts")
    await registry.open(connection, initial_contacts([], 5), 5)
    await _settle()

    assert ws.types() == ["initialContacts", "contactUpdate"]
    assert ws.sent[1]["last_change_id"] == 6
    await registry.close_all()


@pytest.mark.asyncio
async def test_closing_one_connection_does_not_affect_another():
    registry = LiveSessionRegistry()
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    conn_a = await _open(registry, ws_a, "a")
    await _open(registry, ws_b, "b")

    assert registry.broadcast(change_event("contacts", [{"id": 1, "surname": "One"}], 1), "contacts") == 2
    await _settle()
    assert ws_a.types() == ws_b.types() == ["initialContacts", "contactUpdate"]

    await registry.close(conn_a)
    assert registry.broadcast(change_event("contacts", [{"id": 1, "surname": "Two"}], 2), "contacts") == 1
    await _settle()

    assert len(ws_a.sent) == 2
    assert ws_b.sent[-1]["changes"][0]["surname"] == "Two"
    await registry.close_all()


@pytest.mark.asyncio
async def test_close_releases_sender_task():
    registry = LiveSessionRegistry()
    connection = await _open(registry, FakeWebSocket(), "s1")
    sender = connection.sender
    assert sender is not None and not sender.done()

    await registry.close(connection)
    assert sender.done()
    assert connection.sender is None
    assert connection.state is ConnectionState.CLOSED
    assert len(registry) == 0
    assert connection.enqueue({"type": "contactUpdate"}) is False

    # Closing twice is harmless.
    await registry.close(connection)


@pytest.mark.asyncio
async def test_many_connections_leave_no_tasks_behind():
    registry = LiveSessionRegistry()
    connections = [await _open(registry, FakeWebSocket(), f"s{i}") for i in range(25)]
    senders = [c.sender for c in connections]
    for connection in connections:
        await registry.close(connection)
    assert len(registry) == 0
    assert all(task.done() for task in senders)


@pytest.mark.asyncio
async def test_broken_socket_is_dropped_without_stalling_others():
    registry = LiveSessionRegistry()
    broken, healthy = FakeWebSocket(fail_after=1), FakeWebSocket()
    await _open(registry, broken, "broken")
    await _open(registry, healthy, "healthy")

    registry.broadcast(change_event("contacts", [{"id": 1}], 1), "contacts")
    await _settle()
    assert len(registry) == 1
    assert registry.connections[0].session_id == "healthy"

    registry.broadcast(change_event("contacts", [{"id": 2}], 2), "contacts")
    await _settle()
    assert [m.get("last_change_id") for m in healthy.sent] == [0, 1, 2]
    await registry.close_all()
    assert broken.closed


@pytest.mark.asyncio
async def test_slow_consumer_is_evicted():
    registry = LiveSessionRegistry(queue_size=2)
    slow, fast = FakeWebSocket(), FakeWebSocket()
    # Never opened: nothing drains its queue.
    slow_conn = registry.register(slow, "slow")
    await _open(registry, fast, "fast")

    for change_id in (1, 2, 3):
        registry.broadcast(change_event("contacts", [{"id": change_id}], change_id), "contacts")
        await _settle()

    assert slow_conn.state is ConnectionState.CLOSED
    assert registry.connections_for("slow") == []
    await registry.close_all()
    assert slow.close_code == CLOSE_TRY_AGAIN_LATER
    assert [m.get("last_change_id") for m in fast.sent] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_table_subscriptions():
    registry = LiveSessionRegistry()
    contacts_only = FakeWebSocket()
    connection = registry.register(contacts_only, "c", tables=("contacts",))
    await registry.open(connection, initial_contacts([], 0), 0)

    assert registry.broadcast(change_event("interactions", [{"id": 1}], 1), "interactions") == 0
    assert registry.broadcast(change_event("contacts", [{"id": 1}], 2), "contacts") == 1
    await _settle()
    assert contacts_only.types() == ["initialContacts", "contactUpdate"]
    await registry.close_all()


@pytest.mark.asyncio
async def test_connection_evicted_while_connecting_is_not_opened():
    registry = LiveSessionRegistry(queue_size=1)
    ws = FakeWebSocket()
    connection = registry.register(ws, "late")
    registry.broadcast(change_event("contacts", [{"id": 1}], 1), "contacts")
    registry.broadcast(change_event("contacts", [{"id": 1}], 2), "contacts")
    await _settle()
    assert connection.state is ConnectionState.CLOSED

    await registry.open(connection, initial_contacts([], 2), 2)
    assert connection.state is ConnectionState.CLOSED
    assert connection.sender is None
    assert ws.sent == []
    assert ws.close_code == CLOSE_TRY_AGAIN_LATER
    assert len(registry) == 0
