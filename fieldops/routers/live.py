"""WebSocket endpoint for live contact and interaction updates.

Protocol:
1. The client connects to ``/live?sessionId=<id>``; without an id the socket
   is closed with code 4001 before it is accepted.
2. The server sends ``initialContacts`` with the ledger watermark it was
   read at, then pushes ``contactUpdate`` / ``interactionUpdate`` events.
3. The client may send ``ping`` and receives ``{"type": "pong"}``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..live.messages import PONG, initial_contacts
from ..live.registry import LiveSessionRegistry
from ..services import change_svc, contact_svc

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/live")
async def live_updates(
    websocket: WebSocket,
    session_id: str | None = Query(None, alias="sessionId"),
):
    if not session_id or not session_id.strip():
        logger.info("Rejected live connection without a session id")
        await websocket.close(code=4001, reason="Session id required")
        return

    registry: LiveSessionRegistry = websocket.app.state.registry
    database = websocket.app.state.database

    await websocket.accept()
    connection = registry.register(websocket, session_id)
    try:
        # Watermark and snapshot come from one read transaction.
        async with database.session() as db:
            change_id = await change_svc.current_max_id(db)
            contacts = await contact_svc.snapshot_contacts(db)
        await registry.open(connection, initial_contacts(contacts, change_id), change_id)

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            data = message.get("text")
            if data is not None and data.strip() == "ping":
                connection.enqueue({"type": PONG})
            else:
                logger.debug("Ignoring inbound live message from session %s", session_id)
    except WebSocketDisconnect:
        pass
    finally:
        await registry.close(connection)
