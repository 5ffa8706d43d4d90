"""Message types carried over the live-update channel."""

from __future__ import annotations

INITIAL_CONTACTS = "initialContacts"
CONTACT_UPDATE = "contactUpdate"
INTERACTION_UPDATE = "interactionUpdate"
FILE_UPDATE = "fileUpdate"
PONG = "pong"

# ledger table -> incremental event type
EVENT_TYPES = {
    "contacts": CONTACT_UPDATE,
    "interactions": INTERACTION_UPDATE,
}

# Incremental types that carry contact rows.
CONTACT_EVENT_TYPES = frozenset({CONTACT_UPDATE, FILE_UPDATE})


def initial_contacts(contacts: list[dict], last_change_id: int) -> dict:
    return {"type": INITIAL_CONTACTS, "contacts": contacts, "last_change_id": last_change_id}


def change_event(table_name: str, changes: list[dict], last_change_id: int) -> dict:
    return {"type": EVENT_TYPES[table_name], "changes": changes, "last_change_id": last_change_id}
