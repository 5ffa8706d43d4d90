"""Client-side merge of change batches into a local collection keyed by id."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .messages import CONTACT_EVENT_TYPES, INITIAL_CONTACTS

Collection = dict[Any, dict]


def is_tombstone(change: Mapping[str, Any]) -> bool:
    return bool(change.get("deleted")) or change.get("action") == "DELETE"


def index_by_key(rows: Iterable[Mapping[str, Any]], key: str = "id") -> Collection:
    return {row[key]: dict(row) for row in rows if row.get(key) is not None}


def merge_changes(
    collection: Mapping[Any, dict], changes: Iterable[Mapping[str, Any]], key: str = "id"
) -> Collection:
    """Return a new collection with ``changes`` applied.

    A tombstone removes its key (a no-op when absent). Anything else is
    shallow-merged over the existing entry, or inserted. Later entries for
    the same key win, and applying a batch twice gives the same result.
    """
    merged = {k: dict(v) for k, v in collection.items()}
    for change in changes:
        record_id = change.get(key)
        if record_id is None:
            continue
        if is_tombstone(change):
            merged.pop(record_id, None)
            continue
        entry = merged.get(record_id, {})
        entry.update(change)
        merged[record_id] = entry
    return merged


def apply_message(contacts: Mapping[Any, dict], message: Mapping[str, Any]) -> Collection:
    """Apply one live-channel message to a contact collection."""
    kind = message.get("type")
    if kind == INITIAL_CONTACTS:
        return index_by_key(message.get("contacts") or [])
    if kind in CONTACT_EVENT_TYPES:
        return merge_changes(contacts, message.get("changes") or [])
    return dict(contacts)
