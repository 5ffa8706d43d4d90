"""Change ledger service - mutation hooks, cursor reads and backfill.

Every flush of a ``TrackedSession`` that inserts, updates or deletes a
contact or interaction (or one of their custom field values) appends one
ledger row per touched entity, on the same connection and therefore in the
same transaction as the write itself. Field-value rows are reported as an
UPDATE of their parent entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import event, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from ..models.change import ChangeLedgerEntry
from ..models.contact import Contact
from ..models.custom_field import ContactFieldValue, InteractionFieldValue
from ..models.interaction import Interaction
from . import contact_svc, interaction_svc

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("contacts", "interactions")
MAX_PAGE_LIMIT = 100

COMMIT_LISTENERS_KEY = "fieldops.commit_listeners"
_PENDING_KEY = "fieldops.ledger_pending"

# Within one flush the strongest action per entity wins.
_PRECEDENCE = {"UPDATE": 0, "INSERT": 1, "DELETE": 2}


class TrackedSession(Session):
    """Sync session class whose flushes feed the change ledger."""


def _ledger_target(obj) -> tuple[str, int | None, bool] | None:
    """Map an ORM object to ``(table_name, record_id, is_entity_row)``."""
    if isinstance(obj, Contact):
        return "contacts", obj.id, True
    if isinstance(obj, Interaction):
        return "interactions", obj.id, True
    if isinstance(obj, ContactFieldValue):
        return "contacts", obj.contact_id, False
    if isinstance(obj, InteractionFieldValue):
        return "interactions", obj.interaction_id, False
    return None


def _collect_changes(session: Session) -> dict[tuple[str, int], str]:
    changes: dict[tuple[str, int], str] = {}

    def note(obj, action: str) -> None:
        target = _ledger_target(obj)
        if target is None:
            return
        table_name, record_id, is_entity = target
        if record_id is None:
            return
        if not is_entity:
            action = "UPDATE"
        key = (table_name, record_id)
        current = changes.get(key)
        if current is None or _PRECEDENCE[action] > _PRECEDENCE[current]:
            changes[key] = action

    for obj in session.new:
        note(obj, "INSERT")
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            note(obj, "UPDATE")
    for obj in session.deleted:
        note(obj, "DELETE")
    return changes


@event.listens_for(TrackedSession, "after_flush")
def _append_ledger_rows(session: Session, flush_context) -> None:
    changes = _collect_changes(session)
    if not changes:
        return
    session.connection().execute(
        insert(ChangeLedgerEntry.__table__),
        [
            {"table_name": table_name, "record_id": record_id, "action": action}
            for (table_name, record_id), action in changes.items()
        ],
    )
    session.info[_PENDING_KEY] = True


@event.listens_for(TrackedSession, "after_commit")
def _notify_commit_listeners(session: Session) -> None:
    if not session.info.pop(_PENDING_KEY, False):
        return
    for listener in list(session.info.get(COMMIT_LISTENERS_KEY, ())):
        try:
            listener()
        except Exception:
            logger.exception("Change commit listener failed")


@event.listens_for(TrackedSession, "after_rollback")
def _discard_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def _check_table(table_name: str | None) -> None:
    if table_name is not None and table_name not in WATCHED_TABLES:
        raise ValueError(f"Unknown change table: {table_name!r}")


async def list_since(
    db: AsyncSession,
    last_id: int = 0,
    table_name: str | None = None,
    limit: int = MAX_PAGE_LIMIT,
) -> list[ChangeLedgerEntry]:
    """Ledger entries with ``id > last_id``, ascending, at most ``limit`` (capped at 100)."""
    _check_table(table_name)
    limit = max(1, min(limit, MAX_PAGE_LIMIT))
    stmt = select(ChangeLedgerEntry).where(ChangeLedgerEntry.id > last_id)
    if table_name:
        stmt = stmt.where(ChangeLedgerEntry.table_name == table_name)
    stmt = stmt.order_by(ChangeLedgerEntry.id.asc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def current_max_id(db: AsyncSession, table_name: str | None = None) -> int:
    """The watermark a client should remember; 0 on an empty ledger."""
    _check_table(table_name)
    stmt = select(func.max(ChangeLedgerEntry.id))
    if table_name:
        stmt = stmt.where(ChangeLedgerEntry.table_name == table_name)
    return (await db.execute(stmt)).scalar() or 0


def tombstone(record_id: int) -> dict:
    return {"id": record_id, "deleted": True}


async def resolve_changes(
    db: AsyncSession, entries: list[ChangeLedgerEntry]
) -> dict[str, list[dict]]:
    """Collapse entries per entity into full current rows or tombstones.

    Returns ``{table_name: [row, ...]}`` ordered by each entity's last
    ledger entry. An entity whose row is gone is reported as deleted even if
    its last entry in this page is not a DELETE.
    """
    latest: dict[tuple[str, int], str] = {}
    for entry in entries:
        key = (entry.table_name, entry.record_id)
        latest.pop(key, None)
        latest[key] = entry.action

    wanted: dict[str, list[int]] = {table_name: [] for table_name in WATCHED_TABLES}
    for (table_name, record_id), action in latest.items():
        if action != "DELETE":
            wanted[table_name].append(record_id)

    rows = {
        "contacts": await contact_svc.get_contacts_by_ids(db, wanted["contacts"]),
        "interactions": await interaction_svc.get_interactions_by_ids(db, wanted["interactions"]),
    }

    resolved: dict[str, list[dict]] = {table_name: [] for table_name in WATCHED_TABLES}
    for (table_name, record_id), action in latest.items():
        row = rows[table_name].get(record_id) if action != "DELETE" else None
        resolved[table_name].append(row if row is not None else tombstone(record_id))
    return resolved


@dataclass
class ChangeBatch:
    """One page of resolved changes plus the cursor to resume from."""

    last_change_id: int
    has_more: bool = False
    changes: dict[str, list[dict]] = field(
        default_factory=lambda: {table_name: [] for table_name in WATCHED_TABLES}
    )

    def to_dict(self) -> dict:
        return {
            "last_change_id": self.last_change_id,
            "has_more": self.has_more,
            "changes": self.changes,
        }


async def backfill(
    db: AsyncSession,
    since: int = 0,
    table_name: str | None = None,
    limit: int = MAX_PAGE_LIMIT,
) -> ChangeBatch:
    """Resolved entity changes after ``since``; loop while ``has_more``."""
    limit = max(1, min(limit, MAX_PAGE_LIMIT))
    entries = await list_since(db, since, table_name, limit)
    if not entries:
        return ChangeBatch(last_change_id=since)
    changes = await resolve_changes(db, entries)
    return ChangeBatch(
        last_change_id=entries[-1].id,
        has_more=len(entries) == limit,
        changes=changes,
    )
