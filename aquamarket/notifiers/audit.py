"""Admin audit trail.

:class:`AuditRecorder` appends rows to ``audit_log``.  Callers treat it as
best effort: they schedule :meth:`AuditRecorder.record` through
:class:`~aquamarket.notifiers.dispatcher.Dispatcher`, which logs and drops
any failure, so an audit outage never turns a committed transition into an
error response.

Typical usage::

    recorder = AuditRecorder(db)
    await recorder.record(
        actor_user_id=1,
        action="set_listing_status",
        target_kind="listing",
        target_id=listing.id,
        meta={"prevStatus": "active", "nextStatus": "paused"},
        now=now,
    )
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import aiosqlite

from aquamarket.core.exceptions import NotificationError
from aquamarket.core.ids import new_id
from aquamarket.core.models import AuditEntry
from aquamarket.storage.database import Database
from aquamarket.storage.mapping import row_to_audit_entry, to_iso

__all__ = ["AuditRecorder"]

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Writes and reads the ``audit_log`` table.

    Args:
        db: Shared database wrapper.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def record(
        self,
        *,
        actor_user_id: int | None,
        action: str,
        target_kind: str,
        target_id: str,
        meta: dict[str, Any] | None = None,
        now: datetime,
    ) -> AuditEntry:
        """Append one audit row.

        Raises:
            NotificationError: The row could not be written.
        """
        entry = AuditEntry(
            id=new_id(),
            actor_user_id=actor_user_id,
            action=action,
            target_kind=target_kind,
            target_id=target_id,
            meta=meta or {},
            created_at=now,
        )

        async def _insert(conn: aiosqlite.Connection) -> None:
            await conn.execute(
                "INSERT INTO audit_log (id, actor_user_id, action, target_kind, target_id, meta_json, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.actor_user_id,
                    entry.action,
                    entry.target_kind,
                    entry.target_id,
                    json.dumps(entry.meta, default=str),
                    to_iso(entry.created_at),
                ),
            )

        try:
            await self._db.write(_insert)
        except aiosqlite.Error as exc:
            raise NotificationError(f"Could not write audit entry {action!r} for {target_id}: {exc}") from exc
        logger.debug("Audit %s on %s:%s by %s", action, target_kind, target_id, actor_user_id)
        return entry

    async def list_recent(
        self,
        *,
        action: str | None = None,
        target_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEntry]:
        """Newest entries first, optionally filtered by action or target."""
        where: list[str] = []
        params: list[Any] = []
        if action:
            where.append("action = ?")
            params.append(action)
        if target_id:
            where.append("target_id = ?")
            params.append(target_id)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        async with self._db.read() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM audit_log {where_sql} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (*params, max(1, min(limit, 200)), max(0, offset)),
            )
            rows = await cursor.fetchall()
        return [row_to_audit_entry(row) for row in rows]
