"""In-app notification emitter.

Provides :class:`Notifier`, which every lifecycle path calls to tell a
listing owner that something happened to their listing.  Only the write to
the ``notifications`` table happens here; delivery beyond it (push, e-mail)
belongs to another service reading that table.

Self-notification
-----------------
Owners are never notified about their own actions: :meth:`Notifier.notify`
returns ``False`` without writing when ``to_user_id`` equals the acting
user, and likewise when the listing has no owner.

Typical usage::

    notifier = Notifier(db)
    await notifier.notify(
        to_user_id=listing.user_id,
        actor_user_id=admin_id,
        kind=KIND_STATUS_CHANGED,
        title=with_listing_title("Listing paused", listing.content.title),
        body="Your listing was paused by an admin.",
        meta={"listingId": listing.id},
        now=now,
    )
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import aiosqlite

from aquamarket.core import events
from aquamarket.core.exceptions import NotificationError
from aquamarket.core.ids import new_id
from aquamarket.core.models import Notification
from aquamarket.storage.database import Database
from aquamarket.storage.mapping import row_to_notification, to_iso

__all__ = ["Notifier"]

logger = logging.getLogger(__name__)


class Notifier:
    """Writes and reads owner notifications.

    Args:
        db: Shared database wrapper.  The Notifier does not manage its
            lifecycle.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def notify(
        self,
        *,
        to_user_id: int | None,
        actor_user_id: int | None,
        kind: str,
        title: str,
        body: str,
        meta: dict[str, Any] | None = None,
        now: datetime,
    ) -> bool:
        """Store one notification for *to_user_id*.

        Returns:
            ``True`` if a row was written, ``False`` if the notification was
            skipped (no recipient, or the recipient is the actor).

        Raises:
            NotificationError: The row could not be written.
        """
        if to_user_id is None:
            return False
        if to_user_id == actor_user_id:
            logger.debug(
                "Skipping %s notification to user %s: they made the change",
                kind,
                to_user_id,
                extra={"event": events.NOTIFY_SKIPPED_SELF},
            )
            return False

        row = (
            new_id(),
            to_user_id,
            kind,
            title,
            body,
            json.dumps(meta or {}, default=str),
            to_iso(now),
        )

        async def _insert(conn: aiosqlite.Connection) -> None:
            await conn.execute(
                "INSERT INTO notifications (id, user_id, kind, title, body, meta_json, is_read, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, 0, ?)",
                row,
            )

        try:
            await self._db.write(_insert)
        except aiosqlite.Error as exc:
            raise NotificationError(f"Could not store {kind} notification for user {to_user_id}: {exc}") from exc
        logger.info("Notification %s stored for user %s: %s", kind, to_user_id, title)
        return True

    async def list_for_user(
        self,
        user_id: int,
        *,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        async with self._db.read() as conn:
            cursor = await conn.execute(sql, (user_id, max(1, min(limit, 200))))
            rows = await cursor.fetchall()
        return [row_to_notification(row) for row in rows]
