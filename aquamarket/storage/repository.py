"""Listing repository.

Provides :class:`ListingRepository`, the single data-access object for the
``listings`` table.  Lifecycle fields are only written through
:meth:`ListingRepository.apply_patch` (one conditional ``UPDATE`` per
decision), :meth:`~ListingRepository.relist` (archive + insert in one
transaction) and :meth:`~ListingRepository.expire_due` (the sweep).

Optimistic concurrency
----------------------
Every write is ``UPDATE ... WHERE id = ? AND version = ?`` and bumps
``version``.  If another writer got there first the update matches no row
and :class:`~aquamarket.core.exceptions.ConcurrentModificationError` is
raised; the caller's decision was made on stale state and is not applied.

Typical usage::

    from aquamarket.storage.database import Database
    from aquamarket.storage.repository import ListingRepository

    async def run() -> None:
        db = await Database.open()
        repo = ListingRepository(db)

        listing = await repo.require(listing_id)
        updated = await repo.apply_patch(listing, patch, now=now)
        await db.close()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final

import aiosqlite

from aquamarket.core.exceptions import ConcurrentModificationError, ListingNotFoundError
from aquamarket.core.ids import is_valid_id
from aquamarket.core.models import (
    PUBLIC_STATUSES,
    Featuring,
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
)
from aquamarket.lifecycle.featuring import FEATURED_SQL
from aquamarket.lifecycle.restrictions import RESTRICTION_FILTERS
from aquamarket.storage.database import Database
from aquamarket.storage.mapping import (
    content_to_columns,
    listing_to_row,
    patch_to_columns,
    row_to_listing,
    to_epoch_ms,
    to_iso,
)

__all__ = ["ListingRepository", "ListingPage", "EXPIRY_DUE_SQL"]

logger = logging.getLogger(__name__)

#: Listings the sweep must move to ``expired`` (bind ``now`` as ISO text).
EXPIRY_DUE_SQL: Final[str] = (
    "status NOT IN ('deleted', 'expired') "
    "AND expires_at IS NOT NULL AND expires_at <> '' AND expires_at < ?"
)

_PUBLIC_STATUS_SQL: Final[str] = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(PUBLIC_STATUSES))
)

#: Hard ceiling on page size for every listing query.
MAX_PAGE_SIZE: Final[int] = 100


@dataclass(frozen=True)
class ListingPage:
    """One page of a listing query plus the unpaged total."""

    items: list[Listing]
    total: int


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped.lower()}%"


class ListingRepository:
    """Data-access object for the ``listings`` table.

    It owns no connection lifecycle.  The caller supplies an open
    :class:`~aquamarket.storage.database.Database` and closes it when done.

    Args:
        db: Shared database wrapper.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, listing_id: str) -> Listing | None:
        async with self._db.read() as conn:
            cursor = await conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,))
            row = await cursor.fetchone()
        return row_to_listing(row) if row is not None else None

    async def require(self, listing_id: str) -> Listing:
        """Return the listing or raise :exc:`ListingNotFoundError`."""
        if not is_valid_id(listing_id):
            raise ListingNotFoundError(listing_id)
        listing = await self.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    async def _page(
        self,
        where: Sequence[str],
        params: Sequence[Any],
        *,
        order_by: str,
        limit: int,
        offset: int,
    ) -> ListingPage:
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        async with self._db.read() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) FROM listings {where_sql}", tuple(params))
            total_row = await cursor.fetchone()
            cursor = await conn.execute(
                f"SELECT * FROM listings {where_sql} ORDER BY {order_by} LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            rows = await cursor.fetchall()
        return ListingPage(
            items=[row_to_listing(row) for row in rows],
            total=int(total_row[0]) if total_row else 0,
        )

    async def list_public(
        self,
        *,
        now: datetime,
        kind: ListingKind | None = None,
        featured_only: bool = False,
        category: str | None = None,
        query: str | None = None,
        limit: int = 24,
        offset: int = 0,
    ) -> ListingPage:
        """Browseable listings, newest first.

        With *featured_only* the featuring window is applied in SQL, so a
        listing whose ``featured_until`` has elapsed is excluded even though
        its ``featured`` flag is still set.
        """
        where: list[str] = [_PUBLIC_STATUS_SQL]
        params: list[Any] = []
        if kind is not None:
            where.append("kind = ?")
            params.append(kind.value)
        if featured_only:
            where.append(FEATURED_SQL)
            params.append(to_epoch_ms(now))
        if category:
            where.append("category = ?")
            params.append(category)
        if query and query.strip():
            pattern = _like(query.strip())
            where.append(
                "(lower(title) LIKE ? ESCAPE '\\' OR lower(description) LIKE ? ESCAPE '\\' "
                "OR lower(COALESCE(species, '')) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])
        order_by = "featured_until DESC, created_at DESC, id DESC" if featured_only else "created_at DESC, id DESC"
        return await self._page(where, params, order_by=order_by, limit=limit, offset=offset)

    async def list_owned(
        self,
        user_id: int,
        *,
        kind: ListingKind | None = None,
        include_deleted: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> ListingPage:
        where: list[str] = ["user_id = ?"]
        params: list[Any] = [user_id]
        if kind is not None:
            where.append("kind = ?")
            params.append(kind.value)
        if not include_deleted:
            where.append("status <> 'deleted'")
        return await self._page(where, params, order_by="created_at DESC, id DESC", limit=limit, offset=offset)

    async def list_pending(self, *, limit: int = 50, offset: int = 0) -> ListingPage:
        """Approval queue, oldest first."""
        return await self._page(
            ["status = ?"],
            [ListingStatus.PENDING.value],
            order_by="created_at ASC, id ASC",
            limit=limit,
            offset=offset,
        )

    async def list_admin(
        self,
        *,
        now: datetime,
        status: ListingStatus | None = None,
        kind: ListingKind | None = None,
        restrictions: str | None = None,
        featured_only: bool = False,
        user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ListingPage:
        """Moderation console query.

        Args:
            restrictions: One of :data:`~aquamarket.lifecycle.restrictions.RESTRICTION_FILTERS`
                keys, or ``None`` for no restriction filter.
            featured_only: Listings with a featuring window still open.
        """
        where: list[str] = []
        params: list[Any] = []
        if status is not None:
            where.append("status = ?")
            params.append(status.value)
        if kind is not None:
            where.append("kind = ?")
            params.append(kind.value)
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        if restrictions is not None:
            where.append(RESTRICTION_FILTERS[restrictions])
        if featured_only:
            where.append("(featured_until IS NOT NULL AND featured_until > ?)")
            params.append(to_epoch_ms(now))
        order = "created_at ASC, id ASC" if status is ListingStatus.PENDING else "updated_at DESC, id DESC"
        return await self._page(where, params, order_by=order, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, listing: Listing) -> Listing:
        row = listing_to_row(listing)
        columns = ", ".join(row)
        placeholders = ", ".join("?" * len(row))

        async def _insert(conn: aiosqlite.Connection) -> None:
            await conn.execute(
                f"INSERT INTO listings ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )

        await self._db.write(_insert)
        logger.debug("Inserted listing %s (kind=%s status=%s)", listing.id, listing.kind, listing.status)
        return listing

    @staticmethod
    async def _conditional_update(
        conn: aiosqlite.Connection,
        listing: Listing,
        columns: dict[str, Any],
    ) -> None:
        assignments = ", ".join(f"{name} = ?" for name in columns)
        cursor = await conn.execute(
            f"UPDATE listings SET {assignments} WHERE id = ? AND version = ?",
            (*columns.values(), listing.id, listing.version),
        )
        if cursor.rowcount == 0:
            raise ConcurrentModificationError(listing.id, listing.version)

    async def apply_patch(
        self,
        listing: Listing,
        patch: ListingPatch,
        *,
        now: datetime,
        content: ListingContent | None = None,
    ) -> Listing:
        """Persist *patch* (and optionally new *content*) in one statement.

        An empty patch without content writes nothing and returns *listing*
        unchanged.
        A legacy featuring (``featured`` with no end instant) is cleared by
        any write that does not set featuring itself.

        Raises:
            ConcurrentModificationError: *listing* is no longer at its
                ``version`` in the database.
        """
        if patch.is_noop and content is None:
            return listing

        if listing.featuring.is_legacy and "featuring" not in patch.model_fields_set:
            patch = ListingPatch(**patch.changes(), featuring=Featuring.off())
        updated = patch.apply_to(listing, now=now)
        columns = patch_to_columns(patch)
        if content is not None:
            updated = updated.model_copy(update={"content": content})
            columns.update(content_to_columns(content))
        columns["updated_at"] = to_iso(now)
        columns["version"] = updated.version

        async def _update(conn: aiosqlite.Connection) -> None:
            await self._conditional_update(conn, listing, columns)

        await self._db.write(_update)
        logger.debug(
            "Updated listing %s v%d -> v%d (%s)",
            listing.id,
            listing.version,
            updated.version,
            ", ".join(sorted(columns)),
        )
        return updated

    async def relist(
        self,
        original: Listing,
        archive: ListingPatch,
        fresh: Listing,
        *,
        now: datetime,
    ) -> tuple[Listing, Listing]:
        """Archive *original* and insert *fresh* atomically.

        Returns:
            ``(archived_original, fresh)``.
        """
        archived = archive.apply_to(original, now=now)
        columns = patch_to_columns(archive)
        columns["updated_at"] = to_iso(now)
        columns["version"] = archived.version
        row = listing_to_row(fresh)

        async def _relist(conn: aiosqlite.Connection) -> None:
            await self._conditional_update(conn, original, columns)
            await conn.execute(
                f"INSERT INTO listings ({', '.join(row)}) VALUES ({', '.join('?' * len(row))})",
                tuple(row.values()),
            )

        await self._db.write(_relist)
        logger.debug("Relisted %s as %s", original.id, fresh.id)
        return archived, fresh

    async def increment_views(self, listing_id: str) -> None:
        """Bump the view counter.  Does not touch ``version``."""

        async def _bump(conn: aiosqlite.Connection) -> None:
            await conn.execute("UPDATE listings SET views = views + 1 WHERE id = ?", (listing_id,))

        await self._db.write(_bump)

    async def expire_due(self, now: datetime) -> list[tuple[ListingStatus, Listing]]:
        """Move every listing past its expiry into ``expired``.

        Selection and update happen in one transaction, so the returned
        listings are exactly the rows this call changed.  A second call with
        the same *now* matches nothing and returns ``[]``.
        When nothing is due the call only reads and takes no write lock.

        Returns:
            ``(previous_status, listing)`` pairs, the listing as stored after
            the update.
        """
        now_iso = to_iso(now)
        async with self._db.read() as conn:
            cursor = await conn.execute(f"SELECT 1 FROM listings WHERE {EXPIRY_DUE_SQL} LIMIT 1", (now_iso,))
            if await cursor.fetchone() is None:
                return []

        async def _expire(conn: aiosqlite.Connection) -> list[tuple[ListingStatus, Listing]]:
            cursor = await conn.execute(f"SELECT id, status FROM listings WHERE {EXPIRY_DUE_SQL}", (now_iso,))
            previous = {row["id"]: ListingStatus(row["status"]) for row in await cursor.fetchall()}
            if not previous:
                return []
            ids = list(previous)
            placeholders = ", ".join("?" * len(ids))
            await conn.execute(
                "UPDATE listings SET status = 'expired', updated_at = ?, version = version + 1 "
                f"WHERE id IN ({placeholders}) AND {EXPIRY_DUE_SQL}",
                (now_iso, *ids, now_iso),
            )
            cursor = await conn.execute(f"SELECT * FROM listings WHERE id IN ({placeholders})", ids)
            expired = [row_to_listing(row) for row in await cursor.fetchall()]
            return [(previous[listing.id], listing) for listing in expired]

        return await self._db.write(_expire)
