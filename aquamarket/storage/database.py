"""SQLite database initialisation and transaction handling for Aquamarket.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring low-level PRAGMA settings (WAL journal mode, foreign keys,
  busy timeout).
* Bootstrapping the schema via ``CREATE TABLE IF NOT EXISTS``; safe to
  call on every startup because the statements are idempotent.
* Serialising every use of the shared connection through :class:`Database`.

One connection is shared by the whole process.  The connection is opened in
autocommit mode (``isolation_level=None``) and :meth:`Database.write` issues
``BEGIN IMMEDIATE`` / ``COMMIT`` / ``ROLLBACK`` itself, under an
:class:`asyncio.Lock`, so a coroutine can never observe or commit another
coroutine's half-finished transaction.  Lock contention from *another
process* (e.g. the ``sweep`` cron command) surfaces as ``database is
locked`` and is retried with :mod:`tenacity`.

Typical usage::

    from aquamarket.storage.database import Database

    async def main() -> None:
        db = await Database.open(Path("data/aquamarket.db"))
        repo = ListingRepository(db)
        ...
        await db.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Final, TypeVar

import aiosqlite
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "Database",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("aquamarket.db")

#: SQLite's in-memory pseudo path.
MEMORY_DB: Final[str] = ":memory:"

_BUSY_TIMEOUT_MS: Final[int] = 5_000
_LOCK_RETRY_ATTEMPTS: Final[int] = 4

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: ``listings`` holds sale listings and wanted posts with their lifecycle.
#:
#: Column notes
#: ------------
#: id                     uuid4 hex.  Relist creates a new id; ids are never
#:                        reused.
#: user_id                Owner; NULL for historical unowned rows.
#: kind                   ``sale`` | ``wanted``.
#: price_cents            Sale price; NULL for wanted posts.
#: budget_cents           Wanted-post budget; NULL for sale listings.
#: images_json            JSON array of image URLs (max 6).
#: status                 One of the eight lifecycle statuses.  ``sold`` /
#:                        ``closed`` replace the old separate resolution column.
#: featured               0/1 flag; only meaningful together with
#:                        ``featured_until``.
#: featured_until         Epoch milliseconds (INTEGER), kept in the wire shape
#:                        the clients already use.  NULL with featured=1 is a
#:                        legacy row featured until an admin clears it.
#: owner_block_*          Admin restriction overlay, 0/1 flags.
#: owner_block_reason     NULL whenever all four flags are 0.
#: *_at                   ISO-8601 UTC text, fixed width
#:                        ``YYYY-MM-DDTHH:MM:SS.mmmZ`` so string comparison is
#:                        chronological.
#: version                Bumped by every lifecycle/content write; updates are
#:                        conditional on it (optimistic concurrency).
_DDL_LISTINGS = """\
CREATE TABLE IF NOT EXISTS listings (
    id                          TEXT     NOT NULL PRIMARY KEY,
    user_id                     INTEGER,
    kind                        TEXT     NOT NULL CHECK (kind IN ('sale', 'wanted')),
    title                       TEXT     NOT NULL,
    category                    TEXT     NOT NULL,
    species                     TEXT,
    sex                         TEXT,
    water_type                  TEXT,
    age                         TEXT,
    quantity                    INTEGER  NOT NULL DEFAULT 1,
    price_cents                 INTEGER,
    budget_cents                INTEGER,
    location                    TEXT     NOT NULL,
    description                 TEXT     NOT NULL,
    phone                       TEXT     NOT NULL,
    images_json                 TEXT     NOT NULL DEFAULT '[]',
    status                      TEXT     NOT NULL,
    featured                    INTEGER  NOT NULL DEFAULT 0,
    featured_until              INTEGER,
    views                       INTEGER  NOT NULL DEFAULT 0,
    owner_block_edit            INTEGER  NOT NULL DEFAULT 0,
    owner_block_pause_resume    INTEGER  NOT NULL DEFAULT 0,
    owner_block_status_changes  INTEGER  NOT NULL DEFAULT 0,
    owner_block_featuring       INTEGER  NOT NULL DEFAULT 0,
    owner_block_reason          TEXT,
    owner_block_updated_at      TEXT,
    owner_block_actor_user_id   INTEGER,
    published_at                TEXT,
    expires_at                  TEXT,
    resolved_at                 TEXT,
    deleted_at                  TEXT,
    created_at                  TEXT     NOT NULL,
    updated_at                  TEXT     NOT NULL,
    version                     INTEGER  NOT NULL DEFAULT 0
)"""

_DDL_LISTINGS_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_listings_status ON listings (status)",
    "CREATE INDEX IF NOT EXISTS idx_listings_user ON listings (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_listings_expires ON listings (expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_listings_featured ON listings (featured, featured_until)",
)

#: ``audit_log``: who did what to which target.  ``meta_json`` holds the
#: action-specific details (previous/next status, machine rejection reason).
_DDL_AUDIT_LOG = """\
CREATE TABLE IF NOT EXISTS audit_log (
    id             TEXT     NOT NULL PRIMARY KEY,
    actor_user_id  INTEGER,
    action         TEXT     NOT NULL,
    target_kind    TEXT     NOT NULL,
    target_id      TEXT     NOT NULL,
    meta_json      TEXT     NOT NULL DEFAULT '{}',
    created_at     TEXT     NOT NULL
)"""

#: ``notifications``: in-app messages; delivery beyond this table is
#: somebody else's job.
_DDL_NOTIFICATIONS = """\
CREATE TABLE IF NOT EXISTS notifications (
    id          TEXT     NOT NULL PRIMARY KEY,
    user_id     INTEGER  NOT NULL,
    kind        TEXT     NOT NULL,
    title       TEXT     NOT NULL,
    body        TEXT     NOT NULL,
    meta_json   TEXT     NOT NULL DEFAULT '{}',
    is_read     INTEGER  NOT NULL DEFAULT 0,
    created_at  TEXT     NOT NULL
)"""

#: ``site_settings``: runtime overrides of the moderation defaults, one JSON
#: value per key.
_DDL_SITE_SETTINGS = """\
CREATE TABLE IF NOT EXISTS site_settings (
    key                 TEXT     NOT NULL PRIMARY KEY,
    value_json          TEXT     NOT NULL,
    updated_at          TEXT     NOT NULL,
    updated_by_user_id  INTEGER
)"""

_DDL_OTHER_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_log (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, created_at)",
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and configure it for production.

    Args:
        path: Filesystem path for the SQLite file, or ``":memory:"``.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open, configured :class:`aiosqlite.Connection` in autocommit mode.
        The caller is responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the database file cannot be opened or
            created.
    """
    target: Path | str = path or DEFAULT_DB_PATH
    if str(target) != MEMORY_DB:
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", target)

    conn: aiosqlite.Connection = await aiosqlite.connect(target, isolation_level=None)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s (schema verified)", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all required tables and indexes if they do not already exist.

    Idempotent; existing data is untouched.
    """
    for ddl in (_DDL_LISTINGS, _DDL_AUDIT_LOG, _DDL_NOTIFICATIONS, _DDL_SITE_SETTINGS):
        await conn.execute(ddl)
    for ddl in (*_DDL_LISTINGS_INDEXES, *_DDL_OTHER_INDEXES):
        await conn.execute(ddl)
    await conn.commit()
    logger.debug("Schema bootstrap complete (listings, audit_log, notifications, site_settings)")


# ---------------------------------------------------------------------------
# Database wrapper
# ---------------------------------------------------------------------------


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, aiosqlite.OperationalError) and "locked" in str(exc).lower()


class Database:
    """The process-wide SQLite connection plus its access discipline.

    Every store in :mod:`aquamarket.storage` and :mod:`aquamarket.notifiers`
    goes through :meth:`read` or :meth:`write`; nothing else touches the
    connection.

    Args:
        conn: Connection returned by :func:`open_db` (autocommit mode).
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: Path | str | None = None) -> Database:
        return cls(await open_db(path))

    async def close(self) -> None:
        async with self._lock:
            await self._conn.close()
        logger.debug("SQLite connection closed")

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the connection for a read-only sequence of statements."""
        async with self._lock:
            yield self._conn

    async def write(self, work: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        """Run *work* inside one ``BEGIN IMMEDIATE`` transaction.

        The transaction commits when *work* returns and rolls back when it
        raises (the exception propagates unchanged).  ``database is locked``
        errors, raised when another process holds the write lock, retry the
        whole unit.

        Args:
            work: Coroutine function receiving the connection.  It may run
                several statements; they commit or roll back together.

        Returns:
            Whatever *work* returns.
        """
        result: T
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_locked),
            stop=stop_after_attempt(_LOCK_RETRY_ATTEMPTS),
            wait=wait_exponential(multiplier=0.05, max=1.0),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                result = await self._run_transaction(work)
        return result

    async def _run_transaction(self, work: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        async with self._lock:
            await self._conn.execute("BEGIN IMMEDIATE")
            try:
                result = await work(self._conn)
                await self._conn.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    await self._conn.execute("ROLLBACK")
                raise
            return result


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Apply PRAGMA settings that must be set immediately after opening.

    * ``journal_mode=WAL``: readers in other processes do not block the
      single writer.
    * ``foreign_keys=ON``: SQLite disables FK enforcement by default.
    * ``busy_timeout``: wait for another process's write lock before
      failing with ``database is locked``.
    """
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite reported journal_mode=%r (expected for ':memory:')", mode)
    else:
        logger.debug("SQLite journal_mode set to WAL")

    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
