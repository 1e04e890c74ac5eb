"""Runtime site settings persisted in the ``site_settings`` table.

Each field of :class:`~aquamarket.core.models.SiteSettings` is one row
(``key`` → JSON ``value_json``).  Fields with no row fall back to the
process defaults taken from :class:`~aquamarket.core.settings.Settings`, so a
fresh database behaves exactly like the environment configuration.

Typical usage::

    store = SiteSettingsStore(db, SiteSettings(listing_ttl_days=settings.listing_ttl_days))
    current = await store.load()
    await store.update(current.model_copy(update={"require_approval": True}),
                       actor_user_id=1, now=now)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

import aiosqlite
from pydantic import ValidationError

from aquamarket.core.models import SiteSettings
from aquamarket.core.settings import Settings
from aquamarket.storage.database import Database
from aquamarket.storage.mapping import to_iso

__all__ = ["SiteSettingsStore", "defaults_from"]

logger = logging.getLogger(__name__)


def defaults_from(settings: Settings) -> SiteSettings:
    """Site settings implied by the process configuration alone."""
    return SiteSettings(
        require_approval=settings.require_approval,
        listing_ttl_days=settings.listing_ttl_days,
        featured_max_days=settings.featured_max_days,
    )


class SiteSettingsStore:
    """Read and overwrite the runtime :class:`SiteSettings`.

    Args:
        db: Shared database wrapper.
        defaults: Values used for keys that have never been written.
    """

    def __init__(self, db: Database, defaults: SiteSettings) -> None:
        self._db = db
        self._defaults = defaults

    async def load(self) -> SiteSettings:
        async with self._db.read() as conn:
            cursor = await conn.execute("SELECT key, value_json FROM site_settings")
            rows = await cursor.fetchall()

        values = self._defaults.model_dump()
        for row in rows:
            if row["key"] in values:
                values[row["key"]] = json.loads(row["value_json"])
        try:
            return SiteSettings(**values)
        except ValidationError:
            # A hand-edited row must not take the site down.
            logger.warning("Stored site settings are invalid; using defaults", exc_info=True)
            return self._defaults

    async def update(self, new: SiteSettings, *, actor_user_id: int | None, now: datetime) -> SiteSettings:
        """Persist every field of *new* in one transaction and return it."""
        stamp = to_iso(now)

        async def _upsert(conn: aiosqlite.Connection) -> None:
            for key, value in new.model_dump().items():
                await conn.execute(
                    "INSERT INTO site_settings (key, value_json, updated_at, updated_by_user_id) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, "
                    "updated_at = excluded.updated_at, updated_by_user_id = excluded.updated_by_user_id",
                    (key, json.dumps(value), stamp, actor_user_id),
                )

        await self._db.write(_upsert)
        return new
