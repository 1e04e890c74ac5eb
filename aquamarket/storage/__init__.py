"""SQLite-backed persistence for listings, site settings and their wire mapping."""

from aquamarket.storage.database import DEFAULT_DB_PATH, MEMORY_DB, Database, create_schema, open_db
from aquamarket.storage.mapping import listing_to_wire, row_to_listing
from aquamarket.storage.repository import ListingPage, ListingRepository
from aquamarket.storage.site_settings import SiteSettingsStore, defaults_from

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "Database",
    "open_db",
    "create_schema",
    "ListingRepository",
    "ListingPage",
    "SiteSettingsStore",
    "defaults_from",
    "listing_to_wire",
    "row_to_listing",
]
