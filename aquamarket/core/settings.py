"""Aquamarket application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated, immutable settings object.

The field name is the **lowercase** version of the env-var name (e.g.
``LISTING_TTL_DAYS`` → ``listing_ttl_days``).  The moderation values
(``require_approval``, ``listing_ttl_days``, ``featured_max_days``) are only
the *boot defaults*: admins can override them at runtime through the
``site_settings`` table (see :mod:`aquamarket.storage.site_settings`).

Typical usage::

    from aquamarket.core.settings import Settings

    settings = Settings()                         # loads from env + .env
    print(settings.listing_ttl_days)              # 30
    print(settings.database_path_resolved)        # /abs/path/data/aquamarket.db
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings", "DEFAULT_LISTING_TTL_DAYS"]

logger = logging.getLogger(__name__)

#: Listing lifetime used when ``LISTING_TTL_DAYS`` is unset.
DEFAULT_LISTING_TTL_DAYS = 30


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/aquamarket.db",
        description="Path to the SQLite database file.",
    )

    # ------------------------------------------------------------------
    # Moderation defaults
    # ------------------------------------------------------------------
    require_approval: bool = Field(
        default=False,
        description="New listings wait in 'pending' until an admin approves them.",
    )
    listing_ttl_days: int = Field(
        default=DEFAULT_LISTING_TTL_DAYS,
        ge=1,
        le=365,
        description="Days a listing stays live before the sweep expires it.",
    )
    featured_max_days: int = Field(
        default=365,
        ge=1,
        le=3650,
        description="Furthest ahead (in days) an owner may schedule featuring.",
    )

    # ------------------------------------------------------------------
    # HTTP server
    # ------------------------------------------------------------------
    api_host: str = Field(default="127.0.0.1", description="Bind address for `serve`.")
    api_port: int = Field(default=8000, ge=1, le=65535, description="Bind port for `serve`.")

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("listing_ttl_days", mode="before")
    @classmethod
    def _fallback_ttl(cls, v: object) -> object:
        """Blank or non-positive TTL values fall back to the default."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_LISTING_TTL_DAYS
        try:
            parsed = int(v)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable LISTING_TTL_DAYS=%r", v)
            return DEFAULT_LISTING_TTL_DAYS
        return parsed if parsed > 0 else DEFAULT_LISTING_TTL_DAYS

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()

    @property
    def in_memory(self) -> bool:
        """``True`` when the database is SQLite's ``:memory:`` pseudo-file."""
        return self.database_path == ":memory:"

    @property
    def database_target(self) -> Path | str:
        """What to pass to :func:`~aquamarket.storage.database.open_db`."""
        return self.database_path if self.in_memory else self.database_path_resolved
