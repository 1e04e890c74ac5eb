"""Shared pytest fixtures and configuration for the Aquamarket test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest
from pydantic_settings import SettingsConfigDict

from aquamarket.core import configure_logging
from aquamarket.core.clock import FrozenClock
from aquamarket.core.settings import Settings
from aquamarket.service import Services
from aquamarket.storage.database import MEMORY_DB, Database

#: Instant every frozen clock starts at.
T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every Aquamarket env var for the duration of a test.

    Also disables pydantic-settings ``.env`` loading so a developer's local
    ``.env`` cannot change what :class:`Settings` resolves to.
    """
    prefixes = (
        "DATABASE_",
        "LISTING_",
        "REQUIRE_",
        "FEATURED_",
        "API_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


@pytest.fixture()
def settings(clean_env: None) -> Settings:
    """Default settings pointed at an in-memory database."""
    return Settings(database_path=MEMORY_DB)


# ---------------------------------------------------------------------------
# Time / storage / services
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture()
async def db() -> AsyncIterator[Database]:
    """An in-memory database with the schema applied, closed after the test."""
    database = await Database.open(MEMORY_DB)
    try:
        yield database
    finally:
        await database.close()


@pytest.fixture()
async def services(db: Database, settings: Settings, clock: FrozenClock) -> AsyncIterator[Services]:
    """Every service wired to the in-memory database and the frozen clock.

    Background audit/notification writes are drained before the database
    closes.
    """
    built = Services.build(db, settings, clock=clock)
    try:
        yield built
    finally:
        await built.dispatcher.drain()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the test suite."""
    return logging.getLogger("tests")
