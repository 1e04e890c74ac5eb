"""Smoke tests: verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  Their sole purpose is to
confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works (async tests
   run without any decorator).
3. Core aquamarket modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.

If any of these fail it means the project foundation is broken and no
subsequent tests can be trusted.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from aquamarket.core import (
    AquamarketError,
    ConcurrentModificationError,
    ConfigError,
    ForbiddenError,
    InvalidRequestError,
    JsonFormatter,
    ListingError,
    ListingNotFoundError,
    NotAuthenticatedError,
    NotificationError,
    RejectionReason,
    RestrictedError,
    StorageError,
    TransitionRejectedError,
    configure_logging,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_core_imports_succeed() -> None:
    """All public names exported from ``aquamarket.core`` are importable."""
    assert configure_logging is not None
    assert JsonFormatter is not None
    assert AquamarketError is not None


def test_app_modules_import() -> None:
    """The service, API and CLI entry points import cleanly."""
    from aquamarket.__main__ import main
    from aquamarket.api.app import create_app
    from aquamarket.service import Services

    assert callable(main)
    assert callable(create_app)
    assert Services is not None


def test_configure_logging_text() -> None:
    """``configure_logging`` runs without raising in text mode."""
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    """``configure_logging`` runs without raising in JSON mode."""
    configure_logging(level="DEBUG", fmt="json", force=True)
    # Restore text mode so subsequent test output remains readable.
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    """All custom exceptions are subclasses of ``AquamarketError``."""
    for exc_class in (
        ConfigError,
        StorageError,
        ConcurrentModificationError,
        ListingError,
        InvalidRequestError,
        ListingNotFoundError,
        ForbiddenError,
        NotAuthenticatedError,
        TransitionRejectedError,
        RestrictedError,
        NotificationError,
    ):
        assert issubclass(exc_class, AquamarketError), (
            f"{exc_class.__name__} is not a subclass of AquamarketError"
        )


def test_exception_hierarchy_layers() -> None:
    """Layer-specific subclass relationships are correct."""
    assert issubclass(ConcurrentModificationError, StorageError)
    assert issubclass(InvalidRequestError, ListingError)
    assert issubclass(ListingNotFoundError, ListingError)
    assert issubclass(NotAuthenticatedError, ForbiddenError)
    assert issubclass(RestrictedError, TransitionRejectedError)
    assert not issubclass(NotificationError, ListingError)


def test_concurrent_modification_carries_version() -> None:
    exc = ConcurrentModificationError("abc123", 4)
    assert exc.listing_id == "abc123"
    assert exc.expected_version == 4
    assert "expected version 4" in str(exc)


def test_for_reason_picks_restricted_subclass() -> None:
    """``RESTRICTED`` always yields a ``RestrictedError``; other reasons do not."""
    restricted = TransitionRejectedError.for_reason(RejectionReason.RESTRICTED, "Editing is restricted")
    assert isinstance(restricted, RestrictedError)
    assert restricted.reason is RejectionReason.RESTRICTED
    assert restricted.message == "Editing is restricted"

    plain = TransitionRejectedError.for_reason(RejectionReason.NOT_RESOLVED, "Only sold listings can be relisted")
    assert type(plain) is TransitionRejectedError
    assert "NOT_RESOLVED" in repr(plain)


def test_not_authenticated_default_message() -> None:
    assert NotAuthenticatedError().message == "Not authenticated"


def test_not_found_hides_id_from_message() -> None:
    exc = ListingNotFoundError("f" * 32)
    assert exc.listing_id == "f" * 32
    assert exc.message == "Listing not found"


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    """Simplest possible async test; confirms pytest-asyncio is operational."""
    await asyncio.sleep(0)
    assert True


async def test_async_exception_is_catchable() -> None:
    """Async tests can raise and catch custom exceptions correctly."""

    async def _failing_coro() -> None:
        raise TransitionRejectedError(RejectionReason.ALREADY_DELETED, "Listing is deleted")

    with pytest.raises(TransitionRejectedError, match="Listing is deleted"):
        await _failing_coro()
