"""Aquamarket exception taxonomy.

Every custom exception inherits from :class:`AquamarketError`.  Exceptions
are organised by architectural layer so callers can catch at the right
granularity:

    Layer hierarchy
    ---------------
    AquamarketError
    ├── ConfigError
    ├── StorageError
    │   └── ConcurrentModificationError
    ├── ListingError
    │   ├── InvalidRequestError
    │   ├── ListingNotFoundError
    │   ├── ForbiddenError
    │   │   └── NotAuthenticatedError
    │   └── TransitionRejectedError
    │       └── RestrictedError
    └── NotificationError

:class:`ListingError` and its subclasses are *client* errors: they are local,
synchronous, never retried, and the HTTP layer maps each one to a status
code (see :mod:`aquamarket.api.errors`).

Usage:

    from aquamarket.core.exceptions import ListingNotFoundError

    raise ListingNotFoundError(listing_id)
"""

from __future__ import annotations

import logging
from enum import StrEnum

__all__ = [
    "AquamarketError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    "ConcurrentModificationError",
    # Listing / request
    "ListingError",
    "InvalidRequestError",
    "ListingNotFoundError",
    "ForbiddenError",
    "NotAuthenticatedError",
    "RejectionReason",
    "TransitionRejectedError",
    "RestrictedError",
    # Notification
    "NotificationError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class AquamarketError(Exception):
    """Root exception for all Aquamarket errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(AquamarketError):
    """Raised when the application configuration is invalid or incomplete."""


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(AquamarketError):
    """Raised when a database or persistence operation fails."""


class ConcurrentModificationError(StorageError):
    """Raised when a conditional update finds the row at a different version.

    Another request changed the listing between our read and our write.
    The caller should re-read and decide again; nothing is retried here.

    Args:
        listing_id: The listing whose write lost the race.
        expected_version: Version the caller read before deciding.
    """

    def __init__(self, listing_id: str, expected_version: int) -> None:
        self.listing_id = listing_id
        self.expected_version = expected_version
        super().__init__(
            f"Listing {listing_id!r} was modified concurrently "
            f"(expected version {expected_version})"
        )


# ---------------------------------------------------------------------------
# Listing / request layer
# ---------------------------------------------------------------------------


class ListingError(AquamarketError):
    """Base class for caller-facing errors about a listing request.

    Attributes:
        message: Human-readable text safe to show to the end user.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(ListingError):
    """Raised for malformed or out-of-range input, before any transition runs."""


class ListingNotFoundError(ListingError):
    """Raised when a listing id does not resolve to a visible row.

    Args:
        listing_id: The id that was looked up.
    """

    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__("Listing not found")


class ForbiddenError(ListingError):
    """Raised when the actor is neither the owner nor a sufficiently privileged admin."""


class NotAuthenticatedError(ForbiddenError):
    """Raised when an operation needs a signed-in user and the caller is anonymous."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class RejectionReason(StrEnum):
    """Machine-readable reason attached to every rejected transition."""

    ALREADY_DELETED = "ALREADY_DELETED"
    ALREADY_EXPIRED = "ALREADY_EXPIRED"
    NOT_RESOLVED = "NOT_RESOLVED"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    RESTRICTED = "RESTRICTED"
    DRAFT_MUST_PUBLISH_FIRST = "DRAFT_MUST_PUBLISH_FIRST"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_PERMITTED = "NOT_PERMITTED"


class TransitionRejectedError(ListingError):
    """Raised when a (state, requested-state, actor) triple is not a legal edge.

    Use :meth:`for_reason` rather than the constructor so that
    :data:`RejectionReason.RESTRICTED` always yields a :class:`RestrictedError`.

    Args:
        reason: Machine-readable rejection reason.
        message: Human-readable explanation for the owner.
    """

    def __init__(self, reason: RejectionReason, message: str) -> None:
        self.reason = reason
        super().__init__(message)

    @classmethod
    def for_reason(cls, reason: RejectionReason, message: str) -> TransitionRejectedError:
        """Build the most specific exception type for *reason*."""
        if reason is RejectionReason.RESTRICTED:
            return RestrictedError(message)
        return cls(reason, message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.reason.value}, {self.message!r})"


class RestrictedError(TransitionRejectedError):
    """Raised when the restriction overlay blocks an otherwise legal owner action."""

    def __init__(self, message: str) -> None:
        super().__init__(RejectionReason.RESTRICTED, message)


# ---------------------------------------------------------------------------
# Notification layer
# ---------------------------------------------------------------------------


class NotificationError(AquamarketError):
    """Raised when an audit or notification write fails.

    Never escapes the emitters: :mod:`aquamarket.notifiers.dispatcher` logs
    and swallows it so a failed side effect cannot fail a transition.
    """
