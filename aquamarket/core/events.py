"""Structured log event name constants for Aquamarket.

Every key state change emits a log record with an ``event`` field (passed
via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces as ``extra.event``, which makes it easy to query for, say, every
restriction change in a given day.

Usage example::

    import logging
    from aquamarket.core import events

    logger = logging.getLogger(__name__)

    logger.info("Listing paused", extra={"event": events.LISTING_TRANSITION})
"""

from __future__ import annotations

__all__ = [
    # Listing lifecycle
    "LISTING_CREATED",
    "LISTING_EDITED",
    "LISTING_TRANSITION",
    "LISTING_TRANSITION_REJECTED",
    "LISTING_RELISTED",
    "LISTING_CONFLICT",
    # Overlay / featuring
    "RESTRICTIONS_UPDATED",
    "FEATURING_UPDATED",
    # Sweep
    "SWEEP_EXPIRED",
    # Side channel
    "AUDIT_WRITE_FAILED",
    "NOTIFY_WRITE_FAILED",
    "NOTIFY_SKIPPED_SELF",
    # Settings
    "SITE_SETTINGS_UPDATED",
    # HTTP
    "REQUEST_ERROR",
]

# ---------------------------------------------------------------------------
# Listing lifecycle
# ---------------------------------------------------------------------------

#: A new listing row was inserted (create or the new half of a relist).
LISTING_CREATED: str = "LISTING_CREATED"

#: Owner content edit was persisted.
LISTING_EDITED: str = "LISTING_EDITED"

#: A status change was persisted (owner, admin or approval path).
LISTING_TRANSITION: str = "LISTING_TRANSITION"

#: The lifecycle engine refused a requested transition.
LISTING_TRANSITION_REJECTED: str = "LISTING_TRANSITION_REJECTED"

#: A resolved listing was archived and copied into a fresh paused listing.
LISTING_RELISTED: str = "LISTING_RELISTED"

#: A conditional update lost against a concurrent writer.
LISTING_CONFLICT: str = "LISTING_CONFLICT"

# ---------------------------------------------------------------------------
# Overlay / featuring
# ---------------------------------------------------------------------------

#: Admin overwrote the restriction overlay.
RESTRICTIONS_UPDATED: str = "RESTRICTIONS_UPDATED"

#: Featuring was set or cleared.
FEATURING_UPDATED: str = "FEATURING_UPDATED"

# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

#: The expiry sweep moved at least one listing into ``expired``.
SWEEP_EXPIRED: str = "SWEEP_EXPIRED"

# ---------------------------------------------------------------------------
# Side channel
# ---------------------------------------------------------------------------

#: An audit-log write raised; swallowed.
AUDIT_WRITE_FAILED: str = "AUDIT_WRITE_FAILED"

#: A notification write raised; swallowed.
NOTIFY_WRITE_FAILED: str = "NOTIFY_WRITE_FAILED"

#: Notification not written because the actor is the recipient.
NOTIFY_SKIPPED_SELF: str = "NOTIFY_SKIPPED_SELF"

# ---------------------------------------------------------------------------
# Settings / HTTP
# ---------------------------------------------------------------------------

#: Superadmin changed the runtime site settings.
SITE_SETTINGS_UPDATED: str = "SITE_SETTINGS_UPDATED"

#: A request ended in a mapped client error.
REQUEST_ERROR: str = "REQUEST_ERROR"
