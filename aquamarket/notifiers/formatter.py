"""Owner-facing notification copy.

Pure functions that turn a lifecycle change into the ``(title, body)`` pair
stored in the ``notifications`` table.  The UI already renders the raw
status as a pill, so the copy stays short and friendly.

Typical usage::

    from aquamarket.notifiers.formatter import listing_status_body, listing_status_title, with_listing_title

    title = with_listing_title(listing_status_title(ListingStatus.PAUSED), listing.content.title)
    body = listing_status_body(ListingStatus.ACTIVE, ListingStatus.PAUSED, by_admin=True, reason=None)
"""

from __future__ import annotations

from typing import Final

from aquamarket.core.models import ListingStatus

__all__ = [
    "KIND_STATUS_CHANGED",
    "KIND_FEATURED_CHANGED",
    "KIND_APPROVED",
    "KIND_REJECTED",
    "listing_status_title",
    "listing_status_body",
    "featured_title",
    "featured_body",
    "approved_body",
    "rejected_body",
    "with_listing_title",
]

KIND_STATUS_CHANGED: Final[str] = "listing_status_changed"
KIND_FEATURED_CHANGED: Final[str] = "listing_featured_changed"
KIND_APPROVED: Final[str] = "listing_approved"
KIND_REJECTED: Final[str] = "listing_rejected"

_FALLBACK_TITLE: Final[str] = "your listing"

_STATUS_TITLES: Final[dict[ListingStatus, str]] = {
    ListingStatus.ACTIVE: "Listing active",
    ListingStatus.PAUSED: "Listing paused",
    ListingStatus.SOLD: "Listing sold",
    ListingStatus.CLOSED: "Listing closed",
    ListingStatus.EXPIRED: "Listing expired",
    ListingStatus.DELETED: "Listing deleted",
    ListingStatus.PENDING: "Listing pending",
    ListingStatus.DRAFT: "Listing draft",
}


def listing_status_title(status: ListingStatus) -> str:
    return _STATUS_TITLES.get(status, "Listing updated")


def listing_status_body(
    previous: ListingStatus | None,
    current: ListingStatus,
    *,
    by_admin: bool = True,
    reason: str | None = None,
) -> str:
    """Sentence describing the move from *previous* to *current*.

    Args:
        previous: Status before the change, if known.
        current: Status after the change.
        by_admin: ``False`` when the system (the expiry sweep) made the change.
        reason: Optional admin reason appended on its own paragraph.
    """
    suffix = " by an admin" if by_admin else ""

    if current is ListingStatus.DELETED:
        base = f"Your listing was deleted{suffix}."
    elif current is ListingStatus.PAUSED:
        base = f"Your listing was paused{suffix}."
    elif current is ListingStatus.ACTIVE:
        if previous in (ListingStatus.PAUSED, ListingStatus.DELETED, ListingStatus.EXPIRED):
            base = "Your listing was restored and is now live."
        elif previous is ListingStatus.PENDING:
            base = approved_body()
        else:
            base = "Your listing is now live."
    elif current is ListingStatus.SOLD:
        base = f"Your listing was marked as sold{suffix}."
    elif current is ListingStatus.CLOSED:
        base = f"Your listing was closed{suffix}."
    elif current is ListingStatus.EXPIRED:
        base = "Your listing was marked as expired by an admin." if by_admin else "Your listing has expired."
    elif current is ListingStatus.PENDING:
        base = "Your listing is pending review."
    else:
        base = f"Your listing was moved back to draft{suffix}."

    reason = reason.strip() if reason else None
    if not reason:
        return base
    return f"{base}\n\nReason: {reason}"


def featured_title(enabled: bool) -> str:
    return "Featured enabled" if enabled else "Featured removed"


def featured_body(enabled: bool) -> str:
    return f"{featured_title(enabled)}."


def approved_body() -> str:
    return "Your listing was approved and is now live."


def rejected_body(note: str | None = None) -> str:
    note = note.strip() if note else None
    if not note:
        return "Your listing was rejected by an admin."
    return f"Your listing was rejected by an admin.\n\nNote: {note}"


def with_listing_title(prefix: str, title: str | None) -> str:
    """Join a notification prefix with the listing title.

    >>> with_listing_title("Listing paused", "Neon tetras x10")
    'Listing paused — Neon tetras x10'
    """
    title = (title or "").strip() or _FALLBACK_TITLE
    return f"{prefix} — {title}"
