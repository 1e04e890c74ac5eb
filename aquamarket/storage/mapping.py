"""Translation between SQLite rows, domain models and the JSON wire shape.

Storage encodings
-----------------
* Booleans are ``INTEGER`` 0/1.
* ``featured_until`` is epoch **milliseconds** (``INTEGER``), the shape web
  clients already send and receive for it.
* Every other instant is fixed-width ISO-8601 UTC text,
  ``YYYY-MM-DDTHH:MM:SS.mmmZ``.  The fixed width makes SQL string comparison
  (``expires_at < ?``) chronological.

Wire shape
----------
camelCase keys; ``featuredUntil`` stays epoch ms, other instants are the ISO
strings above.  The restriction overlay is included only when the viewer is
the owner or an admin (``include_restrictions=True``).

Typical usage::

    from aquamarket.storage.mapping import row_to_listing, listing_to_wire

    listing = row_to_listing(row)
    body = listing_to_wire(listing, include_restrictions=is_owner)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from aquamarket.core.models import (
    AuditEntry,
    Featuring,
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
    Notification,
    RestrictionOverlay,
)
from aquamarket.lifecycle.restrictions import owner_view

__all__ = [
    "to_iso",
    "from_iso",
    "to_epoch_ms",
    "from_epoch_ms",
    "row_to_listing",
    "listing_to_row",
    "patch_to_columns",
    "content_to_columns",
    "listing_to_wire",
    "overlay_to_wire",
    "row_to_audit_entry",
    "audit_entry_to_wire",
    "row_to_notification",
    "notification_to_wire",
]

logger = logging.getLogger(__name__)

_EPOCH: Final[datetime] = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS: Final[timedelta] = timedelta(milliseconds=1)

# ---------------------------------------------------------------------------
# Scalar codecs
# ---------------------------------------------------------------------------


def to_iso(value: datetime | None) -> str | None:
    """Encode *value* as fixed-width ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC)."""
    if value is None:
        return None
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    return (value.astimezone(UTC) - _EPOCH) // _ONE_MS


def from_epoch_ms(value: int | None) -> datetime | None:
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=int(value))


# ---------------------------------------------------------------------------
# Listings: rows
# ---------------------------------------------------------------------------


def content_to_columns(content: ListingContent) -> dict[str, Any]:
    return {
        "title": content.title,
        "category": content.category.value,
        "species": content.species,
        "sex": content.sex.value if content.sex else None,
        "water_type": content.water_type,
        "age": content.age,
        "quantity": content.quantity,
        "price_cents": content.price_cents,
        "budget_cents": content.budget_cents,
        "location": content.location,
        "description": content.description,
        "phone": content.phone,
        "images_json": json.dumps(list(content.image_urls)),
    }


def _overlay_columns(overlay: RestrictionOverlay) -> dict[str, Any]:
    return {
        "owner_block_edit": int(overlay.block_edit),
        "owner_block_pause_resume": int(overlay.block_pause_resume),
        "owner_block_status_changes": int(overlay.block_status_changes),
        "owner_block_featuring": int(overlay.block_featuring),
        "owner_block_reason": overlay.reason,
        "owner_block_updated_at": to_iso(overlay.updated_at),
        "owner_block_actor_user_id": overlay.actor_user_id,
    }


def _featuring_columns(featuring: Featuring) -> dict[str, Any]:
    return {
        "featured": int(featuring.featured),
        "featured_until": to_epoch_ms(featuring.featured_until),
    }


_INSTANT_FIELDS: Final = ("published_at", "resolved_at", "deleted_at", "expires_at")


def patch_to_columns(patch: ListingPatch) -> dict[str, Any]:
    """Column values for the fields set on *patch* (not the write stamp)."""
    columns: dict[str, Any] = {}
    for name, value in patch.changes().items():
        if name == "status":
            columns["status"] = value.value
        elif name == "overlay":
            columns.update(_overlay_columns(value))
        elif name == "featuring":
            columns.update(_featuring_columns(value))
        elif name in _INSTANT_FIELDS:
            columns[name] = to_iso(value)
        else:  # pragma: no cover
            raise ValueError(f"Unmapped patch field {name!r}")
    return columns


def listing_to_row(listing: Listing) -> dict[str, Any]:
    """Every column of the ``listings`` table for *listing*."""
    return {
        "id": listing.id,
        "user_id": listing.user_id,
        "kind": listing.kind.value,
        **content_to_columns(listing.content),
        "status": listing.status.value,
        **_featuring_columns(listing.featuring),
        "views": listing.views,
        **_overlay_columns(listing.overlay),
        "published_at": to_iso(listing.published_at),
        "expires_at": to_iso(listing.expires_at),
        "resolved_at": to_iso(listing.resolved_at),
        "deleted_at": to_iso(listing.deleted_at),
        "created_at": to_iso(listing.created_at),
        "updated_at": to_iso(listing.updated_at),
        "version": listing.version,
    }


def row_to_listing(row: Mapping[str, Any]) -> Listing:
    """Build a :class:`Listing` from a ``listings`` row."""
    content = ListingContent(
        title=row["title"],
        category=row["category"],
        species=row["species"],
        sex=row["sex"],
        water_type=row["water_type"],
        age=row["age"],
        quantity=row["quantity"],
        price_cents=row["price_cents"],
        budget_cents=row["budget_cents"],
        location=row["location"],
        description=row["description"],
        phone=row["phone"],
        image_urls=tuple(json.loads(row["images_json"] or "[]")),
    )
    return Listing(
        id=row["id"],
        user_id=row["user_id"],
        kind=ListingKind(row["kind"]),
        content=content,
        status=ListingStatus(row["status"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        published_at=from_iso(row["published_at"]),
        expires_at=from_iso(row["expires_at"]),
        resolved_at=from_iso(row["resolved_at"]),
        deleted_at=from_iso(row["deleted_at"]),
        featuring=Featuring(
            featured=bool(row["featured"]),
            featured_until=from_epoch_ms(row["featured_until"]),
        ),
        overlay=RestrictionOverlay(
            block_edit=bool(row["owner_block_edit"]),
            block_pause_resume=bool(row["owner_block_pause_resume"]),
            block_status_changes=bool(row["owner_block_status_changes"]),
            block_featuring=bool(row["owner_block_featuring"]),
            reason=row["owner_block_reason"],
            updated_at=from_iso(row["owner_block_updated_at"]),
            actor_user_id=row["owner_block_actor_user_id"],
        ),
        views=row["views"],
        version=row["version"],
    )


# ---------------------------------------------------------------------------
# Listings: wire
# ---------------------------------------------------------------------------


def overlay_to_wire(overlay: RestrictionOverlay) -> dict[str, Any]:
    return {
        "blockEdit": overlay.block_edit,
        "blockPauseResume": overlay.block_pause_resume,
        "blockStatusChanges": overlay.block_status_changes,
        "blockFeaturing": overlay.block_featuring,
        "reason": overlay.reason,
        "updatedAt": to_iso(overlay.updated_at),
        "actorUserId": overlay.actor_user_id,
    }


def listing_to_wire(
    listing: Listing,
    *,
    include_restrictions: bool = False,
    admin_view: bool = False,
) -> dict[str, Any]:
    """Public JSON shape of *listing*.

    Args:
        include_restrictions: Add the ``restrictions`` block (owners, admins).
        admin_view: Show the full overlay stamp instead of the owner view.
    """
    content = listing.content
    body: dict[str, Any] = {
        "id": listing.id,
        "kind": listing.kind.value,
        "userId": listing.user_id,
        "title": content.title,
        "category": content.category.value,
        "species": content.species,
        "sex": content.sex.value if content.sex else None,
        "waterType": content.water_type,
        "age": content.age,
        "quantity": content.quantity,
        "location": content.location,
        "description": content.description,
        "phone": content.phone,
        "images": list(content.image_urls),
        "status": listing.status.value,
        "featured": listing.featuring.featured,
        "featuredUntil": to_epoch_ms(listing.featuring.featured_until),
        "views": listing.views,
        "publishedAt": to_iso(listing.published_at),
        "expiresAt": to_iso(listing.expires_at),
        "resolvedAt": to_iso(listing.resolved_at),
        "deletedAt": to_iso(listing.deleted_at),
        "createdAt": to_iso(listing.created_at),
        "updatedAt": to_iso(listing.updated_at),
        "version": listing.version,
    }
    if listing.kind is ListingKind.SALE:
        body["priceCents"] = content.price_cents
    else:
        body["budgetCents"] = content.budget_cents
    if include_restrictions:
        overlay = listing.overlay if admin_view else owner_view(listing.overlay)
        body["restrictions"] = overlay_to_wire(overlay)
    return body


# ---------------------------------------------------------------------------
# Side-channel records
# ---------------------------------------------------------------------------


def row_to_audit_entry(row: Mapping[str, Any]) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        actor_user_id=row["actor_user_id"],
        action=row["action"],
        target_kind=row["target_kind"],
        target_id=row["target_id"],
        meta=json.loads(row["meta_json"] or "{}"),
        created_at=from_iso(row["created_at"]),
    )


def audit_entry_to_wire(entry: AuditEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "actorUserId": entry.actor_user_id,
        "action": entry.action,
        "targetKind": entry.target_kind,
        "targetId": entry.target_id,
        "meta": entry.meta,
        "createdAt": to_iso(entry.created_at),
    }


def row_to_notification(row: Mapping[str, Any]) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        kind=row["kind"],
        title=row["title"],
        body=row["body"],
        meta=json.loads(row["meta_json"] or "{}"),
        is_read=bool(row["is_read"]),
        created_at=from_iso(row["created_at"]),
    )


def notification_to_wire(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "kind": notification.kind,
        "title": notification.title,
        "body": notification.body,
        "meta": notification.meta,
        "isRead": notification.is_read,
        "createdAt": to_iso(notification.created_at),
    }
