"""Aquamarket core domain models.

This module defines the canonical :class:`Listing` aggregate and the value
objects layered on it:

* :class:`RestrictionOverlay`: admin-owned blocks on owner actions.
* :class:`Featuring`: the time-bounded "featured" promotion.
* :class:`LifecycleState`: ``status + overlay + featuring`` as one value.
* :class:`ListingPatch`: the set of lifecycle fields one decision changes.

Every model is **frozen**.  Lifecycle fields are only ever changed by
applying a :class:`ListingPatch` produced by :mod:`aquamarket.lifecycle`;
request handlers never poke fields directly.

Typical usage::

    from aquamarket.core.models import Listing, ListingContent, ListingKind

    listing = Listing(
        id="0f4c...",
        user_id=7,
        kind=ListingKind.SALE,
        content=ListingContent(
            title="Cherry shrimp colony",
            category=Category.SHRIMP,
            price_cents=2500,
            location="Leeds",
            description="20+ adults, mixed grade.",
            phone="07700900123",
        ),
        status=ListingStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = [
    "ListingKind",
    "ListingStatus",
    "Category",
    "Sex",
    "RESOLVED_STATUSES",
    "PUBLIC_STATUSES",
    "resolved_status_for",
    "RestrictionOverlay",
    "Featuring",
    "LifecycleState",
    "ListingContent",
    "Listing",
    "ListingPatch",
    "SiteSettings",
    "AuditEntry",
    "Notification",
]

logger = logging.getLogger(__name__)

#: Longest accepted restriction / status-change reason.
REASON_MAX_CHARS: Final[int] = 400

#: Most images a listing may reference.
MAX_IMAGES: Final[int] = 6

#: Upper bound for any price or budget (in cents).
MAX_PRICE_CENTS: Final[int] = 5_000_000

_BLOCK_FIELDS: Final = ("block_edit", "block_pause_resume", "block_status_changes", "block_featuring")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ListingKind(StrEnum):
    """Sale listing or "wanted" post.  Immutable after creation."""

    SALE = "sale"
    WANTED = "wanted"


class ListingStatus(StrEnum):
    """Single tagged lifecycle state.

    ``sold`` and ``closed`` are the resolved states of sale listings and
    wanted posts respectively; there is no separate resolution column.
    """

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    SOLD = "sold"
    CLOSED = "closed"
    EXPIRED = "expired"
    DELETED = "deleted"

    @property
    def is_resolved(self) -> bool:
        return self in RESOLVED_STATUSES


class Category(StrEnum):
    FISH = "Fish"
    SHRIMP = "Shrimp"
    SNAILS = "Snails"
    PLANTS = "Plants"
    EQUIPMENT = "Equipment"


class Sex(StrEnum):
    MALE = "Male"
    FEMALE = "Female"
    VARIOUS = "Various"
    UNKNOWN = "Unknown"


RESOLVED_STATUSES: frozenset[ListingStatus] = frozenset({ListingStatus.SOLD, ListingStatus.CLOSED})

#: Statuses that appear in public browse results.
PUBLIC_STATUSES: frozenset[ListingStatus] = frozenset({ListingStatus.ACTIVE, ListingStatus.PENDING})


def resolved_status_for(kind: ListingKind) -> ListingStatus:
    """Return the resolved status that applies to *kind* (``sold`` / ``closed``)."""
    return ListingStatus.SOLD if kind is ListingKind.SALE else ListingStatus.CLOSED


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Lifecycle value objects
# ---------------------------------------------------------------------------


class RestrictionOverlay(BaseModel):
    """Admin-imposed blocks on specific owner actions.

    Independent of :class:`ListingStatus`.  Invariant: when all four blocks
    are ``False`` the ``reason`` is ``None``; the validator normalises rather
    than rejects so a full-overwrite request can always be applied.

    Attributes:
        block_edit: Owner may not edit listing content.
        block_pause_resume: Owner may not pause or resume.
        block_status_changes: Owner may not publish, resolve or relist.
        block_featuring: Owner may not set or clear featuring.
        reason: Free-text explanation shown to the owner.
        updated_at: When an admin last changed the overlay.
        actor_user_id: Admin who last changed the overlay.
    """

    model_config = {"frozen": True}

    block_edit: bool = False
    block_pause_resume: bool = False
    block_status_changes: bool = False
    block_featuring: bool = False
    reason: str | None = Field(None, max_length=REASON_MAX_CHARS)
    updated_at: datetime | None = None
    actor_user_id: int | None = None

    @field_validator("reason", mode="before")
    @classmethod
    def _blank_reason_to_none(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("updated_at", mode="after")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @model_validator(mode="before")
    @classmethod
    def _reason_requires_block(cls, data: Any) -> Any:
        if isinstance(data, dict) and not any(data.get(name) for name in _BLOCK_FIELDS):
            data = {**data, "reason": None}
        return data

    @property
    def any_blocked(self) -> bool:
        return (
            self.block_edit
            or self.block_pause_resume
            or self.block_status_changes
            or self.block_featuring
        )


class Featuring(BaseModel):
    """The ``featured`` flag plus its ``featured_until`` instant.

    ``featured=True`` with ``featured_until=None`` is the *legacy* shape:
    readers treat it as "featured until an admin clears it", writers never
    produce it (use :meth:`until` / :meth:`off`).
    """

    model_config = {"frozen": True}

    featured: bool = False
    featured_until: datetime | None = None

    @field_validator("featured_until", mode="after")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @classmethod
    def until(cls, instant: datetime) -> Featuring:
        return cls(featured=True, featured_until=instant)

    @classmethod
    def off(cls) -> Featuring:
        return cls()

    @property
    def is_legacy(self) -> bool:
        return self.featured and self.featured_until is None

    def is_active(self, now: datetime) -> bool:
        """``True`` while *now* is inside the featuring window."""
        if not self.featured:
            return False
        return self.featured_until is None or self.featured_until > now


class LifecycleState(BaseModel):
    """Everything the lifecycle rules read, as one value."""

    model_config = {"frozen": True}

    status: ListingStatus
    overlay: RestrictionOverlay = Field(default_factory=RestrictionOverlay)
    featuring: Featuring = Field(default_factory=Featuring)


# ---------------------------------------------------------------------------
# Listing aggregate
# ---------------------------------------------------------------------------


class ListingContent(BaseModel):
    """Owner-editable content of a listing.

    Copied verbatim into the new listing on relist.  Sale listings carry
    ``price_cents``; wanted posts carry an optional ``budget_cents`` and a
    ``quantity``.
    """

    model_config = {"frozen": True}

    title: str = Field(..., min_length=3, max_length=80)
    category: Category
    species: str | None = Field(None, max_length=80)
    sex: Sex | None = None
    water_type: str | None = Field(None, max_length=40)
    age: str | None = Field(None, max_length=40)
    quantity: int = Field(1, ge=1, le=10_000)
    price_cents: int | None = Field(None, ge=0, le=MAX_PRICE_CENTS)
    budget_cents: int | None = Field(None, ge=0, le=MAX_PRICE_CENTS)
    location: str = Field(..., min_length=2, max_length=80)
    description: str = Field(..., min_length=1, max_length=1000)
    phone: str = Field(..., min_length=6, max_length=30)
    image_urls: tuple[str, ...] = Field(default=(), max_length=MAX_IMAGES)

    @field_validator("title", "location", "description", "phone", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("species", "water_type", "age", mode="before")
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class Listing(BaseModel):
    """A sale listing or wanted post, including its lifecycle state.

    Attributes:
        id: Opaque listing id (uuid4 hex).
        user_id: Owning user; ``None`` for historical unowned rows.
        kind: ``sale`` or ``wanted``.
        content: Owner-editable fields.
        status: Lifecycle status.
        created_at: Row creation instant.
        updated_at: Last write instant.
        published_at: First time the listing became ``active``; never cleared.
        expires_at: Instant after which the sweep marks the listing expired.
        resolved_at: When the listing became ``sold`` / ``closed``.
        deleted_at: First entry into ``deleted``; never cleared.
        featuring: Featured promotion state.
        overlay: Admin restriction overlay.
        views: Public non-owner detail reads.
        version: Optimistic concurrency token, bumped on every write.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    user_id: int | None = None
    kind: ListingKind
    content: ListingContent
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None = None
    expires_at: datetime | None = None
    resolved_at: datetime | None = None
    deleted_at: datetime | None = None
    featuring: Featuring = Field(default_factory=Featuring)
    overlay: RestrictionOverlay = Field(default_factory=RestrictionOverlay)
    views: int = Field(0, ge=0)
    version: int = Field(0, ge=0)

    @field_validator(
        "created_at",
        "updated_at",
        "published_at",
        "expires_at",
        "resolved_at",
        "deleted_at",
        mode="after",
    )
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @model_validator(mode="after")
    def _kind_rules(self) -> Listing:
        if self.kind is ListingKind.SALE and self.content.price_cents is None:
            raise ValueError("sale listings require price_cents")
        if self.status.is_resolved and self.status is not resolved_status_for(self.kind):
            raise ValueError(f"status {self.status.value!r} does not apply to {self.kind.value} listings")
        return self

    @property
    def lifecycle(self) -> LifecycleState:
        return LifecycleState(status=self.status, overlay=self.overlay, featuring=self.featuring)

    def is_owned_by(self, user_id: int | None) -> bool:
        return user_id is not None and self.user_id == user_id


class ListingPatch(BaseModel):
    """Lifecycle fields changed by one decision.

    Only the fields explicitly passed to the constructor are part of the
    patch (``model_fields_set``); an empty patch is the idempotent no-op.
    ``updated_at`` and ``version`` are stamped by :meth:`apply_to`, never
    carried here.
    """

    model_config = {"frozen": True}

    status: ListingStatus | None = None
    published_at: datetime | None = None
    resolved_at: datetime | None = None
    deleted_at: datetime | None = None
    expires_at: datetime | None = None
    featuring: Featuring | None = None
    overlay: RestrictionOverlay | None = None

    @property
    def is_noop(self) -> bool:
        return not self.model_fields_set

    def changes(self) -> dict[str, Any]:
        """Return ``{field: value}`` for every field set on this patch."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply_to(self, listing: Listing, *, now: datetime) -> Listing:
        """Return *listing* with this patch applied and the write stamped."""
        return listing.model_copy(
            update={**self.changes(), "updated_at": now, "version": listing.version + 1}
        )


# ---------------------------------------------------------------------------
# Site settings / side-channel records
# ---------------------------------------------------------------------------


class SiteSettings(BaseModel):
    """Runtime moderation settings editable by superadmins."""

    model_config = {"frozen": True}

    require_approval: bool = False
    listing_ttl_days: int = Field(30, ge=1, le=365)
    featured_max_days: int = Field(365, ge=1, le=3650)


class AuditEntry(BaseModel):
    """One row of the admin audit trail."""

    model_config = {"frozen": True}

    id: str
    actor_user_id: int | None
    action: str
    target_kind: str
    target_id: str
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class Notification(BaseModel):
    """One in-app notification addressed to a user."""

    model_config = {"frozen": True}

    id: str
    user_id: int
    kind: str
    title: str
    body: str
    meta: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime
