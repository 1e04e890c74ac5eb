"""Listing lifecycle engine.

Pure decision logic: given a listing, a requested status and an
:class:`~aquamarket.core.actor.Actor`, :func:`transition` returns the
:class:`~aquamarket.core.models.ListingPatch` to persist or raises
:class:`~aquamarket.core.exceptions.TransitionRejectedError` carrying a
machine-readable :class:`~aquamarket.core.exceptions.RejectionReason` and a
message fit for the owner.  Nothing here touches storage or the clock; the
caller passes ``now``.

The function is total over ``(status, requested, actor-role)``: every
combination either yields a patch or an explicit rejection.  The only empty
(no-op) patches are idempotent re-entries into a terminal state
(``deleted → deleted`` for everyone, ``expired → expired`` for admins).

Edge summary
------------
Owner
    ``draft → active|pending`` (publish), ``active ↔ paused``,
    ``active|paused|pending → sold|closed`` (resolve), ``* → deleted``.
Admin
    Any status, with restriction-overlay side effects for ``paused`` and
    ``active`` (see :mod:`aquamarket.lifecycle.restrictions`).
System
    ``* → expired`` (see :mod:`aquamarket.lifecycle.sweeper`) and
    ``* → deleted``.

Relist is not a transition: :func:`plan_relist` archives the resolved
listing and builds a fresh paused copy.

Typical usage::

    from aquamarket.lifecycle.engine import transition

    patch = transition(listing, ListingStatus.PAUSED, Actor.owner(7), now=now)
    updated = await repo.apply_patch(listing, patch, now=now)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, NoReturn

from aquamarket.core.actor import Actor, ActorRole
from aquamarket.core.exceptions import ForbiddenError, RejectionReason, TransitionRejectedError
from aquamarket.core.models import (
    PUBLIC_STATUSES,
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
    resolved_status_for,
)
from aquamarket.lifecycle.restrictions import (
    OwnerAction,
    ensure_owner_allowed,
    overlay_for_admin_status,
)

__all__ = [
    "transition",
    "approve",
    "reject",
    "plan_relist",
    "check_owner_edit",
    "create_listing",
    "initial_status",
    "is_publicly_visible",
    "ensure_not_terminal",
]

logger = logging.getLogger(__name__)

_ACTIVE = ListingStatus.ACTIVE
_PAUSED = ListingStatus.PAUSED
_PENDING = ListingStatus.PENDING
_DRAFT = ListingStatus.DRAFT
_DELETED = ListingStatus.DELETED
_EXPIRED = ListingStatus.EXPIRED
_LIVE_STATUSES = frozenset({_DRAFT, _PENDING, _ACTIVE, _PAUSED})


def _reject(reason: RejectionReason, message: str) -> NoReturn:
    raise TransitionRejectedError.for_reason(reason, message)


def ensure_not_terminal(listing: Listing) -> None:
    """Reject any change to a ``deleted`` or ``expired`` listing."""
    if listing.status is _DELETED:
        _reject(RejectionReason.ALREADY_DELETED, "Listing is deleted")
    if listing.status is _EXPIRED:
        _reject(RejectionReason.ALREADY_EXPIRED, "Listing is expired")


def _resolved_noun(kind: ListingKind) -> str:
    return "sold listings" if kind is ListingKind.SALE else "closed wanted posts"


# ---------------------------------------------------------------------------
# Shared patch builders
# ---------------------------------------------------------------------------


def _activation(listing: Listing, now: datetime) -> dict[str, Any]:
    changes: dict[str, Any] = {"status": _ACTIVE}
    if listing.published_at is None:
        changes["published_at"] = now
    return changes


def _deletion(listing: Listing, now: datetime) -> ListingPatch:
    if listing.status is _DELETED:
        return ListingPatch()
    return ListingPatch(status=_DELETED, deleted_at=listing.deleted_at or now)


# ---------------------------------------------------------------------------
# Owner tier
# ---------------------------------------------------------------------------


def _owner_transition(
    listing: Listing,
    requested: ListingStatus,
    actor: Actor,
    now: datetime,
    require_approval: bool,
) -> ListingPatch:
    current = listing.status

    if requested is _DELETED:
        return _deletion(listing, now)

    ensure_not_terminal(listing)

    if requested is _EXPIRED:
        _reject(RejectionReason.NOT_PERMITTED, "Listings expire automatically")

    if requested is _DRAFT:
        _reject(RejectionReason.INVALID_TRANSITION, "Published listings cannot be moved back to draft")

    if requested in (_ACTIVE, _PENDING):
        if current is _DRAFT:
            ensure_owner_allowed(listing.overlay, OwnerAction.STATUS_CHANGE, actor)
            if require_approval:
                return ListingPatch(status=_PENDING)
            return ListingPatch(**_activation(listing, now))
        if current.is_resolved:
            _reject(RejectionReason.ALREADY_RESOLVED, "Resolved listings cannot be resumed")
        if current is _PAUSED and requested is _ACTIVE:
            ensure_owner_allowed(listing.overlay, OwnerAction.PAUSE_RESUME, actor)
            return ListingPatch(**_activation(listing, now))
        if requested is _PENDING:
            _reject(RejectionReason.INVALID_TRANSITION, "Only draft listings can be submitted for review")
        _reject(RejectionReason.INVALID_TRANSITION, "Only paused listings can be resumed")

    if requested is _PAUSED:
        if current.is_resolved:
            _reject(RejectionReason.ALREADY_RESOLVED, "Resolved listings cannot be paused")
        if current is _DRAFT:
            _reject(RejectionReason.DRAFT_MUST_PUBLISH_FIRST, "Draft listings must be published first")
        if current is _PAUSED:
            _reject(RejectionReason.INVALID_TRANSITION, "Listing is already paused")
        if current is _PENDING:
            _reject(RejectionReason.INVALID_TRANSITION, "Listings awaiting review cannot be paused")
        ensure_owner_allowed(listing.overlay, OwnerAction.PAUSE_RESUME, actor)
        return ListingPatch(status=_PAUSED)

    # sold / closed
    if requested is not resolved_status_for(listing.kind):
        _reject(
            RejectionReason.INVALID_TRANSITION,
            f"{listing.kind.value.capitalize()} listings cannot be marked {requested.value}",
        )
    if current.is_resolved:
        _reject(RejectionReason.ALREADY_RESOLVED, "Listing is already resolved")
    if current is _DRAFT:
        _reject(RejectionReason.DRAFT_MUST_PUBLISH_FIRST, "Draft listings must be published first")
    ensure_owner_allowed(listing.overlay, OwnerAction.STATUS_CHANGE, actor)
    return ListingPatch(status=requested, resolved_at=now)


# ---------------------------------------------------------------------------
# Admin tier
# ---------------------------------------------------------------------------


def _admin_set_status(
    listing: Listing,
    requested: ListingStatus,
    actor: Actor,
    now: datetime,
    ttl_days: int | None,
) -> ListingPatch:
    current = listing.status

    if requested is current and requested in (_DELETED, _EXPIRED):
        return ListingPatch()
    if requested.is_resolved and requested is not resolved_status_for(listing.kind):
        _reject(
            RejectionReason.INVALID_TRANSITION,
            f"{listing.kind.value.capitalize()} listings cannot be marked {requested.value}",
        )

    changes: dict[str, Any] = {"status": requested}
    if requested is _ACTIVE:
        changes.update(_activation(listing, now))
    elif requested is _DELETED:
        changes["deleted_at"] = listing.deleted_at or now
    elif requested.is_resolved and not current.is_resolved:
        changes["resolved_at"] = now

    if (
        ttl_days is not None
        and requested in _LIVE_STATUSES
        and listing.expires_at is not None
        and listing.expires_at <= now
    ):
        # A lapsed listing moved back to a live status gets a fresh expiry.
        changes["expires_at"] = now + timedelta(days=ttl_days)

    overlay = overlay_for_admin_status(listing.overlay, requested, actor, now)
    if overlay is not None:
        changes["overlay"] = overlay
    return ListingPatch(**changes)


# ---------------------------------------------------------------------------
# System tier
# ---------------------------------------------------------------------------


def _system_transition(listing: Listing, requested: ListingStatus, now: datetime) -> ListingPatch:
    if requested is _DELETED:
        return _deletion(listing, now)
    if requested is not _EXPIRED:
        _reject(RejectionReason.NOT_PERMITTED, "The system can only expire or delete listings")
    ensure_not_terminal(listing)
    return ListingPatch(status=_EXPIRED)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def transition(
    listing: Listing,
    requested: ListingStatus,
    actor: Actor,
    *,
    now: datetime,
    require_approval: bool = False,
    ttl_days: int | None = None,
) -> ListingPatch:
    """Decide whether *actor* may move *listing* to *requested*.

    Args:
        listing: Current listing state (already swept).
        requested: Target status.
        actor: Tier the decision is evaluated for.
        now: Current instant, used for ``published_at`` / ``resolved_at`` /
            ``deleted_at`` and overlay stamps.
        require_approval: Site setting; owner publishes go to ``pending``
            instead of ``active`` when set.
        ttl_days: Site listing lifetime.  When given, an admin moving a
            lapsed listing back to a live status also renews ``expires_at``.

    Returns:
        The patch to persist.  An empty patch means the request was an
        idempotent no-op and nothing should be written.

    Raises:
        TransitionRejectedError: The edge is not legal for this actor; the
            ``reason`` attribute tells which rule refused it.
        RestrictedError: The edge is legal but the overlay blocks it for an
            owner.
    """
    if actor.role is ActorRole.ADMIN:
        patch = _admin_set_status(listing, requested, actor, now, ttl_days)
    elif actor.role is ActorRole.SYSTEM:
        patch = _system_transition(listing, requested, now)
    else:
        patch = _owner_transition(listing, requested, actor, now, require_approval)
    logger.debug(
        "transition %s: %s -> %s by %s => %s",
        listing.id,
        listing.status.value,
        requested.value,
        actor,
        "noop" if patch.is_noop else sorted(patch.model_fields_set),
    )
    return patch


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")


def approve(listing: Listing, actor: Actor, *, now: datetime) -> ListingPatch:
    """Admin approval: ``pending → active``.  Does not touch the overlay."""
    _require_admin(actor)
    if listing.status is not _PENDING:
        _reject(RejectionReason.INVALID_TRANSITION, "Only pending listings can be approved")
    return ListingPatch(**_activation(listing, now))


def reject(listing: Listing, actor: Actor, *, now: datetime) -> ListingPatch:
    """Admin rejection: ``pending → deleted``."""
    _require_admin(actor)
    if listing.status is not _PENDING:
        _reject(RejectionReason.INVALID_TRANSITION, "Only pending listings can be rejected")
    return _deletion(listing, now)


def check_owner_edit(listing: Listing, actor: Actor) -> None:
    """Raise unless *actor* may change the content of *listing*.

    Resolved listings are history and cannot be edited; relist them instead.
    """
    if actor.is_system:
        _reject(RejectionReason.NOT_PERMITTED, "The system cannot edit listings")
    ensure_not_terminal(listing)
    if listing.status.is_resolved:
        _reject(RejectionReason.ALREADY_RESOLVED, "Resolved listings cannot be edited")
    ensure_owner_allowed(listing.overlay, OwnerAction.EDIT, actor)


def plan_relist(
    listing: Listing,
    actor: Actor,
    *,
    now: datetime,
    ttl_days: int,
    new_id: str,
) -> tuple[ListingPatch, Listing]:
    """Plan the archive-and-copy of a resolved listing.

    Returns:
        ``(archive_patch, fresh_listing)``: the patch that moves the original
        to ``deleted`` and the new paused listing carrying the same content
        with a fresh id, expiry, featuring, overlay and view count.  Both
        must be persisted in one atomic unit.

    Raises:
        TransitionRejectedError: ``NOT_RESOLVED`` unless the listing is
            ``sold``/``closed``; terminal states first.
        RestrictedError: ``block_status_changes`` is set for an owner.
    """
    if actor.is_system:
        _reject(RejectionReason.NOT_PERMITTED, "The system cannot relist listings")
    ensure_not_terminal(listing)
    if not listing.status.is_resolved:
        _reject(RejectionReason.NOT_RESOLVED, f"Only {_resolved_noun(listing.kind)} can be relisted")
    ensure_owner_allowed(listing.overlay, OwnerAction.STATUS_CHANGE, actor)

    archive = _deletion(listing, now)
    fresh = Listing(
        id=new_id,
        user_id=listing.user_id,
        kind=listing.kind,
        content=listing.content,
        status=_PAUSED,
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(days=ttl_days),
    )
    return archive, fresh


def initial_status(*, as_draft: bool, require_approval: bool) -> ListingStatus:
    """Status of a newly created listing."""
    if as_draft:
        return _DRAFT
    return _PENDING if require_approval else _ACTIVE


def create_listing(
    *,
    listing_id: str,
    user_id: int,
    kind: ListingKind,
    content: ListingContent,
    now: datetime,
    ttl_days: int,
    require_approval: bool,
    as_draft: bool = False,
) -> Listing:
    """Build a new listing with its initial lifecycle fields."""
    status = initial_status(as_draft=as_draft, require_approval=require_approval)
    return Listing(
        id=listing_id,
        user_id=user_id,
        kind=kind,
        content=content,
        status=status,
        created_at=now,
        updated_at=now,
        published_at=now if status is _ACTIVE else None,
        expires_at=now + timedelta(days=ttl_days),
    )


def is_publicly_visible(listing: Listing) -> bool:
    """``True`` if non-owners may open the listing's detail page.

    Browseable statuses plus sold sale listings, which stay visible as
    history.
    """
    if listing.status in PUBLIC_STATUSES:
        return True
    return listing.kind is ListingKind.SALE and listing.status is ListingStatus.SOLD
