"""Featuring scheduler.

Featuring is a timer layered on top of the lifecycle status: a listing is
*publicly featured* while ``featured`` is set and ``now`` lies in the window
``[now, featured_until)``.  The ``featured`` boolean is never swept when the
window elapses, so every reader must apply the window itself, in Python via
:func:`is_featured_now` or in SQL via :data:`FEATURED_SQL`.

Rows written before featuring had a timer may carry ``featured=1`` with a
``NULL`` ``featured_until``.  Readers treat those as featured until an admin
clears them; :func:`set_featured` never writes that shape.

Typical usage::

    from aquamarket.lifecycle.featuring import set_featured

    patch = set_featured(listing, now + timedelta(days=7), actor, now=now, max_days=365)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from aquamarket.core.actor import Actor
from aquamarket.core.exceptions import InvalidRequestError, RejectionReason, TransitionRejectedError
from aquamarket.core.models import Featuring, Listing, ListingPatch, ListingStatus
from aquamarket.lifecycle.engine import ensure_not_terminal
from aquamarket.lifecycle.restrictions import OwnerAction, ensure_owner_allowed, with_featuring_blocked

__all__ = ["set_featured", "is_featured_now", "FEATURED_SQL"]

logger = logging.getLogger(__name__)

#: SQL predicate for "publicly featured at ``?``" (bind ``now`` as epoch ms).
FEATURED_SQL = "(featured = 1 AND (featured_until IS NULL OR featured_until > ?))"


def is_featured_now(listing: Listing, now: datetime) -> bool:
    """``True`` if *listing* is inside its featuring window at *now*."""
    return listing.featuring.is_active(now)


def set_featured(
    listing: Listing,
    until: datetime | None,
    actor: Actor,
    *,
    now: datetime,
    max_days: int,
) -> ListingPatch:
    """Feature *listing* until *until*, or un-feature it when *until* is ``None``.

    Owners
        may only feature ``active`` listings, for a window ending in the
        future and at most *max_days* ahead, and are refused outright while
        ``block_featuring`` is set.
    Admins
        may set any future instant on any listing, with no upper bound.  An
        admin un-feature also sets ``block_featuring`` so the owner cannot
        quietly re-feature.

    Raises:
        TransitionRejectedError: Owner request on a deleted/expired/non-active
            listing, or a system actor.
        RestrictedError: Owner request while ``block_featuring`` is set.
        InvalidRequestError: Window not in the future, or an owner window
            beyond *max_days*.
    """
    if actor.is_system:
        raise TransitionRejectedError(RejectionReason.NOT_PERMITTED, "The system cannot change featuring")

    if actor.is_admin:
        if until is None:
            return ListingPatch(
                featuring=Featuring.off(),
                overlay=with_featuring_blocked(listing.overlay, actor, now),
            )
        if until <= now:
            raise InvalidRequestError("featuredUntil must be in the future")
        return ListingPatch(featuring=Featuring.until(until))

    ensure_not_terminal(listing)
    if until is not None and listing.status is not ListingStatus.ACTIVE:
        raise TransitionRejectedError(
            RejectionReason.INVALID_TRANSITION, "Only active listings can be featured"
        )
    ensure_owner_allowed(listing.overlay, OwnerAction.FEATURING, actor)

    if until is None:
        return ListingPatch(featuring=Featuring.off())
    if until <= now:
        raise InvalidRequestError("featuredUntil must be in the future")
    if until > now + timedelta(days=max_days):
        raise InvalidRequestError(f"featuredUntil must be within {max_days} days")
    return ListingPatch(featuring=Featuring.until(until))
