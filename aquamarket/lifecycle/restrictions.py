"""Restriction overlay manager.

The overlay is four independent admin-controlled blocks plus a reason,
stored on the listing row next to (not inside) the lifecycle status:

============================  ==================================================
Block                         Owner actions it refuses
============================  ==================================================
``block_edit``                content edits
``block_pause_resume``        pause, resume
``block_status_changes``      publish, mark sold/closed, relist
``block_featuring``           setting or clearing featuring
============================  ==================================================

Only admins write the overlay, either directly (:func:`set_restrictions`,
full overwrite) or as a side effect of an admin status change
(:func:`overlay_for_admin_status`) or an admin un-feature
(:func:`with_featuring_blocked`).  Owners see it read-only.  Admin and system
actors are never blocked by it.

Typical usage::

    from aquamarket.lifecycle.restrictions import OwnerAction, ensure_owner_allowed

    ensure_owner_allowed(listing.overlay, OwnerAction.PAUSE_RESUME, actor)
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from aquamarket.core.actor import Actor, ActorRole
from aquamarket.core.exceptions import ForbiddenError, RestrictedError
from aquamarket.core.models import (
    REASON_MAX_CHARS,
    Listing,
    ListingPatch,
    ListingStatus,
    RestrictionOverlay,
)

__all__ = [
    "OwnerAction",
    "RestrictionRequest",
    "ensure_owner_allowed",
    "set_restrictions",
    "overlay_for_admin_status",
    "with_featuring_blocked",
    "owner_view",
    "RESTRICTION_FILTERS",
]

logger = logging.getLogger(__name__)


class OwnerAction(StrEnum):
    EDIT = "edit"
    PAUSE_RESUME = "pause_resume"
    STATUS_CHANGE = "status_change"
    FEATURING = "featuring"


_BLOCKED_MESSAGES: dict[OwnerAction, str] = {
    OwnerAction.EDIT: "Editing this listing has been restricted by an admin",
    OwnerAction.PAUSE_RESUME: "Pausing and resuming this listing has been restricted by an admin",
    OwnerAction.STATUS_CHANGE: "Status changes on this listing have been restricted by an admin",
    OwnerAction.FEATURING: "Featuring this listing has been restricted by an admin",
}


def _is_blocked(overlay: RestrictionOverlay, action: OwnerAction) -> bool:
    if action is OwnerAction.EDIT:
        return overlay.block_edit
    if action is OwnerAction.PAUSE_RESUME:
        return overlay.block_pause_resume
    if action is OwnerAction.STATUS_CHANGE:
        return overlay.block_status_changes
    return overlay.block_featuring


def ensure_owner_allowed(overlay: RestrictionOverlay, action: OwnerAction, actor: Actor) -> None:
    """Raise :exc:`RestrictedError` if *overlay* blocks *action* for *actor*.

    Only owner-tier actors are gated; admins and the system bypass the
    overlay entirely.  The admin's reason, when present, is appended to the
    message the owner sees.
    """
    if actor.role is not ActorRole.OWNER or not _is_blocked(overlay, action):
        return
    message = _BLOCKED_MESSAGES[action]
    if overlay.reason:
        message = f"{message}: {overlay.reason}"
    raise RestrictedError(message)


# ---------------------------------------------------------------------------
# Admin writes
# ---------------------------------------------------------------------------


class RestrictionRequest(BaseModel):
    """The full desired overlay, as sent by the admin console.

    There is no merge with the previous overlay: omitted blocks are
    ``False``.
    """

    model_config = {"frozen": True}

    block_edit: bool = False
    block_pause_resume: bool = False
    block_status_changes: bool = False
    block_featuring: bool = False
    reason: str | None = Field(None, max_length=REASON_MAX_CHARS)


def set_restrictions(
    listing: Listing,
    request: RestrictionRequest,
    actor: Actor,
    *,
    now: datetime,
) -> ListingPatch:
    """Overwrite the overlay of *listing* with *request*.

    The reason is dropped when no block is set.  The overlay is stamped with
    *now* and the acting admin.

    Raises:
        ForbiddenError: If *actor* is not an admin.
    """
    if not actor.is_admin:
        raise ForbiddenError("Only admins can change listing restrictions")
    overlay = RestrictionOverlay(
        block_edit=request.block_edit,
        block_pause_resume=request.block_pause_resume,
        block_status_changes=request.block_status_changes,
        block_featuring=request.block_featuring,
        reason=request.reason,
        updated_at=now,
        actor_user_id=actor.user_id,
    )
    logger.debug("Overlay for %s set to %s by %s", listing.id, overlay, actor)
    return ListingPatch(overlay=overlay)


def overlay_for_admin_status(
    overlay: RestrictionOverlay,
    status: ListingStatus,
    actor: Actor,
    now: datetime,
) -> RestrictionOverlay | None:
    """Return the overlay an admin status change implies, or ``None`` to keep it.

    * ``paused`` blocks pause/resume and featuring and lifts the status-change
      block, so the owner cannot silently undo the admin's pause.  The edit
      block and the reason are kept.
    * ``active`` is a full reinstatement: every block and the reason go.
    """
    if status is ListingStatus.PAUSED:
        return RestrictionOverlay(
            block_edit=overlay.block_edit,
            block_pause_resume=True,
            block_status_changes=False,
            block_featuring=True,
            reason=overlay.reason,
            updated_at=now,
            actor_user_id=actor.user_id,
        )
    if status is ListingStatus.ACTIVE:
        return RestrictionOverlay(updated_at=now, actor_user_id=actor.user_id)
    return None


def with_featuring_blocked(
    overlay: RestrictionOverlay,
    actor: Actor,
    now: datetime,
) -> RestrictionOverlay:
    """Return *overlay* with ``block_featuring`` set and the stamp refreshed."""
    return RestrictionOverlay(
        block_edit=overlay.block_edit,
        block_pause_resume=overlay.block_pause_resume,
        block_status_changes=overlay.block_status_changes,
        block_featuring=True,
        reason=overlay.reason,
        updated_at=now,
        actor_user_id=actor.user_id,
    )



def owner_view(overlay: RestrictionOverlay) -> RestrictionOverlay:
    """The overlay as shown to the listing owner.

    Owners see which actions are blocked, the reason and when it was set,
    but not which admin set it.
    """
    return overlay.model_copy(update={"actor_user_id": None})


#: SQL predicates for the admin console's ``restrictions`` filter.
#: ``edit`` also matches pause/resume blocks: both stop the owner from
#: changing what buyers see.
RESTRICTION_FILTERS: dict[str, str] = {
    "any": (
        "(owner_block_edit = 1 OR owner_block_pause_resume = 1 "
        "OR owner_block_status_changes = 1 OR owner_block_featuring = 1)"
    ),
    "none": (
        "(owner_block_edit = 0 AND owner_block_pause_resume = 0 "
        "AND owner_block_status_changes = 0 AND owner_block_featuring = 0)"
    ),
    "edit": "(owner_block_edit = 1 OR owner_block_pause_resume = 1)",
    "status": "owner_block_status_changes = 1",
    "featuring": "owner_block_featuring = 1",
}
