"""Admin moderation operations.

:class:`ModerationService` backs ``/api/admin``: the listing console
(filters, set-status, set-featured, set-restrictions), the approval queue,
runtime site settings, the audit trail and an on-demand sweep.

Every successful admin write is audited with the action names the console
already filters on (``set_listing_status``, ``set_listing_featured``,
``set_listing_restrictions``, ``approve``, ``reject``,
``update_settings``), and the listing owner gets a notification for status,
featuring and approval changes.  Restriction changes are audited only.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from aquamarket.core import events
from aquamarket.core.actor import AuthContext
from aquamarket.core.exceptions import InvalidRequestError
from aquamarket.core.models import (
    AuditEntry,
    Listing,
    ListingKind,
    ListingStatus,
    SiteSettings,
)
from aquamarket.lifecycle.engine import approve, reject, transition
from aquamarket.lifecycle.featuring import set_featured
from aquamarket.lifecycle.restrictions import RestrictionRequest, set_restrictions
from aquamarket.lifecycle.sweeper import ExpiredListing
from aquamarket.notifiers.formatter import (
    KIND_APPROVED,
    KIND_FEATURED_CHANGED,
    KIND_REJECTED,
    KIND_STATUS_CHANGED,
    approved_body,
    featured_body,
    featured_title,
    listing_status_body,
    listing_status_title,
    rejected_body,
    with_listing_title,
)
from aquamarket.service.base import BaseService
from aquamarket.service.listings import log_featuring
from aquamarket.storage.mapping import overlay_to_wire, to_epoch_ms
from aquamarket.storage.repository import ListingPage

__all__ = ["ModerationService"]

logger = logging.getLogger(__name__)


class ModerationService(BaseService):
    """Admin console operations.  Every method checks the caller's role."""

    # ------------------------------------------------------------------
    # Console
    # ------------------------------------------------------------------

    async def list_listings(
        self,
        auth: AuthContext,
        *,
        status: ListingStatus | None = None,
        kind: ListingKind | None = None,
        restrictions: str | None = None,
        featured_only: bool = False,
        user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ListingPage:
        auth.require_admin()
        now = await self._begin()
        return await self._repo.list_admin(
            now=now,
            status=status,
            kind=kind,
            restrictions=restrictions,
            featured_only=featured_only,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )

    async def set_status(
        self,
        auth: AuthContext,
        listing_id: str,
        status: ListingStatus,
        *,
        reason: str | None = None,
    ) -> Listing:
        """Move a listing to any status, with the overlay side effects.

        ``paused`` blocks the owner's pause/resume and featuring; ``active``
        clears every block.  A lapsed ``expires_at`` is renewed when the
        target is a live status.
        """
        actor = auth.require_admin()
        now = await self._begin()
        listing = await self._load(listing_id)
        site = await self._settings()
        patch = self._decide(
            listing,
            actor,
            status.value,
            now,
            lambda: transition(listing, status, actor, now=now, ttl_days=site.listing_ttl_days),
        )
        if patch.is_noop:
            return listing
        updated = await self._persist(listing, patch, now=now)
        self._log_transition(listing.status, updated, actor)

        reason = reason.strip() if reason else None
        change = {"prevStatus": listing.status.value, "nextStatus": updated.status.value, "reason": reason}
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="set_listing_status",
            target_id=listing.id,
            meta=change,
            now=now,
        )
        self._emit_notice(
            updated,
            actor,
            kind=KIND_STATUS_CHANGED,
            title=with_listing_title(listing_status_title(updated.status), updated.content.title),
            body=listing_status_body(listing.status, updated.status, by_admin=True, reason=reason),
            meta=change,
            now=now,
        )
        return updated

    async def set_featured(self, auth: AuthContext, listing_id: str, until: datetime | None) -> Listing:
        """Superadmin featuring override; ``None`` un-features and blocks the owner."""
        actor = auth.require_admin(superadmin=True)
        now = await self._begin()
        listing = await self._load(listing_id)
        site = await self._settings()
        patch = self._decide(
            listing,
            actor,
            "featuring",
            now,
            lambda: set_featured(listing, until, actor, now=now, max_days=site.featured_max_days),
        )
        updated = await self._persist(listing, patch, now=now)
        log_featuring(updated, actor)

        change = {
            "prevFeaturedUntil": to_epoch_ms(listing.featuring.featured_until),
            "nextFeaturedUntil": to_epoch_ms(until),
        }
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="set_listing_featured",
            target_id=listing.id,
            meta=change,
            now=now,
        )
        enabled = until is not None
        self._emit_notice(
            updated,
            actor,
            kind=KIND_FEATURED_CHANGED,
            title=with_listing_title(featured_title(enabled), updated.content.title),
            body=featured_body(enabled),
            meta=change,
            now=now,
        )
        return updated

    async def set_restrictions(
        self,
        auth: AuthContext,
        listing_id: str,
        request: RestrictionRequest,
    ) -> Listing:
        """Overwrite the restriction overlay (no merge with the previous one)."""
        actor = auth.require_admin()
        now = await self._begin()
        listing = await self._load(listing_id)
        patch = set_restrictions(listing, request, actor, now=now)
        updated = await self._persist(listing, patch, now=now)
        logger.info(
            "Restrictions on %s set by %s (any blocked: %s)",
            listing.id,
            actor,
            updated.overlay.any_blocked,
            extra={"event": events.RESTRICTIONS_UPDATED},
        )
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="set_listing_restrictions",
            target_id=listing.id,
            meta={
                "prev": _overlay_summary(listing),
                "next": _overlay_summary(updated),
            },
            now=now,
        )
        return updated

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    async def approvals(self, auth: AuthContext, *, limit: int = 50, offset: int = 0) -> ListingPage:
        auth.require_admin()
        await self._begin()
        return await self._repo.list_pending(limit=limit, offset=offset)

    async def approve(self, auth: AuthContext, listing_id: str) -> Listing:
        actor = auth.require_admin()
        now = await self._begin()
        listing = await self._load(listing_id)
        patch = self._decide(listing, actor, "approve", now, lambda: approve(listing, actor, now=now))
        updated = await self._persist(listing, patch, now=now)
        self._log_transition(listing.status, updated, actor)
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="approve",
            target_kind=listing.kind.value,
            target_id=listing.id,
            meta={"prevStatus": listing.status.value},
            now=now,
        )
        self._emit_notice(
            updated,
            actor,
            kind=KIND_APPROVED,
            title=with_listing_title("Listing approved", updated.content.title),
            body=approved_body(),
            meta={},
            now=now,
        )
        return updated

    async def reject(self, auth: AuthContext, listing_id: str, *, note: str | None = None) -> Listing:
        actor = auth.require_admin()
        now = await self._begin()
        listing = await self._load(listing_id)
        patch = self._decide(listing, actor, "reject", now, lambda: reject(listing, actor, now=now))
        updated = await self._persist(listing, patch, now=now)
        self._log_transition(listing.status, updated, actor)
        note = note.strip() if note else None
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="reject",
            target_kind=listing.kind.value,
            target_id=listing.id,
            meta={"prevStatus": listing.status.value, "note": note},
            now=now,
        )
        self._emit_notice(
            updated,
            actor,
            kind=KIND_REJECTED,
            title=with_listing_title("Listing rejected", updated.content.title),
            body=rejected_body(note),
            meta={"note": note},
            now=now,
        )
        return updated

    # ------------------------------------------------------------------
    # Settings / audit / sweep
    # ------------------------------------------------------------------

    async def get_settings(self, auth: AuthContext) -> SiteSettings:
        auth.require_admin(superadmin=True)
        return await self._settings()

    async def update_settings(self, auth: AuthContext, changes: dict[str, Any]) -> SiteSettings:
        """Apply a partial update to the runtime site settings.

        Raises:
            InvalidRequestError: Unknown key or out-of-range value.
        """
        actor = auth.require_admin(superadmin=True)
        current = await self._settings()
        unknown = set(changes) - set(SiteSettings.model_fields)
        if unknown:
            raise InvalidRequestError(f"Unknown settings: {', '.join(sorted(unknown))}")
        try:
            updated = SiteSettings(**{**current.model_dump(), **changes})
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid settings: {exc.errors()[0]['msg']}") from exc

        now = self._clock.now()
        await self._site_settings.update(updated, actor_user_id=actor.user_id, now=now)
        logger.info(
            "Site settings updated by %s: %s",
            actor,
            changes,
            extra={"event": events.SITE_SETTINGS_UPDATED},
        )
        self._emit_audit(
            actor_user_id=actor.user_id,
            action="update_settings",
            target_kind="settings",
            target_id="site",
            meta={"changes": changes},
            now=now,
        )
        return updated

    async def audit_log(
        self,
        auth: AuthContext,
        *,
        action: str | None = None,
        target_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEntry]:
        auth.require_admin()
        return await self._audit.list_recent(action=action, target_id=target_id, limit=limit, offset=offset)

    async def sweep(self, auth: AuthContext) -> list[ExpiredListing]:
        """Run the expiry sweep now and return what it expired."""
        auth.require_admin()
        return await self._sweeper.sweep(self._clock.now())


def _overlay_summary(listing: Listing) -> dict[str, Any]:
    wire = overlay_to_wire(listing.overlay)
    return {key: wire[key] for key in ("blockEdit", "blockPauseResume", "blockStatusChanges", "blockFeaturing", "reason")}
