"""Owner and public listing operations.

:class:`ListingService` backs the ``/api/listings`` and ``/api/my`` routes:
create, browse, read (with view counting), content edits, the owner status
edges (publish, pause, resume, resolve, delete), relist and owner
featuring.  Each method takes the caller's
:class:`~aquamarket.core.actor.AuthContext` and returns domain models; the
HTTP layer does the wire mapping.

Typical usage::

    services = Services.build(db, settings)
    listing = await services.listings.create(auth, ListingKind.SALE, content)
    paused = await services.listings.pause(auth, listing.id)
"""

from __future__ import annotations

import logging
from datetime import datetime

from aquamarket.core import events
from aquamarket.core.actor import Actor, AuthContext
from aquamarket.core.exceptions import ListingNotFoundError
from aquamarket.core.ids import new_id
from aquamarket.core.models import (
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
    Notification,
    resolved_status_for,
)
from aquamarket.lifecycle.engine import (
    check_owner_edit,
    create_listing,
    is_publicly_visible,
    plan_relist,
    transition,
)
from aquamarket.lifecycle.featuring import set_featured
from aquamarket.service.base import BaseService
from aquamarket.storage.repository import ListingPage

__all__ = ["ListingService"]

logger = logging.getLogger(__name__)


class ListingService(BaseService):
    """Owner-side and public listing operations."""

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create(
        self,
        auth: AuthContext,
        kind: ListingKind,
        content: ListingContent,
        *,
        as_draft: bool = False,
    ) -> Listing:
        """Create a listing owned by the caller.

        The initial status is ``draft`` when *as_draft*, otherwise
        ``pending`` or ``active`` depending on the ``require_approval`` site
        setting.
        """
        user_id = auth.require_user()
        self._check_content(kind, content)
        now = await self._begin()
        site = await self._settings()
        listing = create_listing(
            listing_id=new_id(),
            user_id=user_id,
            kind=kind,
            content=content,
            now=now,
            ttl_days=site.listing_ttl_days,
            require_approval=site.require_approval,
            as_draft=as_draft,
        )
        await self._repo.insert(listing)
        logger.info(
            "Listing %s created by user %s as %s",
            listing.id,
            user_id,
            listing.status.value,
            extra={"event": events.LISTING_CREATED},
        )
        return listing

    async def get(self, auth: AuthContext, listing_id: str) -> Listing:
        """Detail read.

        Owners and admins see every status; anyone else gets
        ``ListingNotFoundError`` for a listing that is not publicly visible.
        Every read of a publicly visible listing by someone other than its
        owner counts one view.
        """
        await self._begin()
        listing = await self._load(listing_id)
        if listing.is_owned_by(auth.user_id):
            return listing
        if not is_publicly_visible(listing):
            if auth.is_admin or auth.is_superadmin:
                return listing
            raise ListingNotFoundError(listing_id)
        await self._repo.increment_views(listing.id)
        return listing.model_copy(update={"views": listing.views + 1})

    async def browse(
        self,
        *,
        kind: ListingKind | None = None,
        featured_only: bool = False,
        category: str | None = None,
        query: str | None = None,
        limit: int = 24,
        offset: int = 0,
    ) -> ListingPage:
        now = await self._begin()
        return await self._repo.list_public(
            now=now,
            kind=kind,
            featured_only=featured_only,
            category=category,
            query=query,
            limit=limit,
            offset=offset,
        )

    async def featured(self, *, kind: ListingKind | None = None, limit: int = 12) -> list[Listing]:
        """Listings inside their featuring window, latest window end first."""
        page = await self.browse(kind=kind, featured_only=True, limit=limit)
        return page.items

    async def list_mine(
        self,
        auth: AuthContext,
        *,
        kind: ListingKind | None = None,
        include_deleted: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> ListingPage:
        user_id = auth.require_user()
        await self._begin()
        return await self._repo.list_owned(
            user_id, kind=kind, include_deleted=include_deleted, limit=limit, offset=offset
        )

    async def notifications(self, auth: AuthContext, *, unread_only: bool = False) -> list[Notification]:
        return await self._notifier.list_for_user(auth.require_user(), unread_only=unread_only)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def edit(self, auth: AuthContext, listing_id: str, content: ListingContent) -> Listing:
        """Replace the listing's content.

        Raises:
            TransitionRejectedError: Deleted, expired or resolved listing.
            RestrictedError: ``block_edit`` is set.
        """
        now = await self._begin()
        listing = await self._load(listing_id)
        actor = self._owner_actor(listing, auth)
        self._check_content(listing.kind, content)

        def _check() -> ListingPatch:
            check_owner_edit(listing, actor)
            return ListingPatch()

        self._decide(listing, actor, "edit", now, _check)
        updated = await self._persist(listing, ListingPatch(), now=now, content=content)
        logger.info("Listing %s edited by %s", listing.id, actor, extra={"event": events.LISTING_EDITED})
        return updated

    # ------------------------------------------------------------------
    # Status edges
    # ------------------------------------------------------------------

    async def _owner_transition(
        self,
        auth: AuthContext,
        listing_id: str,
        requested: ListingStatus | None = None,
    ) -> Listing:
        now = await self._begin()
        listing = await self._load(listing_id)
        actor = self._owner_actor(listing, auth)
        target = requested or resolved_status_for(listing.kind)
        site = await self._settings()
        patch = self._decide(
            listing,
            actor,
            target.value,
            now,
            lambda: transition(listing, target, actor, now=now, require_approval=site.require_approval),
        )
        if patch.is_noop:
            return listing
        updated = await self._persist(listing, patch, now=now)
        self._log_transition(listing.status, updated, actor)
        return updated

    async def publish(self, auth: AuthContext, listing_id: str) -> Listing:
        """``draft → active`` (or ``pending`` when approval is required)."""
        return await self._owner_transition(auth, listing_id, ListingStatus.ACTIVE)

    async def pause(self, auth: AuthContext, listing_id: str) -> Listing:
        return await self._owner_transition(auth, listing_id, ListingStatus.PAUSED)

    async def resume(self, auth: AuthContext, listing_id: str) -> Listing:
        return await self._owner_transition(auth, listing_id, ListingStatus.ACTIVE)

    async def resolve(self, auth: AuthContext, listing_id: str) -> Listing:
        """Mark a sale listing ``sold`` or a wanted post ``closed``."""
        return await self._owner_transition(auth, listing_id)

    async def delete(self, auth: AuthContext, listing_id: str) -> Listing:
        """Soft delete; repeating it is a no-op."""
        return await self._owner_transition(auth, listing_id, ListingStatus.DELETED)

    # ------------------------------------------------------------------
    # Relist / featuring
    # ------------------------------------------------------------------

    async def relist(self, auth: AuthContext, listing_id: str) -> Listing:
        """Archive a resolved listing and return its fresh paused copy."""
        now = await self._begin()
        listing = await self._load(listing_id)
        actor = self._owner_actor(listing, auth)
        site = await self._settings()
        fresh_id = new_id()
        planned: list[Listing] = []

        def _plan() -> ListingPatch:
            archive, fresh = plan_relist(listing, actor, now=now, ttl_days=site.listing_ttl_days, new_id=fresh_id)
            planned.append(fresh)
            return archive

        archive = self._decide(listing, actor, "relist", now, _plan)
        _, fresh = await self._repo.relist(listing, archive, planned[0], now=now)
        logger.info(
            "Listing %s relisted as %s by %s",
            listing.id,
            fresh.id,
            actor,
            extra={"event": events.LISTING_RELISTED},
        )
        return fresh

    async def feature(self, auth: AuthContext, listing_id: str, until: datetime | None) -> Listing:
        """Owner featuring: set a window end, or clear it with ``None``."""
        now = await self._begin()
        listing = await self._load(listing_id)
        actor = self._owner_actor(listing, auth)
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
        return updated


def log_featuring(listing: Listing, actor: Actor) -> None:
    until = listing.featuring.featured_until
    logger.info(
        "Listing %s featuring %s by %s",
        listing.id,
        f"until {until.isoformat()}" if until is not None else "cleared",
        actor,
        extra={"event": events.FEATURING_UPDATED},
    )
