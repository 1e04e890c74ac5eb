"""Shared request pipeline for the listing and moderation services.

Every lifecycle request follows the same five steps:

1. **sweep**: run the expiry sweeper at the request's ``now`` so no rule
   is evaluated against a listing that should already be expired;
2. **load** the listing (``ListingNotFoundError`` when missing);
3. **authorise** the caller and pick the :class:`~aquamarket.core.actor.Actor`;
4. **decide** with the pure lifecycle functions; a refusal is audited as
   ``transition_rejected`` with its machine reason and re-raised;
5. **persist** with one conditional update, then **emit** audit and
   notification writes in the background.

:class:`BaseService` holds the collaborators and the helpers for steps 1,
4 and 5; the concrete services only describe what differs per operation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from aquamarket.core import events
from aquamarket.core.actor import Actor, AuthContext
from aquamarket.core.clock import Clock
from aquamarket.core.exceptions import (
    ConcurrentModificationError,
    ForbiddenError,
    InvalidRequestError,
    TransitionRejectedError,
)
from aquamarket.core.models import (
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
    SiteSettings,
)
from aquamarket.lifecycle.sweeper import ExpirySweeper
from aquamarket.notifiers.audit import AuditRecorder
from aquamarket.notifiers.dispatcher import Dispatcher
from aquamarket.notifiers.notifier import Notifier
from aquamarket.storage.repository import ListingRepository
from aquamarket.storage.site_settings import SiteSettingsStore

__all__ = ["BaseService", "ACTION_TRANSITION_REJECTED"]

logger = logging.getLogger(__name__)

#: Audit action written whenever the lifecycle rules refuse a request.
ACTION_TRANSITION_REJECTED = "transition_rejected"


class BaseService:
    """Collaborators and pipeline helpers shared by the services.

    Args:
        repo: Listing repository.
        site_settings: Runtime settings store (approval, TTL, featuring cap).
        sweeper: Expiry sweeper run at the start of every request.
        audit: Audit trail writer.
        notifier: Owner notification writer.
        dispatcher: Background runner for *audit* and *notifier* writes.
        clock: Time source; one ``now`` is taken per request.
    """

    def __init__(
        self,
        *,
        repo: ListingRepository,
        site_settings: SiteSettingsStore,
        sweeper: ExpirySweeper,
        audit: AuditRecorder,
        notifier: Notifier,
        dispatcher: Dispatcher,
        clock: Clock,
    ) -> None:
        self._repo = repo
        self._site_settings = site_settings
        self._sweeper = sweeper
        self._audit = audit
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._clock = clock

    # ------------------------------------------------------------------
    # Step 1/2: sweep and load
    # ------------------------------------------------------------------

    async def _begin(self) -> datetime:
        """Take the request's ``now`` and sweep at it."""
        now = self._clock.now()
        await self._sweeper.sweep(now)
        return now

    async def _load(self, listing_id: str) -> Listing:
        return await self._repo.require(listing_id)

    async def _settings(self) -> SiteSettings:
        return await self._site_settings.load()

    # ------------------------------------------------------------------
    # Step 3: authorisation
    # ------------------------------------------------------------------

    @staticmethod
    def _owner_actor(listing: Listing, auth: AuthContext) -> Actor:
        """Return the owner actor for *auth*, or raise if they do not own *listing*."""
        user_id = auth.require_user()
        if not listing.is_owned_by(user_id):
            raise ForbiddenError("You can only change your own listings")
        return Actor.owner(user_id)

    @staticmethod
    def _check_content(kind: ListingKind, content: ListingContent) -> None:
        if kind is ListingKind.SALE and content.price_cents is None:
            raise InvalidRequestError("Sale listings require a price")
        if kind is ListingKind.WANTED and content.price_cents is not None:
            raise InvalidRequestError("Wanted posts carry a budget, not a price")

    # ------------------------------------------------------------------
    # Step 4: decide
    # ------------------------------------------------------------------

    def _decide(
        self,
        listing: Listing,
        actor: Actor,
        requested: str,
        now: datetime,
        decide: Callable[[], ListingPatch],
    ) -> ListingPatch:
        """Run *decide*; audit and re-raise a lifecycle refusal."""
        try:
            return decide()
        except TransitionRejectedError as exc:
            logger.info(
                "Refused %s on listing %s (%s) for %s: %s",
                requested,
                listing.id,
                listing.status.value,
                actor,
                exc.reason.value,
                extra={"event": events.LISTING_TRANSITION_REJECTED},
            )
            self._emit_audit(
                actor_user_id=actor.user_id,
                action=ACTION_TRANSITION_REJECTED,
                target_id=listing.id,
                meta={
                    "requested": requested,
                    "status": listing.status.value,
                    "reason": exc.reason.value,
                    "actor": actor.role.value,
                },
                now=now,
            )
            raise

    # ------------------------------------------------------------------
    # Step 5: persist and emit
    # ------------------------------------------------------------------

    async def _persist(
        self,
        listing: Listing,
        patch: ListingPatch,
        *,
        now: datetime,
        content: ListingContent | None = None,
    ) -> Listing:
        try:
            return await self._repo.apply_patch(listing, patch, now=now, content=content)
        except ConcurrentModificationError as exc:
            logger.warning(
                "Listing %s changed since v%d was read; request refused",
                exc.listing_id,
                exc.expected_version,
                extra={"event": events.LISTING_CONFLICT},
            )
            raise

    @staticmethod
    def _log_transition(previous: ListingStatus, updated: Listing, actor: Actor) -> None:
        if previous is updated.status:
            return
        logger.info(
            "Listing %s: %s -> %s by %s",
            updated.id,
            previous.value,
            updated.status.value,
            actor,
            extra={"event": events.LISTING_TRANSITION},
        )

    def _emit_audit(
        self,
        *,
        actor_user_id: int | None,
        action: str,
        target_id: str,
        meta: dict[str, Any],
        now: datetime,
        target_kind: str = "listing",
    ) -> None:
        self._dispatcher.fire(
            self._audit.record(
                actor_user_id=actor_user_id,
                action=action,
                target_kind=target_kind,
                target_id=target_id,
                meta=meta,
                now=now,
            ),
            event=events.AUDIT_WRITE_FAILED,
            label=f"audit {action} {target_id}",
        )

    def _emit_notice(
        self,
        listing: Listing,
        actor: Actor,
        *,
        kind: str,
        title: str,
        body: str,
        meta: dict[str, Any],
        now: datetime,
    ) -> None:
        self._dispatcher.fire(
            self._notifier.notify(
                to_user_id=listing.user_id,
                actor_user_id=actor.user_id,
                kind=kind,
                title=title,
                body=body,
                meta={"listingId": listing.id, "listingType": listing.kind.value, **meta},
                now=now,
            ),
            event=events.NOTIFY_WRITE_FAILED,
            label=f"notify {kind} {listing.id}",
        )
