"""Expiry sweeper.

Reconciles ``expires_at`` with ``status``: every listing that is neither
``deleted`` nor ``expired`` and whose ``expires_at`` lies in the past is
moved to ``expired`` in one transaction.  Featuring, the restriction overlay
and ``deleted_at`` are left alone.

The sweep is idempotent.  It runs at the start of every listing read and
write in :mod:`aquamarket.service`, from ``POST /api/admin/sweep`` and from
``python -m aquamarket sweep`` (cron).  A second call at the same instant
changes nothing and notifies nobody.

Typical usage::

    sweeper = ExpirySweeper(repo, notifier=notifier, dispatcher=dispatcher, clock=clock)
    expired = await sweeper.sweep()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from aquamarket.core import events
from aquamarket.core.clock import Clock, SystemClock
from aquamarket.core.models import Listing, ListingStatus
from aquamarket.notifiers.dispatcher import Dispatcher
from aquamarket.notifiers.formatter import (
    KIND_STATUS_CHANGED,
    listing_status_body,
    listing_status_title,
    with_listing_title,
)
from aquamarket.notifiers.notifier import Notifier
from aquamarket.storage.repository import ListingRepository

__all__ = ["ExpiredListing", "ExpirySweeper"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiredListing:
    """One listing moved to ``expired`` by a sweep."""

    previous_status: ListingStatus
    listing: Listing

    @property
    def listing_id(self) -> str:
        return self.listing.id


class ExpirySweeper:
    """Runs the expiry sweep and tells owners about it.

    Args:
        repo: Listing repository.
        notifier: Owner notification emitter; ``None`` disables notices.
        dispatcher: Runs notification writes in the background.  Required
            when *notifier* is given.
        clock: Time source used when :meth:`sweep` is called without ``now``.
    """

    def __init__(
        self,
        repo: ListingRepository,
        *,
        notifier: Notifier | None = None,
        dispatcher: Dispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        if notifier is not None and dispatcher is None:
            raise ValueError("A dispatcher is required when a notifier is given.")
        self._repo = repo
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()

    async def sweep(self, now: datetime | None = None) -> list[ExpiredListing]:
        """Expire every overdue listing.

        Args:
            now: Instant to sweep at; defaults to the clock.

        Returns:
            The listings this call expired, empty when there were none.
        """
        now = now or self._clock.now()
        expired = [ExpiredListing(previous, listing) for previous, listing in await self._repo.expire_due(now)]
        if not expired:
            return expired

        logger.info(
            "Expired %d listing(s): %s",
            len(expired),
            ", ".join(item.listing_id for item in expired),
            extra={"event": events.SWEEP_EXPIRED},
        )
        for item in expired:
            self._notify_owner(item, now)
        return expired

    def _notify_owner(self, item: ExpiredListing, now: datetime) -> None:
        if self._notifier is None or self._dispatcher is None:
            return
        listing = item.listing
        if listing.user_id is None:
            return
        self._dispatcher.fire(
            self._notifier.notify(
                to_user_id=listing.user_id,
                actor_user_id=None,
                kind=KIND_STATUS_CHANGED,
                title=with_listing_title(listing_status_title(ListingStatus.EXPIRED), listing.content.title),
                body=listing_status_body(item.previous_status, ListingStatus.EXPIRED, by_admin=False),
                meta={
                    "listingId": listing.id,
                    "listingType": listing.kind.value,
                    "prevStatus": item.previous_status.value,
                    "nextStatus": ListingStatus.EXPIRED.value,
                },
                now=now,
            ),
            event=events.NOTIFY_WRITE_FAILED,
            label=f"expiry notice {listing.id}",
        )
