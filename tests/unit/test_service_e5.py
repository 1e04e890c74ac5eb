"""Unit tests for the request pipeline.

Covers :class:`~aquamarket.service.listings.ListingService` and
:class:`~aquamarket.service.moderation.ModerationService` end to end against
an in-memory database and a frozen clock:

- creation, approval queue and site settings;
- owner edges, restriction overlay and audited refusals;
- the 31-day expiry and admin reinstatement;
- relist, featuring windows and view counting;
- best-effort emitters and optimistic concurrency.

Side effects are written in the background, so every test drains
``services.dispatcher`` before asserting on audit rows or notifications.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from aquamarket.core.actor import AuthContext
from aquamarket.core.clock import FrozenClock
from aquamarket.core.exceptions import (
    ConcurrentModificationError,
    ForbiddenError,
    InvalidRequestError,
    ListingNotFoundError,
    NotAuthenticatedError,
    NotificationError,
    RejectionReason,
    RestrictedError,
    TransitionRejectedError,
)
from aquamarket.core.models import (
    Category,
    Listing,
    ListingContent,
    ListingKind,
    ListingStatus,
)
from aquamarket.lifecycle.restrictions import RestrictionRequest
from aquamarket.notifiers.formatter import KIND_APPROVED, KIND_REJECTED, KIND_STATUS_CHANGED
from aquamarket.service import Services
from aquamarket.service.base import ACTION_TRANSITION_REJECTED

OWNER = AuthContext(user_id=7)
STRANGER = AuthContext(user_id=8)
ANON = AuthContext()
ADMIN = AuthContext(user_id=1, is_admin=True)
SUPER = AuthContext(user_id=2, is_admin=True, is_superadmin=True)


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


def _make_content(*, kind: ListingKind = ListingKind.SALE, title: str = "Amano shrimp x20") -> ListingContent:
    return ListingContent(
        title=title,
        category=Category.SHRIMP,
        species="Caridina multidentata",
        quantity=20,
        price_cents=3000 if kind is ListingKind.SALE else None,
        budget_cents=None if kind is ListingKind.SALE else 2500,
        location="Leeds",
        description="Algae crew, collection only.",
        phone="07700900123",
    )


async def _create(services: Services, *, kind: ListingKind = ListingKind.SALE, as_draft: bool = False) -> Listing:
    return await services.listings.create(OWNER, kind, _make_content(kind=kind), as_draft=as_draft)


async def _audit_actions(services: Services, listing_id: str) -> list[str]:
    await services.dispatcher.drain()
    return [entry.action for entry in await services.audit.list_recent(target_id=listing_id)]


# ===========================================================================
# Create / read
# ===========================================================================


class TestCreate:
    async def test_create_goes_live(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        now = clock.now()
        assert listing.status is ListingStatus.ACTIVE
        assert listing.user_id == 7
        assert listing.published_at == now
        assert listing.expires_at == now + timedelta(days=30)
        assert await services.repo.require(listing.id) == listing

    async def test_create_as_draft(self, services: Services) -> None:
        listing = await _create(services, as_draft=True)
        assert listing.status is ListingStatus.DRAFT
        assert listing.published_at is None

    async def test_create_pending_when_approval_required(self, services: Services) -> None:
        await services.moderation.update_settings(SUPER, {"require_approval": True})
        listing = await _create(services)
        assert listing.status is ListingStatus.PENDING

    async def test_ttl_setting_applies(self, services: Services, clock: FrozenClock) -> None:
        await services.moderation.update_settings(SUPER, {"listing_ttl_days": 7})
        listing = await _create(services)
        assert listing.expires_at == clock.now() + timedelta(days=7)

    async def test_anonymous_cannot_create(self, services: Services) -> None:
        with pytest.raises(NotAuthenticatedError):
            await services.listings.create(ANON, ListingKind.SALE, _make_content())

    async def test_sale_requires_price(self, services: Services) -> None:
        content = _make_content(kind=ListingKind.WANTED)
        with pytest.raises(InvalidRequestError, match="price"):
            await services.listings.create(OWNER, ListingKind.SALE, content)

    async def test_wanted_post_cannot_carry_price(self, services: Services) -> None:
        with pytest.raises(InvalidRequestError, match="budget"):
            await services.listings.create(OWNER, ListingKind.WANTED, _make_content())


class TestRead:
    async def test_public_read_counts_view(self, services: Services) -> None:
        listing = await _create(services)
        seen = await services.listings.get(STRANGER, listing.id)
        assert seen.views == 1
        await services.listings.get(ANON, listing.id)
        assert (await services.repo.require(listing.id)).views == 2

    async def test_owner_read_does_not_count(self, services: Services) -> None:
        listing = await _create(services)
        assert (await services.listings.get(OWNER, listing.id)).views == 0
        assert (await services.repo.require(listing.id)).views == 0

    async def test_admin_read_of_public_listing_counts(self, services: Services) -> None:
        listing = await _create(services)
        assert (await services.listings.get(ADMIN, listing.id)).views == 1
        assert (await services.repo.require(listing.id)).views == 1

    async def test_admin_read_of_hidden_listing_does_not_count(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.pause(OWNER, listing.id)
        seen = await services.listings.get(ADMIN, listing.id)
        assert seen.status is ListingStatus.PAUSED
        assert (await services.repo.require(listing.id)).views == 0

    async def test_paused_listing_hidden_from_public(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.pause(OWNER, listing.id)
        with pytest.raises(ListingNotFoundError):
            await services.listings.get(STRANGER, listing.id)
        assert (await services.listings.get(OWNER, listing.id)).status is ListingStatus.PAUSED

    async def test_sold_listing_visible_and_counted(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.resolve(OWNER, listing.id)
        seen = await services.listings.get(ANON, listing.id)
        assert seen.status is ListingStatus.SOLD
        assert seen.views == 1
        assert (await services.repo.require(listing.id)).views == 1

    async def test_closed_wanted_post_hidden(self, services: Services) -> None:
        listing = await _create(services, kind=ListingKind.WANTED)
        await services.listings.resolve(OWNER, listing.id)
        with pytest.raises(ListingNotFoundError):
            await services.listings.get(ANON, listing.id)

    async def test_browse_and_list_mine(self, services: Services) -> None:
        live = await _create(services)
        paused = await _create(services)
        await services.listings.pause(OWNER, paused.id)
        deleted = await _create(services)
        await services.listings.delete(OWNER, deleted.id)

        browse = await services.listings.browse()
        assert [item.id for item in browse.items] == [live.id]
        mine = await services.listings.list_mine(OWNER)
        assert {item.id for item in mine.items} == {live.id, paused.id}
        with pytest.raises(NotAuthenticatedError):
            await services.listings.list_mine(ANON)


# ===========================================================================
# Owner edges
# ===========================================================================


class TestOwnerEdges:
    async def test_publish_draft(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services, as_draft=True)
        clock.advance(timedelta(hours=1))
        published = await services.listings.publish(OWNER, listing.id)
        assert published.status is ListingStatus.ACTIVE
        assert published.published_at == clock.now()

    async def test_pause_resume_resolve(self, services: Services) -> None:
        listing = await _create(services)
        paused = await services.listings.pause(OWNER, listing.id)
        assert paused.status is ListingStatus.PAUSED
        resumed = await services.listings.resume(OWNER, listing.id)
        assert resumed.status is ListingStatus.ACTIVE
        assert resumed.published_at == listing.published_at
        sold = await services.listings.resolve(OWNER, listing.id)
        assert sold.status is ListingStatus.SOLD
        assert sold.version == 3

    async def test_wanted_post_resolves_to_closed(self, services: Services) -> None:
        listing = await _create(services, kind=ListingKind.WANTED)
        assert (await services.listings.resolve(OWNER, listing.id)).status is ListingStatus.CLOSED

    async def test_stranger_cannot_change_listing(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(ForbiddenError, match="your own"):
            await services.listings.pause(STRANGER, listing.id)

    async def test_admin_is_owner_tier_on_owner_routes(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(ForbiddenError):
            await services.listings.pause(ADMIN, listing.id)

    async def test_delete_is_idempotent(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        first = await services.listings.delete(OWNER, listing.id)
        clock.advance(timedelta(minutes=5))
        second = await services.listings.delete(OWNER, listing.id)
        assert first.status is second.status is ListingStatus.DELETED
        assert second.version == first.version
        assert second.deleted_at == first.deleted_at

    async def test_refusal_is_audited(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.resolve(OWNER, listing.id)
        with pytest.raises(TransitionRejectedError) as exc_info:
            await services.listings.pause(OWNER, listing.id)
        assert exc_info.value.reason is RejectionReason.ALREADY_RESOLVED

        await services.dispatcher.drain()
        [entry] = await services.audit.list_recent(action=ACTION_TRANSITION_REJECTED)
        assert entry.target_id == listing.id
        assert entry.actor_user_id == 7
        assert entry.meta == {"requested": "paused", "status": "sold", "reason": "ALREADY_RESOLVED", "actor": "owner"}

    async def test_owner_actions_do_not_notify_owner(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.pause(OWNER, listing.id)
        await services.dispatcher.drain()
        assert await services.listings.notifications(OWNER) == []


class TestEdit:
    async def test_edit_replaces_content(self, services: Services) -> None:
        listing = await _create(services)
        edited = await services.listings.edit(OWNER, listing.id, _make_content(title="Amano shrimp x30"))
        assert edited.content.title == "Amano shrimp x30"
        assert edited.version == 1
        assert edited.status is ListingStatus.ACTIVE

    async def test_edit_blocked_by_overlay(self, services: Services) -> None:
        listing = await _create(services)
        await services.moderation.set_restrictions(
            ADMIN, listing.id, RestrictionRequest(block_edit=True, reason="Misleading price")
        )
        with pytest.raises(RestrictedError, match="Misleading price"):
            await services.listings.edit(OWNER, listing.id, _make_content(title="Changed title"))

    async def test_sold_listing_not_editable(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.resolve(OWNER, listing.id)
        with pytest.raises(TransitionRejectedError) as exc_info:
            await services.listings.edit(OWNER, listing.id, _make_content())
        assert exc_info.value.reason is RejectionReason.ALREADY_RESOLVED
        assert ACTION_TRANSITION_REJECTED in await _audit_actions(services, listing.id)

    async def test_edit_keeps_kind_rules(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(InvalidRequestError):
            await services.listings.edit(OWNER, listing.id, _make_content(kind=ListingKind.WANTED))


# ===========================================================================
# Moderation
# ===========================================================================


class TestAdminStatus:
    async def test_admin_pause_restricts_owner(self, services: Services) -> None:
        listing = await _create(services)
        paused = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.PAUSED, reason="Blurry photos")
        assert paused.overlay.block_pause_resume
        assert paused.overlay.block_featuring

        with pytest.raises(RestrictedError) as exc_info:
            await services.listings.resume(OWNER, listing.id)
        assert exc_info.value.reason is RejectionReason.RESTRICTED

        assert sorted(await _audit_actions(services, listing.id)) == ["set_listing_status", ACTION_TRANSITION_REJECTED]
        [notice] = await services.listings.notifications(OWNER)
        assert notice.kind == KIND_STATUS_CHANGED
        assert notice.title == "Listing paused — Amano shrimp x20"
        assert notice.body == "Your listing was paused by an admin.\n\nReason: Blurry photos"
        assert notice.meta["prevStatus"] == "active"
        assert notice.meta["nextStatus"] == "paused"
        assert notice.meta["listingType"] == "sale"

    async def test_set_status_audit_meta(self, services: Services) -> None:
        listing = await _create(services)
        await services.moderation.set_status(ADMIN, listing.id, ListingStatus.DELETED, reason="  Spam ")
        await services.dispatcher.drain()
        [entry] = await services.audit.list_recent(action="set_listing_status")
        assert entry.actor_user_id == 1
        assert entry.target_kind == "listing"
        assert entry.meta == {"prevStatus": "active", "nextStatus": "deleted", "reason": "Spam"}

    async def test_admin_on_own_listing_not_notified(self, services: Services) -> None:
        own = await services.listings.create(ADMIN, ListingKind.SALE, _make_content())
        await services.moderation.set_status(ADMIN, own.id, ListingStatus.PAUSED)
        await services.dispatcher.drain()
        assert await services.listings.notifications(ADMIN) == []

    async def test_terminal_reentry_writes_nothing(self, services: Services) -> None:
        listing = await _create(services)
        deleted = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.DELETED)
        again = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.DELETED)
        assert again.version == deleted.version
        assert await _audit_actions(services, listing.id) == ["set_listing_status"]

    async def test_plain_user_cannot_moderate(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(ForbiddenError):
            await services.moderation.set_status(OWNER, listing.id, ListingStatus.PAUSED)

    async def test_restrictions_are_audited_not_notified(self, services: Services) -> None:
        listing = await _create(services)
        updated = await services.moderation.set_restrictions(
            ADMIN, listing.id, RestrictionRequest(block_status_changes=True, reason="Dispute")
        )
        assert updated.overlay.block_status_changes
        assert updated.overlay.actor_user_id == 1

        await services.dispatcher.drain()
        [entry] = await services.audit.list_recent(action="set_listing_restrictions")
        assert entry.meta["prev"]["blockStatusChanges"] is False
        assert entry.meta["next"] == {
            "blockEdit": False,
            "blockPauseResume": False,
            "blockStatusChanges": True,
            "blockFeaturing": False,
            "reason": "Dispute",
        }
        assert await services.listings.notifications(OWNER) == []

        with pytest.raises(RestrictedError):
            await services.listings.resolve(OWNER, listing.id)


class TestExpiry:
    async def test_listing_expires_after_ttl(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        clock.advance(timedelta(days=31))

        with pytest.raises(TransitionRejectedError) as exc_info:
            await services.listings.pause(OWNER, listing.id)
        assert exc_info.value.reason is RejectionReason.ALREADY_EXPIRED

        stored = await services.listings.get(OWNER, listing.id)
        assert stored.status is ListingStatus.EXPIRED
        with pytest.raises(ListingNotFoundError):
            await services.listings.get(STRANGER, listing.id)

        await services.dispatcher.drain()
        [notice] = await services.listings.notifications(OWNER)
        assert notice.title == "Listing expired — Amano shrimp x20"
        assert notice.body == "Your listing has expired."
        [entry] = await services.audit.list_recent(action=ACTION_TRANSITION_REJECTED)
        assert entry.meta["status"] == "expired"

    async def test_not_expired_one_day_early(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        clock.advance(timedelta(days=29))
        assert (await services.listings.pause(OWNER, listing.id)).status is ListingStatus.PAUSED

    async def test_browse_sweeps_first(self, services: Services, clock: FrozenClock) -> None:
        await _create(services)
        clock.advance(timedelta(days=31))
        assert (await services.listings.browse()).total == 0

    async def test_admin_reinstates_with_fresh_expiry(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        clock.advance(timedelta(days=31))
        await services.moderation.sweep(ADMIN)

        reinstated = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.ACTIVE)
        assert reinstated.status is ListingStatus.ACTIVE
        assert reinstated.expires_at == clock.now() + timedelta(days=30)

        clock.advance(timedelta(days=1))
        assert (await services.listings.get(OWNER, listing.id)).status is ListingStatus.ACTIVE

        await services.dispatcher.drain()
        bodies = [n.body for n in await services.listings.notifications(OWNER)]
        assert "Your listing was restored and is now live." in bodies
        assert "Your listing has expired." in bodies

    async def test_manual_sweep(self, services: Services, clock: FrozenClock) -> None:
        first = await _create(services)
        second = await _create(services)
        clock.advance(timedelta(days=31))
        expired = await services.moderation.sweep(ADMIN)
        assert {item.listing_id for item in expired} == {first.id, second.id}
        assert await services.moderation.sweep(ADMIN) == []
        with pytest.raises(ForbiddenError):
            await services.moderation.sweep(OWNER)


# ===========================================================================
# Approvals / settings
# ===========================================================================


class TestApprovals:
    async def test_approve_from_queue(self, services: Services, clock: FrozenClock) -> None:
        await services.moderation.update_settings(SUPER, {"require_approval": True})
        listing = await _create(services)
        queue = await services.moderation.approvals(ADMIN)
        assert [item.id for item in queue.items] == [listing.id]

        approved = await services.moderation.approve(ADMIN, listing.id)
        assert approved.status is ListingStatus.ACTIVE
        assert approved.published_at == clock.now()

        await services.dispatcher.drain()
        [notice] = await services.listings.notifications(OWNER)
        assert notice.kind == KIND_APPROVED
        assert notice.body == "Your listing was approved and is now live."
        [entry] = await services.audit.list_recent(action="approve")
        assert entry.target_kind == "sale"

    async def test_reject_with_note(self, services: Services) -> None:
        await services.moderation.update_settings(SUPER, {"require_approval": True})
        listing = await _create(services, kind=ListingKind.WANTED)
        rejected = await services.moderation.reject(ADMIN, listing.id, note="Duplicate post")
        assert rejected.status is ListingStatus.DELETED

        await services.dispatcher.drain()
        [notice] = await services.listings.notifications(OWNER)
        assert notice.kind == KIND_REJECTED
        assert notice.body.endswith("Note: Duplicate post")
        [entry] = await services.audit.list_recent(action="reject")
        assert entry.target_kind == "wanted"
        assert entry.meta["note"] == "Duplicate post"

    async def test_approve_active_listing_refused(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(TransitionRejectedError, match="Only pending"):
            await services.moderation.approve(ADMIN, listing.id)


class TestSiteSettings:
    async def test_superadmin_updates_settings(self, services: Services) -> None:
        updated = await services.moderation.update_settings(SUPER, {"featured_max_days": 14})
        assert updated.featured_max_days == 14
        assert (await services.moderation.get_settings(SUPER)).featured_max_days == 14

        await services.dispatcher.drain()
        [entry] = await services.audit.list_recent(action="update_settings")
        assert entry.target_kind == "settings"
        assert entry.target_id == "site"
        assert entry.meta == {"changes": {"featured_max_days": 14}}

    async def test_plain_admin_cannot_change_settings(self, services: Services) -> None:
        with pytest.raises(ForbiddenError, match="Superadmin"):
            await services.moderation.update_settings(ADMIN, {"require_approval": True})
        with pytest.raises(ForbiddenError):
            await services.moderation.get_settings(ADMIN)

    @pytest.mark.parametrize(
        "changes",
        [{"listing_ttl_days": 0}, {"featured_max_days": 4000}, {"theme": "dark"}],
    )
    async def test_invalid_settings_rejected(self, services: Services, changes: dict[str, object]) -> None:
        with pytest.raises(InvalidRequestError):
            await services.moderation.update_settings(SUPER, changes)


# ===========================================================================
# Relist / featuring
# ===========================================================================


class TestRelist:
    async def test_relist_sold_listing(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        await services.listings.get(STRANGER, listing.id)
        await services.listings.resolve(OWNER, listing.id)
        clock.advance(timedelta(days=3))

        fresh = await services.listings.relist(OWNER, listing.id)
        assert fresh.id != listing.id
        assert fresh.status is ListingStatus.PAUSED
        assert fresh.content == listing.content
        assert fresh.views == 0
        assert fresh.expires_at == clock.now() + timedelta(days=30)
        assert await services.repo.require(fresh.id) == fresh

        original = await services.listings.get(OWNER, listing.id)
        assert original.status is ListingStatus.DELETED
        assert original.deleted_at == clock.now()

        resumed = await services.listings.resume(OWNER, fresh.id)
        assert resumed.status is ListingStatus.ACTIVE

    async def test_relist_requires_resolution(self, services: Services) -> None:
        listing = await _create(services)
        with pytest.raises(TransitionRejectedError) as exc_info:
            await services.listings.relist(OWNER, listing.id)
        assert exc_info.value.reason is RejectionReason.NOT_RESOLVED
        assert await _audit_actions(services, listing.id) == [ACTION_TRANSITION_REJECTED]

    async def test_relist_twice_refused(self, services: Services) -> None:
        listing = await _create(services)
        await services.listings.resolve(OWNER, listing.id)
        await services.listings.relist(OWNER, listing.id)
        with pytest.raises(TransitionRejectedError) as exc_info:
            await services.listings.relist(OWNER, listing.id)
        assert exc_info.value.reason is RejectionReason.ALREADY_DELETED


class TestFeaturing:
    async def test_owner_feature_window(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        until = clock.now() + timedelta(days=7)
        featured = await services.listings.feature(OWNER, listing.id, until)
        assert featured.featuring.featured_until == until
        assert [item.id for item in await services.listings.featured()] == [listing.id]

        clock.advance(timedelta(days=8))
        assert await services.listings.featured() == []
        stored = await services.repo.require(listing.id)
        assert stored.featuring.featured

    async def test_owner_window_capped_by_setting(self, services: Services, clock: FrozenClock) -> None:
        await services.moderation.update_settings(SUPER, {"featured_max_days": 3})
        listing = await _create(services)
        with pytest.raises(InvalidRequestError, match="within 3 days"):
            await services.listings.feature(OWNER, listing.id, clock.now() + timedelta(days=4))

    async def test_admin_unfeature_blocks_owner(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        await services.listings.feature(OWNER, listing.id, clock.now() + timedelta(days=7))

        cleared = await services.moderation.set_featured(SUPER, listing.id, None)
        assert not cleared.featuring.featured
        assert cleared.overlay.block_featuring
        with pytest.raises(RestrictedError):
            await services.listings.feature(OWNER, listing.id, clock.now() + timedelta(days=1))

        await services.dispatcher.drain()
        [entry] = await services.audit.list_recent(action="set_listing_featured")
        assert entry.meta["nextFeaturedUntil"] is None
        [notice] = await services.listings.notifications(OWNER)
        assert notice.title == "Featured removed — Amano shrimp x20"

    async def test_plain_admin_cannot_feature(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        with pytest.raises(ForbiddenError, match="Superadmin"):
            await services.moderation.set_featured(ADMIN, listing.id, clock.now() + timedelta(days=1))

    async def test_superadmin_past_instant_rejected(self, services: Services, clock: FrozenClock) -> None:
        listing = await _create(services)
        with pytest.raises(InvalidRequestError, match="future"):
            await services.moderation.set_featured(SUPER, listing.id, clock.now() - timedelta(hours=1))
        assert not (await services.repo.require(listing.id)).featuring.featured
        assert await _audit_actions(services, listing.id) == []
        assert await services.listings.notifications(OWNER) == []


# ===========================================================================
# Emitters / concurrency
# ===========================================================================


class TestResilience:
    async def test_audit_failure_does_not_fail_transition(self, services: Services) -> None:
        listing = await _create(services)
        failing = AsyncMock(side_effect=NotificationError("audit_log is locked"))
        with patch.object(services.audit, "record", failing):
            paused = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.PAUSED)
            await services.dispatcher.drain()
        assert paused.status is ListingStatus.PAUSED
        assert failing.await_count == 1
        assert (await services.repo.require(listing.id)).status is ListingStatus.PAUSED
        assert len(await services.listings.notifications(OWNER)) == 1

    async def test_notification_failure_does_not_fail_transition(self, services: Services) -> None:
        listing = await _create(services)
        with patch.object(services.notifier, "notify", AsyncMock(side_effect=RuntimeError("boom"))):
            paused = await services.moderation.set_status(ADMIN, listing.id, ListingStatus.PAUSED)
            await services.dispatcher.drain()
        assert paused.status is ListingStatus.PAUSED
        assert await _audit_actions(services, listing.id) == ["set_listing_status"]

    async def test_stale_read_conflicts(self, services: Services) -> None:
        listing = await _create(services)
        stale = await services.repo.require(listing.id)
        await services.moderation.set_status(ADMIN, listing.id, ListingStatus.PAUSED)

        with patch.object(services.repo, "require", AsyncMock(return_value=stale)):
            with pytest.raises(ConcurrentModificationError):
                await services.listings.resolve(OWNER, listing.id)
        assert (await services.repo.require(listing.id)).status is ListingStatus.PAUSED
