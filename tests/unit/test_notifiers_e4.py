"""Unit tests for the side channels and the expiry sweeper.

Covers:
- :mod:`aquamarket.notifiers.formatter` notification copy.
- :class:`~aquamarket.notifiers.notifier.Notifier` writes, self-skip and
  failure wrapping.
- :class:`~aquamarket.notifiers.audit.AuditRecorder` writes and filters.
- :class:`~aquamarket.notifiers.dispatcher.Dispatcher` swallowing failures.
- :class:`~aquamarket.lifecycle.sweeper.ExpirySweeper` owner notices.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from aquamarket.core import events
from aquamarket.core.clock import FrozenClock
from aquamarket.core.exceptions import NotificationError
from aquamarket.core.ids import new_id
from aquamarket.core.models import Category, Listing, ListingContent, ListingKind, ListingStatus
from aquamarket.lifecycle.sweeper import ExpirySweeper
from aquamarket.notifiers.audit import AuditRecorder
from aquamarket.notifiers.dispatcher import Dispatcher
from aquamarket.notifiers.formatter import (
    KIND_STATUS_CHANGED,
    approved_body,
    featured_body,
    featured_title,
    listing_status_body,
    listing_status_title,
    rejected_body,
    with_listing_title,
)
from aquamarket.notifiers.notifier import Notifier
from aquamarket.storage.database import Database
from aquamarket.storage.repository import ListingRepository

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


def _make_listing(*, user_id: int | None = 7, status: ListingStatus = ListingStatus.ACTIVE) -> Listing:
    return Listing(
        id=new_id(),
        user_id=user_id,
        kind=ListingKind.SALE,
        content=ListingContent(
            title="Fluval 307 canister",
            category=Category.EQUIPMENT,
            price_cents=6000,
            location="Glasgow",
            description="Two years old, new impeller.",
            phone="07700900321",
        ),
        status=status,
        created_at=T0,
        updated_at=T0,
        expires_at=T0 + timedelta(days=30),
    )


async def _notify(notifier: Notifier, **overrides: object) -> bool:
    fields: dict[str, object] = {
        "to_user_id": 7,
        "actor_user_id": 1,
        "kind": KIND_STATUS_CHANGED,
        "title": "Listing paused — Fluval 307 canister",
        "body": "Your listing was paused by an admin.",
        "meta": {"listingId": "abc"},
        "now": T0,
    }
    fields.update(overrides)
    return await notifier.notify(**fields)  # type: ignore[arg-type]


# ===========================================================================
# Formatter
# ===========================================================================


class TestFormatter:
    def test_status_titles(self) -> None:
        assert listing_status_title(ListingStatus.PAUSED) == "Listing paused"
        assert listing_status_title(ListingStatus.EXPIRED) == "Listing expired"

    def test_with_listing_title(self) -> None:
        assert with_listing_title("Listing sold", "Neon tetras") == "Listing sold — Neon tetras"

    def test_with_listing_title_fallback(self) -> None:
        assert with_listing_title("Listing sold", "   ") == "Listing sold — your listing"
        assert with_listing_title("Listing sold", None) == "Listing sold — your listing"

    @pytest.mark.parametrize(
        ("previous", "current", "expected"),
        [
            (ListingStatus.ACTIVE, ListingStatus.PAUSED, "Your listing was paused by an admin."),
            (ListingStatus.ACTIVE, ListingStatus.DELETED, "Your listing was deleted by an admin."),
            (ListingStatus.PAUSED, ListingStatus.ACTIVE, "Your listing was restored and is now live."),
            (ListingStatus.EXPIRED, ListingStatus.ACTIVE, "Your listing was restored and is now live."),
            (ListingStatus.PENDING, ListingStatus.ACTIVE, "Your listing was approved and is now live."),
            (ListingStatus.DRAFT, ListingStatus.ACTIVE, "Your listing is now live."),
            (ListingStatus.ACTIVE, ListingStatus.SOLD, "Your listing was marked as sold by an admin."),
            (ListingStatus.ACTIVE, ListingStatus.EXPIRED, "Your listing was marked as expired by an admin."),
        ],
    )
    def test_status_bodies(self, previous: ListingStatus, current: ListingStatus, expected: str) -> None:
        assert listing_status_body(previous, current) == expected

    def test_system_expiry_body(self) -> None:
        assert listing_status_body(ListingStatus.ACTIVE, ListingStatus.EXPIRED, by_admin=False) == (
            "Your listing has expired."
        )

    def test_reason_appended(self) -> None:
        body = listing_status_body(ListingStatus.ACTIVE, ListingStatus.PAUSED, reason="  Blurry photos ")
        assert body == "Your listing was paused by an admin.\n\nReason: Blurry photos"

    def test_blank_reason_ignored(self) -> None:
        assert listing_status_body(ListingStatus.ACTIVE, ListingStatus.PAUSED, reason="  ") == (
            "Your listing was paused by an admin."
        )

    def test_featuring_and_approval_copy(self) -> None:
        assert featured_title(True) == "Featured enabled"
        assert featured_body(False) == "Featured removed."
        assert approved_body() == "Your listing was approved and is now live."
        assert rejected_body() == "Your listing was rejected by an admin."
        assert rejected_body("Wrong category") == "Your listing was rejected by an admin.\n\nNote: Wrong category"


# ===========================================================================
# Notifier
# ===========================================================================


class TestNotifier:
    async def test_notification_stored(self, db: Database) -> None:
        notifier = Notifier(db)
        assert await _notify(notifier) is True

        [stored] = await notifier.list_for_user(7)
        assert stored.kind == KIND_STATUS_CHANGED
        assert stored.title == "Listing paused — Fluval 307 canister"
        assert stored.meta == {"listingId": "abc"}
        assert stored.is_read is False
        assert stored.created_at == T0

    async def test_self_notification_skipped(self, db: Database, caplog: pytest.LogCaptureFixture) -> None:
        notifier = Notifier(db)
        with caplog.at_level(logging.DEBUG, logger="aquamarket.notifiers.notifier"):
            assert await _notify(notifier, actor_user_id=7) is False
        assert await notifier.list_for_user(7) == []
        assert any(getattr(r, "event", None) == events.NOTIFY_SKIPPED_SELF for r in caplog.records)

    async def test_unowned_listing_skipped(self, db: Database) -> None:
        assert await _notify(Notifier(db), to_user_id=None) is False

    async def test_system_actor_notifies_owner(self, db: Database) -> None:
        notifier = Notifier(db)
        assert await _notify(notifier, actor_user_id=None) is True
        assert len(await notifier.list_for_user(7)) == 1

    async def test_list_newest_first_and_per_user(self, db: Database) -> None:
        notifier = Notifier(db)
        await _notify(notifier, title="first")
        await _notify(notifier, title="second", now=T0 + timedelta(minutes=1))
        await _notify(notifier, to_user_id=8, title="other user")
        assert [n.title for n in await notifier.list_for_user(7)] == ["second", "first"]

    async def test_unread_only(self, db: Database) -> None:
        notifier = Notifier(db)
        await _notify(notifier, title="read")
        await _notify(notifier, title="unread")

        async def _mark(conn: aiosqlite.Connection) -> None:
            await conn.execute("UPDATE notifications SET is_read = 1 WHERE title = 'read'")

        await db.write(_mark)
        assert [n.title for n in await notifier.list_for_user(7, unread_only=True)] == ["unread"]

    async def test_write_failure_wrapped(self, db: Database) -> None:
        notifier = Notifier(db)
        with patch.object(db, "write", AsyncMock(side_effect=aiosqlite.OperationalError("disk I/O error"))):
            with pytest.raises(NotificationError, match="disk I/O error"):
                await _notify(notifier)


# ===========================================================================
# Audit
# ===========================================================================


class TestAuditRecorder:
    async def test_record_and_list(self, db: Database) -> None:
        recorder = AuditRecorder(db)
        entry = await recorder.record(
            actor_user_id=1,
            action="set_listing_status",
            target_kind="listing",
            target_id="abc",
            meta={"prevStatus": "active", "nextStatus": "paused"},
            now=T0,
        )
        [stored] = await recorder.list_recent()
        assert stored == entry
        assert stored.meta["nextStatus"] == "paused"

    async def test_filters(self, db: Database) -> None:
        recorder = AuditRecorder(db)
        for action, target in (("approve", "a"), ("reject", "b"), ("approve", "b")):
            await recorder.record(actor_user_id=1, action=action, target_kind="sale", target_id=target, now=T0)

        assert len(await recorder.list_recent(action="approve")) == 2
        assert len(await recorder.list_recent(target_id="b")) == 2
        [only] = await recorder.list_recent(action="approve", target_id="b")
        assert only.target_id == "b"

    async def test_newest_first(self, db: Database) -> None:
        recorder = AuditRecorder(db)
        await recorder.record(actor_user_id=1, action="old", target_kind="listing", target_id="x", now=T0)
        await recorder.record(
            actor_user_id=1, action="new", target_kind="listing", target_id="x", now=T0 + timedelta(seconds=1)
        )
        assert [e.action for e in await recorder.list_recent()] == ["new", "old"]

    async def test_write_failure_wrapped(self, db: Database) -> None:
        recorder = AuditRecorder(db)
        with patch.object(db, "write", AsyncMock(side_effect=aiosqlite.OperationalError("readonly database"))):
            with pytest.raises(NotificationError, match="readonly"):
                await recorder.record(actor_user_id=1, action="x", target_kind="listing", target_id="y", now=T0)


# ===========================================================================
# Dispatcher
# ===========================================================================


class TestDispatcher:
    async def test_fire_and_drain(self) -> None:
        dispatcher = Dispatcher()
        done: list[int] = []

        async def _work(n: int) -> None:
            await asyncio.sleep(0)
            done.append(n)

        dispatcher.fire(_work(1), event="TEST", label="one")
        dispatcher.fire(_work(2), event="TEST", label="two")
        assert dispatcher.pending == 2
        await dispatcher.drain()
        assert sorted(done) == [1, 2]
        assert dispatcher.pending == 0

    async def test_failure_is_logged_and_swallowed(self, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = Dispatcher()

        async def _boom() -> None:
            raise NotificationError("audit table gone")

        with caplog.at_level(logging.WARNING, logger="aquamarket.notifiers.dispatcher"):
            task = dispatcher.fire(_boom(), event=events.AUDIT_WRITE_FAILED, label="audit x")
            await dispatcher.drain()

        assert task.exception() is None
        [record] = [r for r in caplog.records if getattr(r, "event", None) == events.AUDIT_WRITE_FAILED]
        assert record.levelno == logging.WARNING
        assert "audit table gone" in record.getMessage()

    async def test_drain_with_nothing_pending(self) -> None:
        await Dispatcher().drain()


# ===========================================================================
# Expiry sweeper
# ===========================================================================


class TestExpirySweeper:
    async def test_notifier_requires_dispatcher(self, db: Database) -> None:
        with pytest.raises(ValueError, match="dispatcher"):
            ExpirySweeper(ListingRepository(db), notifier=Notifier(db))

    async def test_sweep_notifies_owner(self, db: Database) -> None:
        repo = ListingRepository(db)
        notifier = Notifier(db)
        dispatcher = Dispatcher()
        clock = FrozenClock(T0 + timedelta(days=31))
        sweeper = ExpirySweeper(repo, notifier=notifier, dispatcher=dispatcher, clock=clock)
        listing = await repo.insert(_make_listing(status=ListingStatus.PAUSED))

        [expired] = await sweeper.sweep()
        await dispatcher.drain()

        assert expired.listing_id == listing.id
        assert expired.previous_status is ListingStatus.PAUSED
        assert expired.listing.status is ListingStatus.EXPIRED
        [notice] = await notifier.list_for_user(7)
        assert notice.title == "Listing expired — Fluval 307 canister"
        assert notice.body == "Your listing has expired."
        assert notice.meta == {
            "listingId": listing.id,
            "listingType": "sale",
            "prevStatus": "paused",
            "nextStatus": "expired",
        }

    async def test_second_sweep_is_silent(self, db: Database) -> None:
        repo = ListingRepository(db)
        notifier = Notifier(db)
        dispatcher = Dispatcher()
        sweeper = ExpirySweeper(repo, notifier=notifier, dispatcher=dispatcher)
        await repo.insert(_make_listing())
        now = T0 + timedelta(days=31)

        assert len(await sweeper.sweep(now)) == 1
        assert await sweeper.sweep(now) == []
        await dispatcher.drain()
        assert len(await notifier.list_for_user(7)) == 1

    async def test_unowned_listing_expires_without_notice(self, db: Database) -> None:
        repo = ListingRepository(db)
        dispatcher = Dispatcher()
        sweeper = ExpirySweeper(repo, notifier=Notifier(db), dispatcher=dispatcher)
        await repo.insert(_make_listing(user_id=None))
        assert len(await sweeper.sweep(T0 + timedelta(days=31))) == 1
        assert dispatcher.pending == 0

    async def test_sweep_without_notifier(self, db: Database, caplog: pytest.LogCaptureFixture) -> None:
        repo = ListingRepository(db)
        await repo.insert(_make_listing())
        with caplog.at_level(logging.INFO, logger="aquamarket.lifecycle.sweeper"):
            expired = await ExpirySweeper(repo).sweep(T0 + timedelta(days=31))
        assert len(expired) == 1
        assert any(getattr(r, "event", None) == events.SWEEP_EXPIRED for r in caplog.records)
