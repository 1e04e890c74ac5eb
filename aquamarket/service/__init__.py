"""Request orchestration: sweep, decide, persist, emit.

Public API
----------
* :class:`Services` builds and holds every collaborator for one database.
* :class:`~aquamarket.service.listings.ListingService` is the owner and
  public side.
* :class:`~aquamarket.service.moderation.ModerationService` is the admin
  console.
"""

from __future__ import annotations

from dataclasses import dataclass

from aquamarket.core.clock import Clock, SystemClock
from aquamarket.core.settings import Settings
from aquamarket.lifecycle.sweeper import ExpirySweeper
from aquamarket.notifiers.audit import AuditRecorder
from aquamarket.notifiers.dispatcher import Dispatcher
from aquamarket.notifiers.notifier import Notifier
from aquamarket.service.listings import ListingService
from aquamarket.service.moderation import ModerationService
from aquamarket.storage.database import Database
from aquamarket.storage.repository import ListingRepository
from aquamarket.storage.site_settings import SiteSettingsStore, defaults_from

__all__ = ["Services", "ListingService", "ModerationService"]


@dataclass(frozen=True)
class Services:
    """Every service wired to one :class:`Database`."""

    db: Database
    repo: ListingRepository
    site_settings: SiteSettingsStore
    sweeper: ExpirySweeper
    audit: AuditRecorder
    notifier: Notifier
    dispatcher: Dispatcher
    listings: ListingService
    moderation: ModerationService

    @classmethod
    def build(cls, db: Database, settings: Settings, *, clock: Clock | None = None) -> Services:
        clock = clock or SystemClock()
        repo = ListingRepository(db)
        site_settings = SiteSettingsStore(db, defaults_from(settings))
        audit = AuditRecorder(db)
        notifier = Notifier(db)
        dispatcher = Dispatcher()
        sweeper = ExpirySweeper(repo, notifier=notifier, dispatcher=dispatcher, clock=clock)
        deps = dict(
            repo=repo,
            site_settings=site_settings,
            sweeper=sweeper,
            audit=audit,
            notifier=notifier,
            dispatcher=dispatcher,
            clock=clock,
        )
        return cls(
            db=db,
            repo=repo,
            site_settings=site_settings,
            sweeper=sweeper,
            audit=audit,
            notifier=notifier,
            dispatcher=dispatcher,
            listings=ListingService(**deps),
            moderation=ModerationService(**deps),
        )
