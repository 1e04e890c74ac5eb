"""Best-effort side channels: admin audit log and owner notifications."""

from aquamarket.notifiers.audit import AuditRecorder
from aquamarket.notifiers.dispatcher import Dispatcher
from aquamarket.notifiers.formatter import (
    listing_status_body,
    listing_status_title,
    with_listing_title,
)
from aquamarket.notifiers.notifier import Notifier

__all__ = [
    "AuditRecorder",
    "Dispatcher",
    "Notifier",
    "listing_status_body",
    "listing_status_title",
    "with_listing_title",
]
