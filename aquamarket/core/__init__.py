"""Core domain models, settings, logging configuration, and shared utilities."""

from aquamarket.core.actor import SYSTEM, Actor, ActorRole, AuthContext
from aquamarket.core.clock import Clock, FrozenClock, SystemClock
from aquamarket.core.exceptions import (
    AquamarketError,
    ConcurrentModificationError,
    ConfigError,
    ForbiddenError,
    InvalidRequestError,
    ListingError,
    ListingNotFoundError,
    NotAuthenticatedError,
    NotificationError,
    RejectionReason,
    RestrictedError,
    StorageError,
    TransitionRejectedError,
)
from aquamarket.core.logging_config import JsonFormatter, configure_logging
from aquamarket.core.models import (
    Featuring,
    LifecycleState,
    Listing,
    ListingContent,
    ListingKind,
    ListingPatch,
    ListingStatus,
    RestrictionOverlay,
    SiteSettings,
)
from aquamarket.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "Featuring",
    "LifecycleState",
    "Listing",
    "ListingContent",
    "ListingKind",
    "ListingPatch",
    "ListingStatus",
    "RestrictionOverlay",
    "SiteSettings",
    # Actors / time
    "Actor",
    "ActorRole",
    "AuthContext",
    "SYSTEM",
    "Clock",
    "FrozenClock",
    "SystemClock",
    # Settings
    "Settings",
    # Exceptions: base
    "AquamarketError",
    # Exceptions: config / storage
    "ConfigError",
    "StorageError",
    "ConcurrentModificationError",
    # Exceptions: listing
    "ListingError",
    "InvalidRequestError",
    "ListingNotFoundError",
    "ForbiddenError",
    "NotAuthenticatedError",
    "RejectionReason",
    "TransitionRejectedError",
    "RestrictedError",
    # Exceptions: notification
    "NotificationError",
]
