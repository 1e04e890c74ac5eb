"""Listing lifecycle rules: status engine, restriction overlay and featuring.

Public API
----------
* :func:`~aquamarket.lifecycle.engine.transition`: owner / admin / system
  status changes as a :class:`~aquamarket.core.models.ListingPatch`.
* :func:`~aquamarket.lifecycle.engine.plan_relist`: archive-and-copy of a
  resolved listing.
* :func:`~aquamarket.lifecycle.restrictions.set_restrictions`: admin
  overlay overwrite.
* :func:`~aquamarket.lifecycle.featuring.set_featured`: featuring window.

The expiry sweeper touches storage and is imported from
:mod:`aquamarket.lifecycle.sweeper` directly.
"""

from aquamarket.lifecycle.engine import (
    approve,
    check_owner_edit,
    create_listing,
    ensure_not_terminal,
    initial_status,
    is_publicly_visible,
    plan_relist,
    reject,
    transition,
)
from aquamarket.lifecycle.featuring import FEATURED_SQL, is_featured_now, set_featured
from aquamarket.lifecycle.restrictions import (
    RESTRICTION_FILTERS,
    OwnerAction,
    RestrictionRequest,
    ensure_owner_allowed,
    owner_view,
    set_restrictions,
)

__all__ = [
    # Engine
    "transition",
    "approve",
    "reject",
    "plan_relist",
    "check_owner_edit",
    "create_listing",
    "initial_status",
    "is_publicly_visible",
    "ensure_not_terminal",
    # Overlay
    "OwnerAction",
    "RestrictionRequest",
    "ensure_owner_allowed",
    "owner_view",
    "set_restrictions",
    "RESTRICTION_FILTERS",
    # Featuring
    "FEATURED_SQL",
    "is_featured_now",
    "set_featured",
]
