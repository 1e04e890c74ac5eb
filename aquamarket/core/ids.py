"""Identifier strategy for Aquamarket rows.

Listings, audit entries and notifications all use opaque uuid4 hex strings.
A relisted listing always receives a *new* id; ids are never reused, so a
client holding an old id keeps seeing the archived row, not its successor.

Typical usage::

    from aquamarket.core.ids import new_id, is_valid_id

    listing_id = new_id()
    assert is_valid_id(listing_id)
"""

from __future__ import annotations

import logging
import re
import uuid

__all__ = ["new_id", "is_valid_id"]

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    """Return a fresh 32-character lowercase hex identifier."""
    return uuid.uuid4().hex


def is_valid_id(value: str) -> bool:
    """Return ``True`` if *value* has the shape produced by :func:`new_id`.

    Used by the HTTP layer to answer obviously malformed ids with 404
    without touching the database.
    """
    return bool(_ID_RE.match(value))
