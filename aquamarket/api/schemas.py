"""Request bodies for the HTTP API.

Field names are camelCase on the wire (``priceCents``, ``featuredUntil``)
and snake_case in Python; both spellings are accepted on input.  Responses
are built with :func:`aquamarket.storage.mapping.listing_to_wire`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aquamarket.core.models import (
    MAX_IMAGES,
    MAX_PRICE_CENTS,
    REASON_MAX_CHARS,
    Category,
    ListingContent,
    ListingKind,
    ListingStatus,
    Sex,
)
from aquamarket.lifecycle.restrictions import RestrictionRequest
from aquamarket.storage.mapping import from_epoch_ms

__all__ = [
    "ListingContentBody",
    "CreateListingBody",
    "FeatureBody",
    "SetStatusBody",
    "RestrictionsBody",
    "RejectBody",
    "SettingsBody",
]

NOTE_MAX_CHARS = 500

# 9999-12-31T23:59:59.999Z
_MAX_EPOCH_MS = 253_402_300_799_999


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ListingContentBody(_Body):
    """Owner-editable fields; validated again by :class:`ListingContent`."""

    title: str
    category: Category
    species: str | None = None
    sex: Sex | None = None
    water_type: str | None = None
    age: str | None = None
    quantity: int = Field(1, ge=1, le=10_000)
    price_cents: int | None = Field(None, ge=0, le=MAX_PRICE_CENTS)
    budget_cents: int | None = Field(None, ge=0, le=MAX_PRICE_CENTS)
    location: str
    description: str
    phone: str
    images: list[str] = Field(default_factory=list, max_length=MAX_IMAGES)

    def to_content(self, kind: ListingKind) -> ListingContent:
        """Content for a listing of *kind*; the field the kind does not use is dropped."""
        return ListingContent(
            title=self.title,
            category=self.category,
            species=self.species,
            sex=self.sex,
            water_type=self.water_type,
            age=self.age,
            quantity=self.quantity,
            price_cents=self.price_cents if kind is ListingKind.SALE else None,
            budget_cents=self.budget_cents if kind is ListingKind.WANTED else None,
            location=self.location,
            description=self.description,
            phone=self.phone,
            image_urls=tuple(self.images),
        )


class CreateListingBody(ListingContentBody):
    kind: ListingKind = ListingKind.SALE
    as_draft: bool = False


class FeatureBody(_Body):
    """``featuredUntil`` in epoch milliseconds, or ``null`` to un-feature."""

    featured_until: int | None = Field(..., ge=0, le=_MAX_EPOCH_MS)

    @property
    def until(self) -> datetime | None:
        return from_epoch_ms(self.featured_until)


class SetStatusBody(_Body):
    status: ListingStatus
    reason: str | None = Field(None, max_length=REASON_MAX_CHARS)


class RestrictionsBody(_Body):
    block_edit: bool = False
    block_pause_resume: bool = False
    block_status_changes: bool = False
    block_featuring: bool = False
    reason: str | None = Field(None, max_length=REASON_MAX_CHARS)

    def to_request(self) -> RestrictionRequest:
        return RestrictionRequest(**self.model_dump())


class RejectBody(_Body):
    note: str | None = Field(None, max_length=NOTE_MAX_CHARS)


class SettingsBody(_Body):
    """Partial update; omitted fields keep their current value."""

    require_approval: bool | None = None
    listing_ttl_days: int | None = Field(None, ge=1, le=365)
    featured_max_days: int | None = Field(None, ge=1, le=3650)

    def changes(self) -> dict[str, Any]:
        return {name: value for name, value in self.model_dump(exclude_unset=True).items() if value is not None}
