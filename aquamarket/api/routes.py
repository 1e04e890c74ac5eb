"""Public and owner routes: ``/api/listings``, ``/api/my`` and ``/health``."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from aquamarket.api.deps import get_auth, get_services
from aquamarket.api.schemas import CreateListingBody, FeatureBody, ListingContentBody
from aquamarket.core.actor import AuthContext
from aquamarket.core.models import Category, Listing, ListingKind
from aquamarket.service import Services
from aquamarket.storage.mapping import listing_to_wire, notification_to_wire
from aquamarket.storage.repository import ListingPage

__all__ = ["router", "health_router", "listing_body", "page_body"]

router = APIRouter(prefix="/api")
health_router = APIRouter()


def listing_body(listing: Listing, auth: AuthContext) -> dict[str, Any]:
    """Wire shape of *listing* as *auth* may see it."""
    is_admin = auth.is_admin or auth.is_superadmin
    return listing_to_wire(
        listing,
        include_restrictions=is_admin or listing.is_owned_by(auth.user_id),
        admin_view=is_admin,
    )


def page_body(page: ListingPage, auth: AuthContext, *, limit: int, offset: int) -> dict[str, Any]:
    return {
        "items": [listing_body(item, auth) for item in page.items],
        "total": page.total,
        "limit": limit,
        "offset": offset,
    }


@health_router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Browse / read
# ---------------------------------------------------------------------------


@router.get("/listings")
async def browse_listings(
    kind: ListingKind | None = None,
    featured: bool = False,
    category: Category | None = None,
    q: str | None = Query(None, max_length=100),
    limit: int = Query(24, ge=1, le=100),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    page = await services.listings.browse(
        kind=kind,
        featured_only=featured,
        category=category.value if category else None,
        query=q,
        limit=limit,
        offset=offset,
    )
    return page_body(page, auth, limit=limit, offset=offset)


@router.get("/listings/featured")
async def featured_listings(
    kind: ListingKind | None = None,
    limit: int = Query(12, ge=1, le=50),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    items = await services.listings.featured(kind=kind, limit=limit)
    return {"items": [listing_body(item, auth) for item in items]}


@router.get("/listings/{listing_id}")
async def get_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.get(auth, listing_id), auth)


# ---------------------------------------------------------------------------
# Owner writes
# ---------------------------------------------------------------------------


@router.post("/listings", status_code=201)
async def create_listing(
    body: CreateListingBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    auth.require_user()
    listing = await services.listings.create(auth, body.kind, body.to_content(body.kind), as_draft=body.as_draft)
    return listing_body(listing, auth)


@router.patch("/listings/{listing_id}")
async def edit_listing(
    listing_id: str,
    body: ListingContentBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    auth.require_user()
    current = await services.repo.require(listing_id)
    listing = await services.listings.edit(auth, listing_id, body.to_content(current.kind))
    return listing_body(listing, auth)


@router.delete("/listings/{listing_id}")
async def delete_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.delete(auth, listing_id), auth)


@router.post("/listings/{listing_id}/publish")
async def publish_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.publish(auth, listing_id), auth)


@router.post("/listings/{listing_id}/pause")
async def pause_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.pause(auth, listing_id), auth)


@router.post("/listings/{listing_id}/resume")
async def resume_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.resume(auth, listing_id), auth)


@router.post("/listings/{listing_id}/resolve")
async def resolve_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.resolve(auth, listing_id), auth)


@router.post("/listings/{listing_id}/relist", status_code=201)
async def relist_listing(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.relist(auth, listing_id), auth)


@router.post("/listings/{listing_id}/feature")
async def feature_listing(
    listing_id: str,
    body: FeatureBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.listings.feature(auth, listing_id, body.until), auth)


# ---------------------------------------------------------------------------
# My account
# ---------------------------------------------------------------------------


@router.get("/my/listings")
async def my_listings(
    kind: ListingKind | None = None,
    include_deleted: bool = Query(False, alias="includeDeleted"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    page = await services.listings.list_mine(
        auth, kind=kind, include_deleted=include_deleted, limit=limit, offset=offset
    )
    return page_body(page, auth, limit=limit, offset=offset)


@router.get("/my/notifications")
async def my_notifications(
    unread: bool = False,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    items = await services.listings.notifications(auth, unread_only=unread)
    return {"items": [notification_to_wire(item) for item in items]}
