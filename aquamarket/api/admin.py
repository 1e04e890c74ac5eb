"""Admin console routes under ``/api/admin``.

Role checks happen in :class:`~aquamarket.service.moderation.ModerationService`;
featuring and site settings require the superadmin role.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query

from aquamarket.api.deps import get_auth, get_services
from aquamarket.api.routes import listing_body, page_body
from aquamarket.api.schemas import FeatureBody, RejectBody, RestrictionsBody, SetStatusBody, SettingsBody
from aquamarket.core.actor import AuthContext
from aquamarket.core.models import ListingKind, ListingStatus, SiteSettings
from aquamarket.service import Services
from aquamarket.storage.mapping import audit_entry_to_wire

__all__ = ["router"]

router = APIRouter(prefix="/api/admin")

RestrictionFilter = Literal["any", "none", "edit", "status", "featuring"]


def _settings_body(site: SiteSettings) -> dict[str, Any]:
    return {
        "requireApproval": site.require_approval,
        "listingTtlDays": site.listing_ttl_days,
        "featuredMaxDays": site.featured_max_days,
    }


# ---------------------------------------------------------------------------
# Listings console
# ---------------------------------------------------------------------------


@router.get("/listings")
async def admin_listings(
    status: ListingStatus | None = None,
    kind: ListingKind | None = None,
    restrictions: RestrictionFilter | None = None,
    featured: bool = False,
    user_id: int | None = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    page = await services.moderation.list_listings(
        auth,
        status=status,
        kind=kind,
        restrictions=restrictions,
        featured_only=featured,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return page_body(page, auth, limit=limit, offset=offset)


@router.post("/listings/{listing_id}/status")
async def admin_set_status(
    listing_id: str,
    body: SetStatusBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    listing = await services.moderation.set_status(auth, listing_id, body.status, reason=body.reason)
    return listing_body(listing, auth)


@router.post("/listings/{listing_id}/featured")
async def admin_set_featured(
    listing_id: str,
    body: FeatureBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    listing = await services.moderation.set_featured(auth, listing_id, body.until)
    return listing_body(listing, auth)


@router.post("/listings/{listing_id}/restrictions")
async def admin_set_restrictions(
    listing_id: str,
    body: RestrictionsBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    listing = await services.moderation.set_restrictions(auth, listing_id, body.to_request())
    return listing_body(listing, auth)


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


@router.get("/approvals")
async def admin_approvals(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    page = await services.moderation.approvals(auth, limit=limit, offset=offset)
    return page_body(page, auth, limit=limit, offset=offset)


@router.post("/approvals/{listing_id}/approve")
async def admin_approve(
    listing_id: str,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return listing_body(await services.moderation.approve(auth, listing_id), auth)


@router.post("/approvals/{listing_id}/reject")
async def admin_reject(
    listing_id: str,
    body: RejectBody | None = None,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    note = body.note if body is not None else None
    return listing_body(await services.moderation.reject(auth, listing_id, note=note), auth)


# ---------------------------------------------------------------------------
# Settings / audit / sweep
# ---------------------------------------------------------------------------


@router.get("/settings")
async def admin_get_settings(
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return _settings_body(await services.moderation.get_settings(auth))


@router.put("/settings")
async def admin_put_settings(
    body: SettingsBody,
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return _settings_body(await services.moderation.update_settings(auth, body.changes()))


@router.get("/audit")
async def admin_audit(
    action: str | None = None,
    target_id: str | None = Query(None, alias="targetId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    entries = await services.moderation.audit_log(
        auth, action=action, target_id=target_id, limit=limit, offset=offset
    )
    return {"items": [audit_entry_to_wire(entry) for entry in entries]}


@router.post("/sweep")
async def admin_sweep(
    auth: AuthContext = Depends(get_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    expired = await services.moderation.sweep(auth)
    return {"expired": [item.listing_id for item in expired], "count": len(expired)}
