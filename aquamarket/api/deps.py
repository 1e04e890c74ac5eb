"""FastAPI dependencies: caller identity and the service container.

Authentication happens upstream.  The gateway forwards the verified caller
as two trusted headers:

``X-Auth-User-Id``
    Decimal user id; absent for anonymous callers.
``X-Auth-Roles``
    Comma-separated roles, e.g. ``admin`` or ``admin,superadmin``.
"""

from __future__ import annotations

from fastapi import Header, Request

from aquamarket.core.actor import AuthContext
from aquamarket.core.exceptions import NotAuthenticatedError
from aquamarket.service import Services

__all__ = ["get_auth", "get_services", "parse_auth"]

_ADMIN = "admin"
_SUPERADMIN = "superadmin"


def parse_auth(user_id: str | None, roles: str | None) -> AuthContext:
    """Build an :class:`AuthContext` from the raw header values.

    Raises:
        NotAuthenticatedError: *user_id* is present but not a positive integer.
    """
    if user_id is None or not user_id.strip():
        return AuthContext()
    try:
        uid = int(user_id.strip())
    except ValueError:
        raise NotAuthenticatedError("Invalid user id header") from None
    if uid <= 0:
        raise NotAuthenticatedError("Invalid user id header")
    role_set = {role.strip().lower() for role in (roles or "").split(",") if role.strip()}
    superadmin = _SUPERADMIN in role_set
    return AuthContext(user_id=uid, is_admin=superadmin or _ADMIN in role_set, is_superadmin=superadmin)


async def get_auth(
    x_auth_user_id: str | None = Header(None),
    x_auth_roles: str | None = Header(None),
) -> AuthContext:
    return parse_auth(x_auth_user_id, x_auth_roles)


async def get_services(request: Request) -> Services:
    return request.app.state.services
