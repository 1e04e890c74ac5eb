"""Who is asking: authentication context and lifecycle actor.

Two small frozen values are threaded through every request:

:class:`AuthContext`
    What the upstream auth gateway told us about the caller
    (``user_id``, ``is_admin``, ``is_superadmin``) or anonymous.

:class:`Actor`
    The *tier* a lifecycle decision is evaluated for.  The same admin user
    acts as an :attr:`ActorRole.OWNER` when they use the owner endpoints on
    their own listing and as :attr:`ActorRole.ADMIN` on the admin console.
    The expiry sweep acts as :data:`SYSTEM`.

Typical usage::

    from aquamarket.core.actor import Actor, AuthContext

    auth = AuthContext(user_id=7)
    actor = Actor.owner(auth.require_user())
    patch = transition(listing, ListingStatus.PAUSED, actor, now=now)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from aquamarket.core.exceptions import ForbiddenError, NotAuthenticatedError

__all__ = ["ActorRole", "Actor", "AuthContext", "SYSTEM"]

logger = logging.getLogger(__name__)


class ActorRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Immutable lifecycle actor.

    Attributes:
        role: Authority tier the decision is evaluated for.
        user_id: Acting user; ``None`` only for :data:`SYSTEM`.
    """

    role: ActorRole
    user_id: int | None = field(default=None)

    def __post_init__(self) -> None:
        if self.role is not ActorRole.SYSTEM and self.user_id is None:
            raise ValueError(f"{self.role.value} actor requires a user_id")

    @classmethod
    def owner(cls, user_id: int) -> Actor:
        return cls(ActorRole.OWNER, user_id)

    @classmethod
    def admin(cls, user_id: int) -> Actor:
        return cls(ActorRole.ADMIN, user_id)

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN

    @property
    def is_system(self) -> bool:
        return self.role is ActorRole.SYSTEM

    def __str__(self) -> str:
        if self.user_id is None:
            return self.role.value
        return f"{self.role.value}:{self.user_id}"


#: The expiry sweep's actor.
SYSTEM = Actor(ActorRole.SYSTEM)


@dataclass(frozen=True)
class AuthContext:
    """Caller identity as supplied by the auth collaborator.

    Attributes:
        user_id: Signed-in user, or ``None`` for anonymous callers.
        is_admin: Caller may use the moderation console.
        is_superadmin: Caller may change featuring and site settings.
            Implies ``is_admin``.
    """

    user_id: int | None = None
    is_admin: bool = False
    is_superadmin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def require_user(self) -> int:
        """Return the user id or raise :exc:`NotAuthenticatedError`."""
        if self.user_id is None:
            raise NotAuthenticatedError()
        return self.user_id

    def require_admin(self, *, superadmin: bool = False) -> Actor:
        """Return an admin :class:`Actor` or raise :exc:`ForbiddenError`.

        Args:
            superadmin: Require the superadmin role instead of plain admin.
        """
        user_id = self.require_user()
        if superadmin and not self.is_superadmin:
            raise ForbiddenError("Superadmin access required")
        if not (self.is_admin or self.is_superadmin):
            raise ForbiddenError("Admin access required")
        return Actor.admin(user_id)
