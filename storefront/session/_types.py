"""
Identity types.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from storefront._types import utcnow
from storefront.db import OwnerKind


@dataclass(frozen=True, slots=True)
class GuestIdentity:
    """Anonymous shopper. Lifetime is fixed at creation."""

    id: str
    expires_at: datetime

    @property
    def owner(self) -> tuple[str, str]:
        return (OwnerKind.GUEST, self.id)


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """Registered shopper. Nothing is persisted for it by the session store."""

    id: str

    @property
    def owner(self) -> tuple[str, str]:
        return (OwnerKind.USER, self.id)


type Identity = GuestIdentity | UserIdentity


def is_expired(identity: Identity, now: datetime | None = None) -> bool:
    match identity:
        case GuestIdentity(expires_at=expires_at):
            return (now or utcnow()) >= expires_at
        case UserIdentity():
            return False


@dataclass(frozen=True, slots=True)
class SessionContext:
    """
    Explicit per-request session state, passed through handlers instead of
    living in a global.

        ctx = SessionContext(identity=guest)
        ctx = ctx.with_identity(user)   # after login
    """

    identity: Identity | None = None
    token: str | None = None

    @property
    def is_guest(self) -> bool:
        return isinstance(self.identity, GuestIdentity)

    @property
    def guest_id(self) -> str | None:
        match self.identity:
            case GuestIdentity(id=guest_id):
                return guest_id
            case _:
                return None

    def with_identity(self, identity: Identity, token: str | None = None) -> SessionContext:
        return replace(self, identity=identity, token=token)


__all__ = (
    "GuestIdentity",
    "UserIdentity",
    "Identity",
    "is_expired",
    "SessionContext",
)
