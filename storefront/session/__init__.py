"""
Session — who is calling: a guest session or a signed-in user.

    from storefront import session as Sess

    guest = await store.init_guest_session()
    match store.resolve_identity(token):
        case Ok(user): ...
        case Error(Unauthenticated()): ...
"""

from storefront.session._types import (
    GuestIdentity,
    UserIdentity,
    Identity,
    is_expired,
    SessionContext,
)
from storefront.session._storage import ClientStorage, MemoryClientStorage
from storefront.session._store import SessionStore, new_guest_id

__all__ = (
    "GuestIdentity",
    "UserIdentity",
    "Identity",
    "is_expired",
    "SessionContext",
    "ClientStorage",
    "MemoryClientStorage",
    "SessionStore",
    "new_guest_id",
)
