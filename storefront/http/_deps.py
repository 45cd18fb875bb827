"""
Request dependencies — the storefront container and caller identity.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kungfu import Ok, Error, Result

from storefront.app import Storefront
from storefront.errors import Unauthenticated
from storefront.session import GuestIdentity, Identity, UserIdentity
from storefront.http._errors import ApiError

_bearer = HTTPBearer(auto_error=False)


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


StorefrontDep = Annotated[Storefront, Depends(get_storefront)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


def unwrap[T](result: Result[T, object]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise ApiError.of(e)


def current_user(store: StorefrontDep, credentials: BearerDep) -> UserIdentity:
    if credentials is None:
        raise ApiError.of(Unauthenticated("Not authorized, no token"))
    return unwrap(store.sessions.resolve_identity(credentials.credentials))


async def guest_from_path(guest_id: str, store: StorefrontDep) -> GuestIdentity:
    return unwrap(await store.sessions.resolve_guest(guest_id))


UserDep = Annotated[UserIdentity, Depends(current_user)]
GuestDep = Annotated[GuestIdentity, Depends(guest_from_path)]


async def resolve_caller(
    store: Storefront,
    credentials: HTTPAuthorizationCredentials | None,
    guest_id: str | None,
) -> Identity:
    """Bearer token wins; otherwise the body's guestId. Never falls back on a bad token."""
    if credentials is not None:
        return unwrap(store.sessions.resolve_identity(credentials.credentials))
    if guest_id:
        return unwrap(await store.sessions.resolve_guest(guest_id))
    raise ApiError.of(Unauthenticated("Not authorized, no token"))


__all__ = (
    "StorefrontDep",
    "BearerDep",
    "UserDep",
    "GuestDep",
    "unwrap",
    "resolve_caller",
)
