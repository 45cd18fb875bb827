"""
Session Store — guest sessions and user tokens.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

import jwt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront._sql import insert_for
from storefront.config import Settings
from storefront.db import CartLineTable, CartTable, GuestSessionTable, OrderTable, OwnerKind
from storefront.errors import SessionExpired, Unauthenticated
from storefront.session._storage import ClientStorage
from storefront.session._types import GuestIdentity, UserIdentity, Identity, is_expired

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


def new_guest_id() -> str:
    return f"guest_{secrets.token_hex(16)}"


class SessionStore:
    """
    Resolves who is calling.

    Guest sessions are rows with a fixed expiry; user identities are
    stateless signed tokens.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings

    # ═══════════════════════════════════════════════════════════════════════════
    # Guests
    # ═══════════════════════════════════════════════════════════════════════════

    async def init_guest_session(self) -> GuestIdentity:
        """Issue a fresh guest session with an empty cart. Never reuses ids."""
        now = utcnow()
        guest = GuestIdentity(
            id=new_guest_id(),
            expires_at=now + timedelta(days=self._settings.guest_session_ttl_days),
        )
        async with self._session_factory.begin() as session:
            session.add(GuestSessionTable(id=guest.id, created_at=now, expires_at=guest.expires_at))
            await session.execute(
                insert_for(session, CartTable)
                .values(owner_kind=OwnerKind.GUEST, owner_id=guest.id, updated_at=now)
                .on_conflict_do_nothing(index_elements=["owner_kind", "owner_id"])
            )
        logger.info("Guest session %s initialized", guest.id)
        return guest

    async def resolve_guest(self, guest_id: str) -> Result[GuestIdentity, SessionExpired]:
        """
        Lazy expiry: unknown, expired or converted sessions are all "gone" and
        the client should re-init.
        """
        async with self._session_factory() as session:
            row = await session.get(GuestSessionTable, guest_id)

        if row is None or row.converted_at is not None:
            return Error(SessionExpired(guest_id))

        guest = GuestIdentity(id=row.id, expires_at=row.expires_at)
        if is_expired(guest):
            return Error(SessionExpired(guest_id))
        return Ok(guest)

    async def ensure_guest(self, storage: ClientStorage) -> GuestIdentity:
        """
        Client-side helper: reuse the stored guest session, or silently start a
        new one when it is missing or gone.
        """
        stored = storage.load_guest_id()
        if stored is not None:
            match await self.resolve_guest(stored):
                case Ok(guest):
                    return guest
                case Error(_):
                    logger.info("Guest session %s is gone, issuing a new one", stored)

        guest = await self.init_guest_session()
        storage.save_guest_id(guest.id)
        return guest

    async def purge_expired(self, now: datetime | None = None) -> int:
        """
        Delete expired guest carts, and the expired sessions nothing refers to.

        Note: sessions with a conversion in flight are kept for the retry.
        Sessions that placed orders keep their row (cart gone) so a later
        sign-up can still link those orders by guest id.
        """
        cutoff = now or utcnow()
        async with self._session_factory.begin() as session:
            expired = select(GuestSessionTable.id).where(
                GuestSessionTable.expires_at <= cutoff,
                GuestSessionTable.claimed_by.is_(None),
            )
            has_orders = (
                select(OrderTable.id)
                .where(
                    OrderTable.owner_kind == OwnerKind.GUEST,
                    OrderTable.owner_id == GuestSessionTable.id,
                )
                .exists()
            )
            cart_ids = select(CartTable.id).where(
                CartTable.owner_kind == OwnerKind.GUEST,
                CartTable.owner_id.in_(expired),
            )
            await session.execute(delete(CartLineTable).where(CartLineTable.cart_id.in_(cart_ids)))
            await session.execute(
                delete(CartTable).where(
                    CartTable.owner_kind == OwnerKind.GUEST,
                    CartTable.owner_id.in_(expired),
                )
            )
            result = await session.execute(
                delete(GuestSessionTable).where(
                    GuestSessionTable.expires_at <= cutoff,
                    GuestSessionTable.claimed_by.is_(None),
                    ~has_orders,
                )
            )
        purged: int = result.rowcount  # type: ignore[attr-defined]
        if purged:
            logger.info("Purged %d expired guest sessions", purged)
        return purged

    # ═══════════════════════════════════════════════════════════════════════════
    # Users
    # ═══════════════════════════════════════════════════════════════════════════

    def issue_user_token(self, user_id: str) -> str:
        now = utcnow()
        claims = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(hours=self._settings.user_token_ttl_hours),
        }
        return jwt.encode(claims, self._settings.jwt_secret, algorithm=_ALGORITHM)

    def resolve_identity(self, credential_token: str) -> Result[UserIdentity, Unauthenticated]:
        """Verify signature and expiry. No guest fallback on failure."""
        try:
            claims = jwt.decode(
                credential_token,
                self._settings.jwt_secret,
                algorithms=[_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            return Error(Unauthenticated("Token expired"))
        except jwt.PyJWTError:
            return Error(Unauthenticated())
        return Ok(UserIdentity(id=str(claims["sub"])))

    @staticmethod
    def is_expired(identity: Identity, now: datetime | None = None) -> bool:
        return is_expired(identity, now)


__all__ = ("SessionStore", "new_guest_id")
