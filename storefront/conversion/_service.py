"""
Guest Conversion Service — move a guest's orders and cart to a user, once.

    claim → orders → cart → finish

Each step is one transaction that also writes its checkpoint on the guest
session row. A failed step leaves earlier checkpoints in place and the next
convert() call resumes at the first unfinished step, so orders are never
linked twice and cart lines are never merged twice.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront._types import utcnow
from storefront.cart import CartEngine, CartLine
from storefront.db import CartLineTable, CartTable, GuestSessionTable, OrderTable, OwnerKind
from storefront.errors import ConversionPartialFailure
from storefront.conversion._types import NOTHING, ConversionReport, ConversionStep

logger = logging.getLogger(__name__)


def _dump(lines: tuple[CartLine, ...]) -> list[dict[str, Any]]:
    return [
        {
            "product_id": l.product_id,
            "size": l.size,
            "color": l.color,
            "quantity": l.quantity,
            "price_at_add": l.price_at_add,
        }
        for l in lines
    ]


def _load(data: list[dict[str, Any]] | None) -> tuple[CartLine, ...]:
    return tuple(CartLine(**item) for item in data or ())


class ConversionService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cart: CartEngine,
    ) -> None:
        self._session_factory = session_factory
        self._cart = cart

    async def convert(
        self, guest_id: str, user_id: str
    ) -> Result[ConversionReport, ConversionPartialFailure]:
        """
        Link the guest's orders and merge its cart into `user_id`.

        Unknown, already converted, or claimed-by-someone-else guests are a
        no-op returning the empty report.
        """
        match await self._step(guest_id, ConversionStep.CLAIM, lambda: self._claim(guest_id, user_id)):
            case Error(e):
                return Error(e)
            case Ok(claimed):
                if not claimed:
                    return Ok(NOTHING)

        steps: tuple[tuple[ConversionStep, Callable[[], Awaitable[None]]], ...] = (
            (ConversionStep.ORDERS, lambda: self._link_orders(guest_id, user_id)),
            (ConversionStep.CART, lambda: self._merge_cart(guest_id, user_id)),
            (ConversionStep.FINISH, lambda: self._finish(guest_id)),
        )
        for name, action in steps:
            match await self._step(guest_id, name, action):
                case Error(e):
                    logger.warning(
                        "Conversion of %s stopped at %s: %s", guest_id, e.step.value, e.message
                    )
                    return Error(e)
                case Ok(_):
                    pass

        async with self._session_factory() as session:
            row = await session.get(GuestSessionTable, guest_id)
        assert row is not None
        report = ConversionReport(
            orders_linked=row.orders_linked,
            cart_merged=row.cart_merged,
            dropped_lines=_load(row.dropped_lines),
            clamped_lines=_load(row.clamped_lines),
        )
        logger.info(
            "Guest %s converted to user %s: %d orders, cart merged=%s, %d dropped, %d clamped",
            guest_id, user_id, report.orders_linked, report.cart_merged,
            len(report.dropped_lines), len(report.clamped_lines),
        )
        return Ok(report)

    async def _step[T](
        self, guest_id: str, name: ConversionStep, action: Callable[[], Awaitable[T]]
    ) -> Result[T, ConversionPartialFailure]:
        return await L.catching_async(
            action,
            on_error=lambda e: ConversionPartialFailure(guest_id, name, str(e)),
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Steps
    # ═══════════════════════════════════════════════════════════════════════════

    async def _claim(self, guest_id: str, user_id: str) -> bool:
        async with self._session_factory.begin() as session:
            await session.execute(
                update(GuestSessionTable)
                .where(
                    GuestSessionTable.id == guest_id,
                    GuestSessionTable.claimed_by.is_(None),
                    GuestSessionTable.converted_at.is_(None),
                )
                .values(claimed_by=user_id)
            )
            row = await session.get(GuestSessionTable, guest_id)
            if row is None:
                return False
            if row.converted_at is not None:
                return False
            if row.claimed_by != user_id:
                logger.warning(
                    "Guest %s is already claimed by another user, not converting for %s",
                    guest_id, user_id,
                )
                return False
            return True

    async def _link_orders(self, guest_id: str, user_id: str) -> None:
        now = utcnow()
        async with self._session_factory.begin() as session:
            checkpoint = await session.execute(
                update(GuestSessionTable)
                .where(
                    GuestSessionTable.id == guest_id,
                    GuestSessionTable.orders_linked_at.is_(None),
                )
                .values(orders_linked_at=now)
            )
            if checkpoint.rowcount == 0:  # type: ignore[attr-defined]
                return

            # The owner guard skips anything already re-owned.
            reowned = await session.execute(
                update(OrderTable)
                .where(
                    OrderTable.owner_kind == OwnerKind.GUEST,
                    OrderTable.owner_id == guest_id,
                )
                .values(owner_kind=OwnerKind.USER, owner_id=user_id, reowned_at=now)
            )
            await session.execute(
                update(GuestSessionTable)
                .where(GuestSessionTable.id == guest_id)
                .values(orders_linked=reowned.rowcount)  # type: ignore[attr-defined]
            )

    async def _merge_cart(self, guest_id: str, user_id: str) -> None:
        now = utcnow()
        async with self._session_factory.begin() as session:
            checkpoint = await session.execute(
                update(GuestSessionTable)
                .where(
                    GuestSessionTable.id == guest_id,
                    GuestSessionTable.cart_merged_at.is_(None),
                )
                .values(cart_merged_at=now)
            )
            if checkpoint.rowcount == 0:  # type: ignore[attr-defined]
                return

            row = await session.get(GuestSessionTable, guest_id)
            assert row is not None
            guest = (OwnerKind.GUEST, guest_id)

            # An expired guest cart is no longer reachable; nothing to carry.
            if row.expires_at <= now:
                return

            lines = await self._cart.lines_in(session, guest)
            if not lines:
                return

            report = await self._cart.merge_in(session, (OwnerKind.USER, user_id), lines)
            guest_carts = select(CartTable.id).where(
                CartTable.owner_kind == OwnerKind.GUEST, CartTable.owner_id == guest_id
            )
            await session.execute(
                delete(CartLineTable).where(CartLineTable.cart_id.in_(guest_carts))
            )
            await session.execute(
                update(GuestSessionTable)
                .where(GuestSessionTable.id == guest_id)
                .values(
                    cart_merged=bool(report.merged),
                    dropped_lines=_dump(report.dropped),
                    clamped_lines=_dump(report.clamped),
                )
            )

    async def _finish(self, guest_id: str) -> None:
        async with self._session_factory.begin() as session:
            await session.execute(
                update(GuestSessionTable)
                .where(
                    GuestSessionTable.id == guest_id,
                    GuestSessionTable.converted_at.is_(None),
                )
                .values(converted_at=utcnow())
            )

    # ═══════════════════════════════════════════════════════════════════════════
    # Retries and extras
    # ═══════════════════════════════════════════════════════════════════════════

    async def pending_for_user(self, user_id: str) -> list[str]:
        """Guest sessions this user claimed whose conversion never finished."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(GuestSessionTable.id)
                .where(
                    GuestSessionTable.claimed_by == user_id,
                    GuestSessionTable.converted_at.is_(None),
                )
                .order_by(GuestSessionTable.created_at)
            )
            return list(rows.scalars().all())

    async def resume_pending(
        self, user_id: str
    ) -> list[Result[ConversionReport, ConversionPartialFailure]]:
        return [await self.convert(guest_id, user_id) for guest_id in await self.pending_for_user(user_id)]

    async def link_orders_by_email(self, email: str, user_id: str) -> int:
        """Re-own guest orders placed with this contact email."""
        async with self._session_factory.begin() as session:
            cursor = await session.execute(
                update(OrderTable)
                .where(
                    OrderTable.owner_kind == OwnerKind.GUEST,
                    func.lower(OrderTable.contact_email) == email.strip().lower(),
                )
                .values(owner_kind=OwnerKind.USER, owner_id=user_id, reowned_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        linked: int = cursor.rowcount  # type: ignore[attr-defined]
        if linked:
            logger.info("Linked %d guest orders to user %s by email", linked, user_id)
        return linked


__all__ = ("ConversionService",)
