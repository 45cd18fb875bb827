"""
Cart Engine — line CRUD with concurrency-safe quantity arithmetic.

Every operation is one transaction scoped to the owner's cart row and
returns the recomputed snapshot:

    match await engine.add_item(guest, "P1", "M", "red", 2):
        case Ok(cart):
            cart.item_count, cart.subtotal
        case Error(e):
            e.message

Adds are commutative: the increment happens in the database
(ON CONFLICT DO UPDATE SET quantity = quantity + excluded.quantity), so
two tabs adding the same item never lose an increment. Updates are last
write wins.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront._sql import insert_for
from storefront.catalog import Catalog
from storefront.config import Settings
from storefront.db import CartLineTable, CartTable
from storefront.errors import (
    CartError,
    InvalidQuantity,
    LineNotFound,
    SessionExpired,
    StorageFailed,
    VariantUnavailable,
)
from storefront.session import GuestIdentity, Identity, is_expired
from storefront.cart._types import CartLine, CartSnapshot, MergeReport, VariantKey

logger = logging.getLogger(__name__)

_LINE_KEY = ["cart_id", "saved", "product_id", "size", "color"]


class _Rejected(Exception):
    """Aborts the surrounding transaction with a domain error."""

    def __init__(self, error: CartError) -> None:
        self.error = error


def _line(row: CartLineTable) -> CartLine:
    return CartLine(
        product_id=row.product_id,
        size=row.size,
        color=row.color,
        quantity=row.quantity,
        price_at_add=row.price_at_add,
    )


def _key_filter(cart_id: int, saved: bool, key: VariantKey) -> tuple[Any, ...]:
    return (
        CartLineTable.cart_id == cart_id,
        CartLineTable.saved == saved,
        CartLineTable.product_id == key.product_id,
        CartLineTable.size == key.size,
        CartLineTable.color == key.color,
    )


class CartEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: Catalog,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._max_quantity = settings.max_line_quantity

    # ═══════════════════════════════════════════════════════════════════════════
    # Plumbing
    # ═══════════════════════════════════════════════════════════════════════════

    async def _atomically[T](
        self,
        identity: Identity,
        work: Callable[[AsyncSession, int], Awaitable[T]],
    ) -> Result[T, CartError]:
        """Run `work(session, cart_id)` in one transaction on the owner's cart."""
        if isinstance(identity, GuestIdentity) and is_expired(identity):
            return Error(SessionExpired(identity.id))

        try:
            async with self._session_factory.begin() as session:
                cart_id = await self._cart_id(session, identity.owner)
                return Ok(await work(session, cart_id))
        except _Rejected as rejected:
            return Error(rejected.error)
        except SQLAlchemyError as e:
            logger.exception("Cart storage failure for %s:%s", *identity.owner)
            return Error(StorageFailed(str(e)))

    async def _cart_id(self, session: AsyncSession, owner: tuple[str, str]) -> int:
        """Lazily create the owner's cart; the unique owner pair makes this race-free."""
        owner_kind, owner_id = owner
        await session.execute(
            insert_for(session, CartTable)
            .values(owner_kind=owner_kind, owner_id=owner_id, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=["owner_kind", "owner_id"])
        )
        return (
            await session.execute(
                select(CartTable.id).where(
                    CartTable.owner_kind == owner_kind, CartTable.owner_id == owner_id
                )
            )
        ).scalar_one()

    async def _touch(self, session: AsyncSession, cart_id: int) -> None:
        await session.execute(
            update(CartTable).where(CartTable.id == cart_id).values(updated_at=utcnow())
        )

    async def _snapshot(self, session: AsyncSession, cart_id: int) -> CartSnapshot:
        cart = (
            await session.execute(select(CartTable).where(CartTable.id == cart_id))
        ).scalar_one()
        rows = (
            await session.execute(
                select(CartLineTable)
                .where(CartLineTable.cart_id == cart_id)
                .order_by(CartLineTable.id)
            )
        ).scalars().all()
        return CartSnapshot(
            owner_kind=cart.owner_kind,
            owner_id=cart.owner_id,
            lines=tuple(_line(r) for r in rows if not r.saved),
            saved=tuple(_line(r) for r in rows if r.saved),
            updated_at=cart.updated_at,
        )

    async def _find(
        self, session: AsyncSession, cart_id: int, saved: bool, key: VariantKey
    ) -> CartLineTable | None:
        return (
            await session.execute(
                select(CartLineTable).where(*_key_filter(cart_id, saved, key))
            )
        ).scalar_one_or_none()

    async def _quantity(
        self, session: AsyncSession, cart_id: int, saved: bool, key: VariantKey
    ) -> int:
        """Current quantity of a line, 0 when absent. Reads the column, not the ORM row."""
        quantity = (
            await session.execute(
                select(CartLineTable.quantity).where(*_key_filter(cart_id, saved, key))
            )
        ).scalar_one_or_none()
        return quantity or 0

    async def _upsert(
        self, session: AsyncSession, cart_id: int, saved: bool, line: CartLine
    ) -> bool:
        """
        Insert the line or increment the existing one in a single statement.
        Returns False, changing nothing, when the sum would pass the limit.
        """
        stmt = insert_for(session, CartLineTable).values(
            cart_id=cart_id,
            saved=saved,
            product_id=line.product_id,
            size=line.size,
            color=line.color,
            quantity=line.quantity,
            price_at_add=line.price_at_add,
            added_at=utcnow(),
        )
        summed = CartLineTable.quantity + stmt.excluded.quantity
        stmt = stmt.on_conflict_do_update(
            index_elements=_LINE_KEY,
            set_={"quantity": summed},
            where=summed <= self._max_quantity,
        )
        cursor = await session.execute(stmt)
        return bool(cursor.rowcount)  # type: ignore[attr-defined]

    def _check_quantity(self, quantity: int) -> InvalidQuantity | None:
        if quantity < 1:
            return InvalidQuantity(quantity)
        if quantity > self._max_quantity:
            return InvalidQuantity(
                quantity, f"Maximum {self._max_quantity} items allowed per product"
            )
        return None

    # ═══════════════════════════════════════════════════════════════════════════
    # Operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_cart(self, identity: Identity) -> Result[CartSnapshot, CartError]:
        """Fetch the cart, creating an empty one on first access."""

        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def add_item(
        self,
        identity: Identity,
        product_id: str,
        size: str,
        color: str,
        quantity: int,
    ) -> Result[CartSnapshot, CartError]:
        if (invalid := self._check_quantity(quantity)) is not None:
            return Error(invalid)

        variant = await self._catalog.get_variant(product_id, size, color)
        if variant is None or not variant.orderable:
            return Error(VariantUnavailable(product_id, size, color))

        line = CartLine(product_id, size, color, quantity, variant.price)

        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            if not await self._upsert(session, cart_id, False, line):
                raise _Rejected(InvalidQuantity(
                    quantity, f"Maximum {self._max_quantity} items allowed per product"
                ))
            await self._touch(session, cart_id)
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def update_item(
        self,
        identity: Identity,
        product_id: str,
        size: str,
        color: str,
        quantity: int,
    ) -> Result[CartSnapshot, CartError]:
        """Set the quantity outright. Use remove_item to drop a line."""
        if (invalid := self._check_quantity(quantity)) is not None:
            return Error(invalid)
        key = VariantKey(product_id, size, color)

        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            row = await self._find(session, cart_id, False, key)
            if row is None:
                raise _Rejected(LineNotFound(product_id, size, color))
            if row.quantity != quantity:
                row.quantity = quantity
                await self._touch(session, cart_id)
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def remove_item(
        self, identity: Identity, product_id: str, size: str, color: str
    ) -> Result[CartSnapshot, CartError]:
        """Idempotent: a missing line is a successful no-op."""
        key = VariantKey(product_id, size, color)

        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            cursor = await session.execute(
                delete(CartLineTable).where(*_key_filter(cart_id, False, key))
            )
            if cursor.rowcount:  # type: ignore[attr-defined]
                await self._touch(session, cart_id)
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def clear_cart(self, identity: Identity) -> Result[CartSnapshot, CartError]:
        """Empty both the cart and the saved-for-later list."""

        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            await session.execute(delete(CartLineTable).where(CartLineTable.cart_id == cart_id))
            await self._touch(session, cart_id)
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def _move(
        self, identity: Identity, key: VariantKey, *, to_saved: bool
    ) -> Result[CartSnapshot, CartError]:
        async def work(session: AsyncSession, cart_id: int) -> CartSnapshot:
            row = await self._find(session, cart_id, not to_saved, key)
            if row is None:
                raise _Rejected(LineNotFound(key.product_id, key.size, key.color))

            room = self._max_quantity - await self._quantity(session, cart_id, to_saved, key)
            if room <= 0:
                raise _Rejected(InvalidQuantity(
                    row.quantity, f"Maximum {self._max_quantity} items allowed per product"
                ))

            moved = min(row.quantity, room)
            line = replace(_line(row), quantity=moved)
            if moved == row.quantity:
                await session.delete(row)
            else:
                row.quantity -= moved
            await session.flush()
            await self._upsert(session, cart_id, to_saved, line)
            await self._touch(session, cart_id)
            return await self._snapshot(session, cart_id)

        return await self._atomically(identity, work)

    async def save_for_later(
        self, identity: Identity, product_id: str, size: str, color: str
    ) -> Result[CartSnapshot, CartError]:
        """
        Move a line to the saved list. When an equal saved line leaves room
        for only part of it, that part moves and the rest stays in the cart.
        """
        return await self._move(identity, VariantKey(product_id, size, color), to_saved=True)

    async def move_to_cart(
        self, identity: Identity, product_id: str, size: str, color: str
    ) -> Result[CartSnapshot, CartError]:
        """Inverse of save_for_later, with the same partial-move rule."""
        return await self._move(identity, VariantKey(product_id, size, color), to_saved=False)

    async def _partition(
        self, lines: Iterable[CartLine]
    ) -> tuple[list[CartLine], list[CartLine]]:
        merged: list[CartLine] = []
        dropped: list[CartLine] = []
        for line in lines:
            variant = await self._catalog.get_variant(line.product_id, line.size, line.color)
            if variant is None or not variant.orderable:
                dropped.append(line)
            else:
                merged.append(line)
        return merged, dropped

    async def _merge(
        self,
        session: AsyncSession,
        cart_id: int,
        merged: list[CartLine],
        dropped: list[CartLine],
    ) -> MergeReport:
        carried: list[CartLine] = []
        clamped: list[CartLine] = []
        for line in merged:
            room = self._max_quantity - await self._quantity(session, cart_id, False, line.key)
            take = min(line.quantity, max(room, 0))
            if take < line.quantity:
                clamped.append(replace(line, quantity=line.quantity - take))
            if take > 0:
                await self._upsert(session, cart_id, False, replace(line, quantity=take))
                carried.append(replace(line, quantity=take))
        if carried:
            await self._touch(session, cart_id)
        if clamped:
            logger.info(
                "Merge into cart %d left %d units over the line limit",
                cart_id, sum(l.quantity for l in clamped),
            )
        return MergeReport(
            cart=await self._snapshot(session, cart_id),
            merged=tuple(carried),
            dropped=tuple(dropped),
            clamped=tuple(clamped),
        )

    async def merge_lines(
        self, identity: Identity, lines: Iterable[CartLine]
    ) -> Result[MergeReport, CartError]:
        """
        Carry lines into this cart with the add_item key-merge rule.

        Lines whose variant is no longer orderable are dropped and reported,
        not treated as a failure. Quantity past the per-line limit is not
        carried; it comes back in `clamped` with the uncarried amount.
        Original price_at_add values are kept.
        """
        merged, dropped = await self._partition(lines)

        async def work(session: AsyncSession, cart_id: int) -> MergeReport:
            return await self._merge(session, cart_id, merged, dropped)

        return await self._atomically(identity, work)

    async def merge_in(
        self, session: AsyncSession, owner: tuple[str, str], lines: Iterable[CartLine]
    ) -> MergeReport:
        """merge_lines inside the caller's transaction; exceptions propagate."""
        merged, dropped = await self._partition(lines)
        cart_id = await self._cart_id(session, owner)
        return await self._merge(session, cart_id, merged, dropped)

    async def lines_in(
        self, session: AsyncSession, owner: tuple[str, str], *, saved: bool = False
    ) -> list[CartLine]:
        owner_kind, owner_id = owner
        rows = (
            await session.execute(
                select(CartLineTable)
                .join(CartTable, CartTable.id == CartLineTable.cart_id)
                .where(
                    CartTable.owner_kind == owner_kind,
                    CartTable.owner_id == owner_id,
                    CartLineTable.saved == saved,
                )
                .order_by(CartLineTable.id)
            )
        ).scalars().all()
        return [_line(r) for r in rows]

    async def deduct_in(
        self,
        session: AsyncSession,
        owner: tuple[str, str],
        ordered: Iterable[tuple[VariantKey, int]],
    ) -> None:
        """
        Take ordered quantities out of the owner's cart inside the caller's
        transaction. Lines or units added after the order was priced stay.
        """
        owner_kind, owner_id = owner
        cart_id = (
            await session.execute(
                select(CartTable.id).where(
                    CartTable.owner_kind == owner_kind, CartTable.owner_id == owner_id
                )
            )
        ).scalar_one_or_none()
        if cart_id is None:
            return

        for key, quantity in ordered:
            await session.execute(
                update(CartLineTable)
                .where(*_key_filter(cart_id, False, key))
                .values(quantity=CartLineTable.quantity - quantity)
            )
        await session.execute(
            delete(CartLineTable).where(
                CartLineTable.cart_id == cart_id,
                CartLineTable.saved.is_(False),
                CartLineTable.quantity <= 0,
            )
        )
        await self._touch(session, cart_id)


__all__ = ("CartEngine",)
