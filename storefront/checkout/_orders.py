"""
Order repository — order rows, lines and tracking lookups.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._types import utcnow
from storefront.db import OrderLineTable, OrderTable, OwnerKind
from storefront.checkout._types import (
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
    ShippingAddress,
    Totals,
)


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """
    Everything an order needs, priced and validated. Also the payment
    intent snapshot, so a capture can build the order later.
    """

    owner_kind: str
    owner_id: str
    payment_method: PaymentMethod
    lines: tuple[OrderLine, ...]
    totals: Totals
    currency: str
    shipping_address: ShippingAddress
    promo_code: str | None = None
    contact_email: str | None = None

    @property
    def owner(self) -> tuple[str, str]:
        return (self.owner_kind, self.owner_id)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "owner_kind": self.owner_kind,
            "owner_id": self.owner_id,
            "payment_method": self.payment_method.value,
            "lines": [
                [line.product_id, line.size, line.color, line.quantity, line.unit_price]
                for line in self.lines
            ],
            "totals": {
                "subtotal": self.totals.subtotal,
                "discount": self.totals.discount,
                "shipping": self.totals.shipping,
                "tax": self.totals.tax,
                "total": self.totals.total,
            },
            "currency": self.currency,
            "shipping_address": self.shipping_address.to_dict(),
            "promo_code": self.promo_code,
            "contact_email": self.contact_email,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> OrderDraft:
        return cls(
            owner_kind=data["owner_kind"],
            owner_id=data["owner_id"],
            payment_method=PaymentMethod(data["payment_method"]),
            lines=tuple(OrderLine(*line) for line in data["lines"]),
            totals=Totals(**data["totals"]),
            currency=data["currency"],
            shipping_address=ShippingAddress.from_dict(data["shipping_address"]),
            promo_code=data.get("promo_code"),
            contact_email=data.get("contact_email"),
        )


def _to_domain(row: OrderTable, lines: list[OrderLineTable]) -> Order:
    return Order(
        id=row.id,
        owner_kind=row.owner_kind,
        owner_id=row.owner_id,
        status=OrderStatus(row.status),
        payment_method=PaymentMethod(row.payment_method),
        lines=tuple(
            OrderLine(r.product_id, r.size, r.color, r.quantity, r.unit_price) for r in lines
        ),
        totals=Totals(
            subtotal=row.subtotal,
            discount=row.discount,
            shipping=row.shipping,
            tax=row.tax,
            total=row.total,
        ),
        currency=row.currency,
        shipping_address=ShippingAddress.from_dict(row.shipping_address),
        promo_code=row.promo_code,
        contact_email=row.contact_email,
        tracking_token=row.tracking_token,
        payment_intent_id=row.payment_intent_id,
        payment_id=row.payment_id,
        created_at=row.created_at,
    )


def parse_order_number(order_number: str) -> int | None:
    """'000042' -> 42; anything that is not a positive number -> None."""
    digits = order_number.strip().lstrip("#")
    if not digits.isdigit() or int(digits) == 0:
        return None
    return int(digits)


class OrderRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_in(
        self,
        session: AsyncSession,
        draft: OrderDraft,
        status: OrderStatus,
        *,
        payment_intent_id: str | None = None,
        payment_id: str | None = None,
    ) -> Order:
        """Insert the order inside the caller's transaction."""
        row = OrderTable(
            owner_kind=draft.owner_kind,
            owner_id=draft.owner_id,
            origin_guest_id=draft.owner_id if draft.owner_kind == OwnerKind.GUEST else None,
            status=status.value,
            payment_method=draft.payment_method.value,
            payment_intent_id=payment_intent_id,
            payment_id=payment_id,
            contact_email=draft.contact_email,
            shipping_address=draft.shipping_address.to_dict(),
            promo_code=draft.promo_code,
            subtotal=draft.totals.subtotal,
            discount=draft.totals.discount,
            shipping=draft.totals.shipping,
            tax=draft.totals.tax,
            total=draft.totals.total,
            currency=draft.currency,
            tracking_token=(
                secrets.token_hex(32) if draft.owner_kind == OwnerKind.GUEST else None
            ),
            created_at=utcnow(),
        )
        session.add(row)
        await session.flush()

        line_rows = [
            OrderLineTable(
                order_id=row.id,
                product_id=line.product_id,
                size=line.size,
                color=line.color,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in draft.lines
        ]
        session.add_all(line_rows)
        await session.flush()
        return _to_domain(row, line_rows)

    async def _load(self, session: AsyncSession, row: OrderTable | None) -> Order | None:
        if row is None:
            return None
        lines = (
            await session.execute(
                select(OrderLineTable)
                .where(OrderLineTable.order_id == row.id)
                .order_by(OrderLineTable.id)
            )
        ).scalars().all()
        return _to_domain(row, list(lines))

    async def get(self, order_id: int) -> Order | None:
        async with self._session_factory() as session:
            return await self._load(session, await session.get(OrderTable, order_id))

    async def get_in(self, session: AsyncSession, order_id: int) -> Order | None:
        return await self._load(session, await session.get(OrderTable, order_id))

    async def list_for(self, owner: tuple[str, str]) -> list[Order]:
        """Newest first."""
        owner_kind, owner_id = owner
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(OrderTable)
                    .where(OrderTable.owner_kind == owner_kind, OrderTable.owner_id == owner_id)
                    .order_by(OrderTable.id.desc())
                )
            ).scalars().all()
            return [order for row in rows if (order := await self._load(session, row))]

    async def track_by_token(self, tracking_token: str) -> Order | None:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(OrderTable).where(OrderTable.tracking_token == tracking_token)
                )
            ).scalar_one_or_none()
            return await self._load(session, row)

    async def track_by_email(self, email: str, order_number: str) -> Order | None:
        """Both must match; a wrong email reveals nothing about the order."""
        order_id = parse_order_number(order_number)
        if order_id is None:
            return None
        async with self._session_factory() as session:
            row = await session.get(OrderTable, order_id)
            if row is None or (row.contact_email or "").lower() != email.strip().lower():
                return None
            return await self._load(session, row)


__all__ = ("OrderDraft", "OrderRepository", "parse_order_number")
