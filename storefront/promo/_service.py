"""
Promo service — code lookup, usage facts and usage accounting.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import LazyCoroResult, Result, Ok, Error

from storefront._types import utcnow
from storefront.db import OrderTable, OwnerKind, PromoCodeTable, PromoUsageTable
from storefront.errors import PromoInvalid, PromoReason, StorageFailed
from storefront.promo._evaluate import evaluate, normalize_code
from storefront.promo._types import (
    DiscountType,
    PromoApplication,
    PromoCode,
    PromoLineItem,
    UsageFacts,
)

logger = logging.getLogger(__name__)


def owner_tag(owner_kind: str, owner_id: str) -> str:
    return f"{owner_kind}:{owner_id}"


def _to_domain(row: PromoCodeTable) -> PromoCode:
    return PromoCode(
        code=row.code,
        discount_type=DiscountType(row.discount_type),
        discount_value=row.discount_value,
        description=row.description,
        min_order_amount=row.min_order_amount,
        max_discount_amount=row.max_discount_amount,
        max_usage_count=row.max_usage_count,
        current_usage_count=row.current_usage_count,
        max_usage_per_user=row.max_usage_per_user,
        is_active=row.is_active,
        start_date=row.start_date,
        end_date=row.end_date,
        first_order_only=row.first_order_only,
        applicable_products=tuple(row.applicable_products or ()),
        applicable_categories=tuple(row.applicable_categories or ()),
        applicable_users=tuple(row.applicable_users or ()),
    )


class PromoService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def put(self, promo: PromoCode) -> None:
        """Create or replace a code (admin / seeding)."""
        async with self._session_factory.begin() as session:
            await session.merge(PromoCodeTable(
                code=normalize_code(promo.code),
                description=promo.description,
                discount_type=promo.discount_type.value,
                discount_value=promo.discount_value,
                min_order_amount=promo.min_order_amount,
                max_discount_amount=promo.max_discount_amount,
                max_usage_count=promo.max_usage_count,
                current_usage_count=promo.current_usage_count,
                max_usage_per_user=promo.max_usage_per_user,
                is_active=promo.is_active,
                start_date=promo.start_date,
                end_date=promo.end_date,
                first_order_only=promo.first_order_only,
                applicable_products=list(promo.applicable_products),
                applicable_categories=list(promo.applicable_categories),
                applicable_users=list(promo.applicable_users),
            ))

    async def lookup(self, code: str) -> PromoCode | None:
        async with self._session_factory() as session:
            row = await session.get(PromoCodeTable, normalize_code(code))
        return _to_domain(row) if row is not None else None

    async def usage_facts(
        self, code: str, owner: tuple[str, str] | None
    ) -> UsageFacts:
        if owner is None:
            return UsageFacts()
        owner_kind, owner_id = owner
        tag = owner_tag(owner_kind, owner_id)
        async with self._session_factory() as session:
            uses = (
                await session.execute(
                    select(func.count()).select_from(PromoUsageTable).where(
                        PromoUsageTable.code == normalize_code(code),
                        PromoUsageTable.owner == tag,
                    )
                )
            ).scalar_one()
            orders = (
                await session.execute(
                    select(func.count()).select_from(OrderTable).where(
                        OrderTable.owner_kind == owner_kind,
                        OrderTable.owner_id == owner_id,
                    )
                )
            ).scalar_one()
        return UsageFacts(
            owner=tag,
            user_id=owner_id if owner_kind == OwnerKind.USER else None,
            owner_uses=uses,
            prior_orders=orders,
        )

    async def validate(
        self,
        code: str,
        order_amount: int,
        line_items: Sequence[PromoLineItem],
        owner: tuple[str, str] | None = None,
    ) -> Result[PromoApplication, PromoInvalid | StorageFailed]:
        """Look the code up (case-insensitive) and evaluate it for this caller."""
        try:
            promo = await self.lookup(code)
            usage = await self.usage_facts(code, owner)
        except SQLAlchemyError as e:
            logger.error("Promo %s lookup failed: %s", code, e)
            return Error(StorageFailed(str(e)))
        return evaluate(promo, code, order_amount, line_items, usage=usage)

    def consume(
        self, code: str, owner: tuple[str, str]
    ) -> LazyCoroResult[str, PromoInvalid | StorageFailed]:
        """
        Count one use. The guarded increment never passes max_usage_count,
        so two checkouts racing for the last use cannot both win.
        """
        normalized = normalize_code(code)
        tag = owner_tag(*owner)

        async def execute() -> Result[str, PromoInvalid | StorageFailed]:
            try:
                async with self._session_factory.begin() as session:
                    cursor = await session.execute(
                        update(PromoCodeTable)
                        .where(
                            PromoCodeTable.code == normalized,
                            (PromoCodeTable.max_usage_count.is_(None))
                            | (PromoCodeTable.current_usage_count < PromoCodeTable.max_usage_count),
                        )
                        .values(current_usage_count=PromoCodeTable.current_usage_count + 1)
                    )
                    if cursor.rowcount == 0:  # type: ignore[attr-defined]
                        return Error(PromoInvalid(
                            PromoReason.USAGE_EXHAUSTED, "Promo code usage limit reached"
                        ))
                    session.add(PromoUsageTable(code=normalized, owner=tag, used_at=utcnow()))
            except SQLAlchemyError as e:
                logger.error("Promo %s usage was not recorded: %s", normalized, e)
                return Error(StorageFailed(str(e)))
            logger.info("Promo %s consumed by %s", normalized, tag)
            return Ok(normalized)

        return LazyCoroResult(execute)

    async def release(self, code: str, owner: tuple[str, str]) -> None:
        """Compensation for consume()."""
        normalized = normalize_code(code)
        tag = owner_tag(*owner)
        async with self._session_factory.begin() as session:
            await session.execute(
                update(PromoCodeTable)
                .where(PromoCodeTable.code == normalized, PromoCodeTable.current_usage_count > 0)
                .values(current_usage_count=PromoCodeTable.current_usage_count - 1)
            )
            latest = (
                select(PromoUsageTable.id)
                .where(PromoUsageTable.code == normalized, PromoUsageTable.owner == tag)
                .order_by(PromoUsageTable.id.desc())
                .limit(1)
                .scalar_subquery()
            )
            await session.execute(delete(PromoUsageTable).where(PromoUsageTable.id == latest))
        logger.info("Promo %s released for %s", normalized, tag)


__all__ = ("PromoService", "owner_tag")
