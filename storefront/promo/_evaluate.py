"""
Promotion Evaluator — pure validation and pricing.

    match evaluate(promo, "save10", 1800, items, now=now):
        case Ok(app):
            app.discount_amount  # 180
        case Error(e):
            e.reason, e.min_order_amount
"""

from __future__ import annotations

import re
from decimal import Decimal
from collections.abc import Sequence
from datetime import datetime

from kungfu import Result, Ok, Error

from storefront._types import round_half_up, utcnow
from storefront.errors import PromoInvalid, PromoReason
from storefront.promo._types import (
    DiscountType,
    PromoApplication,
    PromoCode,
    PromoLineItem,
    UsageFacts,
)

_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{3,20}$")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def is_well_formed(code: str) -> bool:
    return _CODE_PATTERN.match(normalize_code(code)) is not None


def price_discount(promo: PromoCode, order_amount: int) -> int:
    """Discount for `order_amount`, never above it and never negative."""
    match promo.discount_type:
        case DiscountType.PERCENTAGE:
            amount = round_half_up(Decimal(order_amount) * promo.discount_value / 100)
            if promo.max_discount_amount is not None:
                amount = min(amount, promo.max_discount_amount)
        case DiscountType.FIXED:
            amount = min(promo.discount_value, order_amount)
    return max(0, min(amount, order_amount))


def _reject(reason: PromoReason, message: str, minimum: int | None = None) -> Error[PromoInvalid]:
    return Error(PromoInvalid(reason, message, minimum))


def evaluate(
    promo: PromoCode | None,
    code: str,
    order_amount: int,
    line_items: Sequence[PromoLineItem],
    *,
    now: datetime | None = None,
    usage: UsageFacts = UsageFacts(),
) -> Result[PromoApplication, PromoInvalid]:
    """Apply the validation rules in order; the first failing rule wins."""
    now = now or utcnow()
    normalized = normalize_code(code)

    if not is_well_formed(normalized):
        return _reject(PromoReason.INVALID_FORMAT, "Invalid promo code format")
    if promo is None or promo.code != normalized:
        return _reject(PromoReason.UNKNOWN, "Invalid promo code")
    if not promo.is_active:
        return _reject(PromoReason.INACTIVE, "Promo code is not active")
    if promo.start_date is not None and now < promo.start_date:
        return _reject(PromoReason.NOT_STARTED, "Promo code is not yet active")
    if promo.end_date is not None and now > promo.end_date:
        return _reject(PromoReason.EXPIRED, "Promo code has expired")
    if (
        promo.max_usage_count is not None
        and promo.current_usage_count >= promo.max_usage_count
    ):
        return _reject(PromoReason.USAGE_EXHAUSTED, "Promo code usage limit reached")
    if (
        promo.max_usage_per_user is not None
        and usage.owner is not None
        and usage.owner_uses >= promo.max_usage_per_user
    ):
        return _reject(
            PromoReason.USAGE_EXHAUSTED,
            "You have already used this promo code the maximum number of times",
        )
    if promo.first_order_only and usage.prior_orders > 0:
        return _reject(
            PromoReason.FIRST_ORDER_ONLY, "This promo code is only valid for first orders"
        )
    if promo.applicable_users and usage.user_id not in promo.applicable_users:
        return _reject(PromoReason.NOT_ELIGIBLE, "This promo code is not available for your account")
    if order_amount < promo.min_order_amount:
        return _reject(
            PromoReason.BELOW_MINIMUM,
            f"Minimum order amount of {promo.min_order_amount} required",
            promo.min_order_amount,
        )
    if not promo.applies_to_all and not any(
        item.product_id in promo.applicable_products
        or (item.category_id is not None and item.category_id in promo.applicable_categories)
        for item in line_items
    ):
        return _reject(
            PromoReason.NOT_APPLICABLE, "Promo code is not applicable to items in your cart"
        )

    return Ok(PromoApplication(
        code=promo.code,
        discount_amount=price_discount(promo, order_amount),
        discount_type=promo.discount_type,
        description=promo.description,
    ))


__all__ = ("normalize_code", "is_well_formed", "price_discount", "evaluate")
