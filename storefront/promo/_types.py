"""
Promotion types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class PromoCode:
    """
    A configured code. Empty applicable_* tuples mean "no restriction".

    Note: discount_value is a percent for PERCENTAGE, an amount for FIXED.
    """

    code: str
    discount_type: DiscountType
    discount_value: int
    description: str = ""
    min_order_amount: int = 0
    max_discount_amount: int | None = None
    max_usage_count: int | None = None
    current_usage_count: int = 0
    max_usage_per_user: int | None = None
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None
    first_order_only: bool = False
    applicable_products: tuple[str, ...] = ()
    applicable_categories: tuple[str, ...] = ()
    applicable_users: tuple[str, ...] = ()

    @property
    def applies_to_all(self) -> bool:
        return not self.applicable_products and not self.applicable_categories


@dataclass(frozen=True, slots=True)
class PromoLineItem:
    product_id: str
    category_id: str | None
    quantity: int


@dataclass(frozen=True, slots=True)
class UsageFacts:
    """
    Per-caller facts the evaluator needs. `owner` is "user:<id>" or
    "guest:<id>"; None means anonymous validation.
    """

    owner: str | None = None
    user_id: str | None = None
    owner_uses: int = 0
    prior_orders: int = 0


@dataclass(frozen=True, slots=True)
class PromoApplication:
    """Priced promo. Lives in checkout scope only; re-validated at placement."""

    code: str
    discount_amount: int
    discount_type: DiscountType
    description: str


__all__ = (
    "DiscountType",
    "PromoCode",
    "PromoLineItem",
    "UsageFacts",
    "PromoApplication",
)
