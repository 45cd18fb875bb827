"""
Checkout types — addresses, totals, orders, payment intents.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from storefront.config import Settings


class PaymentMethod(Enum):
    COD = "cod"
    GATEWAY = "gateway"


class OrderStatus(Enum):
    PENDING_FULFILLMENT = "PendingFulfillment"
    PAID = "Paid"


class PaymentOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class IntentStatus:
    OPEN = "open"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ═══════════════════════════════════════════════════════════════════════════════
# Address
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    name: str
    phone: str
    line1: str
    city: str
    state: str
    postal_code: str
    country: str = "India"
    line2: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShippingAddress:
        return cls(**{k: str(v) for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True, slots=True)
class DeliveryArea:
    state: str
    country: str
    pin_min: int
    pin_max: int

    @classmethod
    def from_settings(cls, settings: Settings) -> DeliveryArea:
        return cls(
            state=settings.delivery_state,
            country=settings.delivery_country,
            pin_min=settings.delivery_pin_min,
            pin_max=settings.delivery_pin_max,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Totals
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class TotalsPolicy:
    tax_rate: float
    flat_shipping_fee: int
    free_shipping_threshold: int
    currency: str = "INR"

    @classmethod
    def from_settings(cls, settings: Settings) -> TotalsPolicy:
        return cls(
            tax_rate=settings.tax_rate,
            flat_shipping_fee=settings.flat_shipping_fee,
            free_shipping_threshold=settings.free_shipping_threshold,
            currency=settings.currency,
        )


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: int
    discount: int
    shipping: int
    tax: int
    total: int

    @property
    def subtotal_after_discount(self) -> int:
        return max(0, self.subtotal - self.discount)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderLine:
    product_id: str
    size: str
    color: str
    quantity: int
    unit_price: int


@dataclass(frozen=True, slots=True)
class Order:
    id: int
    owner_kind: str
    owner_id: str
    status: OrderStatus
    payment_method: PaymentMethod
    lines: tuple[OrderLine, ...]
    totals: Totals
    currency: str
    shipping_address: ShippingAddress
    promo_code: str | None
    contact_email: str | None
    tracking_token: str | None
    payment_intent_id: str | None
    payment_id: str | None
    created_at: datetime

    @property
    def order_number(self) -> str:
        return f"{self.id:06d}"


# ═══════════════════════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    """
    Gateway handle for one payment attempt. `amount` is in minor units,
    as the gateway sees it.
    """

    intent_id: str
    client_handle: str
    amount: int
    currency: str


@dataclass(frozen=True, slots=True)
class PaymentCallback:
    """Asynchronous gateway result. Only SUCCESS needs a valid signature."""

    intent_id: str
    outcome: PaymentOutcome
    payment_id: str | None = None
    signature: str | None = None
    reason: str | None = None


__all__ = (
    "PaymentMethod",
    "OrderStatus",
    "PaymentOutcome",
    "IntentStatus",
    "ShippingAddress",
    "DeliveryArea",
    "TotalsPolicy",
    "Totals",
    "OrderLine",
    "Order",
    "PaymentIntent",
    "PaymentCallback",
)
