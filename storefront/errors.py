"""
Error taxonomy — every failure the core can surface, as values.

Errors are returned inside `Result`, never raised across component seams:

    match await engine.add_item(identity, "P1", "M", "red", 2):
        case Ok(cart): ...
        case Error(VariantUnavailable() as e): show_inline(e.message)
        case Error(e): ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Unauthenticated:
    """Bad or expired user token. Client must re-login."""

    message: str = "Not authorized, token failed"


@dataclass(frozen=True, slots=True)
class SessionExpired:
    """Guest session unknown, past TTL or already converted. Client re-inits."""

    guest_id: str
    message: str = "Guest session expired"


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariantUnavailable:
    product_id: str
    size: str
    color: str

    @property
    def message(self) -> str:
        return f"Product {self.product_id} ({self.size}/{self.color}) is not available"


@dataclass(frozen=True, slots=True)
class InvalidQuantity:
    quantity: int
    message: str = "Quantity must be at least 1"


@dataclass(frozen=True, slots=True)
class LineNotFound:
    product_id: str
    size: str
    color: str

    @property
    def message(self) -> str:
        return "Item not found in cart"


@dataclass(frozen=True, slots=True)
class StorageFailed:
    """Infrastructure failure lifted out of an exception."""

    message: str


type CartError = (
    VariantUnavailable | InvalidQuantity | LineNotFound | SessionExpired | StorageFailed
)


# ═══════════════════════════════════════════════════════════════════════════════
# Promotion
# ═══════════════════════════════════════════════════════════════════════════════


class PromoReason(Enum):
    UNKNOWN = "unknown"
    INVALID_FORMAT = "invalid_format"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    USAGE_EXHAUSTED = "usage_exhausted"
    FIRST_ORDER_ONLY = "first_order_only"
    NOT_ELIGIBLE = "not_eligible"
    BELOW_MINIMUM = "below_minimum"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True, slots=True)
class PromoInvalid:
    """
    Promo rejected. `min_order_amount` is set only for BELOW_MINIMUM so the
    caller can show how much more is needed.
    """

    reason: PromoReason
    message: str
    min_order_amount: int | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AddressInvalid:
    field: str
    message: str


class PaymentFailureKind(Enum):
    DECLINED = "declined"
    SIGNATURE = "signature"
    TIMEOUT = "timeout"
    GATEWAY = "gateway"
    UNKNOWN_INTENT = "unknown_intent"


@dataclass(frozen=True, slots=True)
class PaymentFailed:
    kind: PaymentFailureKind
    message: str


@dataclass(frozen=True, slots=True)
class PaymentCancelled:
    intent_id: str
    message: str = "Payment was cancelled"


@dataclass(frozen=True, slots=True)
class EmptyCart:
    message: str = "Cart is empty"


@dataclass(frozen=True, slots=True)
class InvalidTransition:
    current: str
    target: str

    @property
    def message(self) -> str:
        return f"Cannot move checkout from {self.current} to {self.target}"


type CheckoutError = (
    AddressInvalid
    | PromoInvalid
    | PaymentFailed
    | PaymentCancelled
    | EmptyCart
    | InvalidTransition
    | SessionExpired
    | StorageFailed
)


# ═══════════════════════════════════════════════════════════════════════════════
# Conversion / Accounts
# ═══════════════════════════════════════════════════════════════════════════════


class ConversionStep(Enum):
    CLAIM = "claim"
    ORDERS = "orders"
    CART = "cart"
    FINISH = "finish"


@dataclass(frozen=True, slots=True)
class ConversionPartialFailure:
    """
    A conversion sub-step failed. Completed steps stay checkpointed;
    the next call resumes at `step`. Logged, never surfaced to the user.
    """

    guest_id: str
    step: ConversionStep
    message: str


@dataclass(frozen=True, slots=True)
class AccountError:
    message: str
    status: int = 400


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Unauthenticated",
    "SessionExpired",
    "VariantUnavailable",
    "InvalidQuantity",
    "LineNotFound",
    "StorageFailed",
    "CartError",
    "PromoReason",
    "PromoInvalid",
    "AddressInvalid",
    "PaymentFailureKind",
    "PaymentFailed",
    "PaymentCancelled",
    "EmptyCart",
    "InvalidTransition",
    "CheckoutError",
    "ConversionStep",
    "ConversionPartialFailure",
    "AccountError",
)
