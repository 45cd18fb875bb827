"""
Checkout — address, promo and totals up to a placed order.

    from storefront import checkout as CO

    match orchestrator.review(address, CO.PaymentMethod.COD, promo_code="SAVE10"):
        case Ok(flow):
            placement = await orchestrator.place_deferred(identity, flow)
            placement.flow.state  # CheckoutState.PLACED
"""

from storefront.checkout._types import (
    PaymentMethod,
    OrderStatus,
    PaymentOutcome,
    IntentStatus,
    ShippingAddress,
    DeliveryArea,
    TotalsPolicy,
    Totals,
    OrderLine,
    Order,
    PaymentIntent,
    PaymentCallback,
)
from storefront.checkout._totals import compute_totals
from storefront.checkout._address import validate_address
from storefront.checkout._state import CheckoutState, CheckoutFlow
from storefront.checkout._gateway import (
    PaymentGateway,
    SandboxGateway,
    RazorpayGateway,
    gateway_from_settings,
    sign_payment,
    verify_signature,
)
from storefront.checkout._orders import OrderDraft, OrderRepository, parse_order_number
from storefront.checkout._quote import QuoteInput, Quote, quote
from storefront.checkout._orchestrator import CheckoutOrchestrator, Placement

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
    "compute_totals",
    "validate_address",
    "CheckoutState",
    "CheckoutFlow",
    "PaymentGateway",
    "SandboxGateway",
    "RazorpayGateway",
    "gateway_from_settings",
    "sign_payment",
    "verify_signature",
    "OrderDraft",
    "OrderRepository",
    "parse_order_number",
    "QuoteInput",
    "Quote",
    "quote",
    "CheckoutOrchestrator",
    "Placement",
)
