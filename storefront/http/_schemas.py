"""
Wire schemas — camelCase JSON on the outside, domain types inside.

Requests convert with `to_domain()`, responses are built with
`from_domain()`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.accounts import AuthResult
from storefront.cart import CartLine, CartSnapshot
from storefront.checkout import (
    Order,
    PaymentCallback,
    PaymentIntent,
    PaymentMethod,
    PaymentOutcome,
    ShippingAddress,
)
from storefront.conversion import ConversionReport
from storefront.promo import PromoApplication, PromoLineItem
from storefront.session import GuestIdentity


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class LineRequest(Schema):
    product_id: str
    size: str
    color: str


class QuantityRequest(LineRequest):
    quantity: int = 1


class CartLineOut(Schema):
    product_id: str
    size: str
    color: str
    quantity: int
    price_at_add: int
    line_total: int

    @classmethod
    def from_domain(cls, line: CartLine) -> CartLineOut:
        return cls(
            product_id=line.product_id,
            size=line.size,
            color=line.color,
            quantity=line.quantity,
            price_at_add=line.price_at_add,
            line_total=line.line_total,
        )


class CartOut(Schema):
    items: list[CartLineOut]
    saved_for_later: list[CartLineOut]
    item_count: int
    subtotal: int
    updated_at: datetime


class CartResponse(Schema):
    cart: CartOut

    @classmethod
    def from_domain(cls, cart: CartSnapshot) -> CartResponse:
        return cls(cart=CartOut(
            items=[CartLineOut.from_domain(l) for l in cart.lines],
            saved_for_later=[CartLineOut.from_domain(l) for l in cart.saved],
            item_count=cart.item_count,
            subtotal=cart.subtotal,
            updated_at=cart.updated_at,
        ))


# ═══════════════════════════════════════════════════════════════════════════════
# Guest
# ═══════════════════════════════════════════════════════════════════════════════


class GuestSessionResponse(Schema):
    guest_id: str
    expires_at: datetime

    @classmethod
    def from_domain(cls, guest: GuestIdentity) -> GuestSessionResponse:
        return cls(guest_id=guest.id, expires_at=guest.expires_at)


class ConvertGuestRequest(Schema):
    email: str
    password: str
    name: str = ""


class TrackByEmailRequest(Schema):
    email: str
    order_number: str


# ═══════════════════════════════════════════════════════════════════════════════
# Promo
# ═══════════════════════════════════════════════════════════════════════════════


class PromoItemIn(Schema):
    product_id: str
    category_id: str | None = None
    quantity: int = 1

    def to_domain(self) -> PromoLineItem:
        return PromoLineItem(self.product_id, self.category_id, self.quantity)


class PromoValidateRequest(Schema):
    code: str
    order_amount: int
    items: list[PromoItemIn] = Field(default_factory=list)
    guest_id: str | None = None


class DiscountOut(Schema):
    amount: int
    type: str


class PromoValidateResponse(Schema):
    promo_code: str
    description: str
    discount: DiscountOut

    @classmethod
    def from_domain(cls, app: PromoApplication) -> PromoValidateResponse:
        return cls(
            promo_code=app.code,
            description=app.description,
            discount=DiscountOut(amount=app.discount_amount, type=app.discount_type.value),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


class AddressIn(Schema):
    name: str
    phone: str
    line1: str
    line2: str = ""
    city: str
    state: str
    pincode: str
    country: str = "India"

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(
            name=self.name,
            phone=self.phone,
            line1=self.line1,
            line2=self.line2,
            city=self.city,
            state=self.state,
            postal_code=self.pincode,
            country=self.country,
        )


class CheckoutRequest(Schema):
    shipping_address: AddressIn
    payment_method: Literal["cod", "gateway"] = "cod"
    promo_code: str | None = None
    email: str | None = None
    guest_id: str | None = None

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod(self.payment_method)


class GatewayOrderOut(Schema):
    """The gateway's order, as the client-side checkout widget expects it."""

    id: str
    amount: int
    currency: str


class CreatePaymentResponse(Schema):
    success: bool = True
    order: GatewayOrderOut
    key: str

    @classmethod
    def from_domain(cls, intent: PaymentIntent) -> CreatePaymentResponse:
        return cls(
            order=GatewayOrderOut(id=intent.intent_id, amount=intent.amount, currency=intent.currency),
            key=intent.client_handle,
        )


class VerifyPaymentRequest(Schema):
    """
    Gateway callback relayed by the client. Also accepts the gateway's own
    snake_case field names.

    order_data is accepted and ignored: the order is built from the snapshot
    stored when the payment was opened, never from client-sent lines.
    """

    gateway_order_id: str = Field(
        validation_alias=AliasChoices("gatewayOrderId", "gateway_order_id", "razorpay_order_id")
    )
    payment_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("paymentId", "payment_id", "razorpay_payment_id"),
    )
    signature: str | None = Field(
        default=None, validation_alias=AliasChoices("signature", "razorpay_signature")
    )
    order_data: dict[str, Any] | None = None
    outcome: Literal["success", "failure", "cancelled"] = "success"
    reason: str | None = None

    def to_domain(self) -> PaymentCallback:
        return PaymentCallback(
            intent_id=self.gateway_order_id,
            outcome=PaymentOutcome(self.outcome),
            payment_id=self.payment_id,
            signature=self.signature,
            reason=self.reason,
        )


class PaymentFailedRequest(Schema):
    intent_id: str | None = None
    reason: str = "unknown"
    guest_id: str | None = None


class OrderLineOut(Schema):
    product_id: str
    size: str
    color: str
    quantity: int
    unit_price: int


class AddressOut(Schema):
    name: str
    phone: str
    line1: str
    line2: str
    city: str
    state: str
    pincode: str
    country: str


class OrderOut(Schema):
    id: int
    order_number: str
    status: str
    payment_method: str
    items: list[OrderLineOut]
    subtotal: int
    discount: int
    shipping: int
    tax: int
    total: int
    currency: str
    shipping_address: AddressOut
    promo_code: str | None
    tracking_token: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> OrderOut:
        a = order.shipping_address
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            payment_method=order.payment_method.value,
            items=[
                OrderLineOut(
                    product_id=l.product_id,
                    size=l.size,
                    color=l.color,
                    quantity=l.quantity,
                    unit_price=l.unit_price,
                )
                for l in order.lines
            ],
            subtotal=order.totals.subtotal,
            discount=order.totals.discount,
            shipping=order.totals.shipping,
            tax=order.totals.tax,
            total=order.totals.total,
            currency=order.currency,
            shipping_address=AddressOut(
                name=a.name,
                phone=a.phone,
                line1=a.line1,
                line2=a.line2,
                city=a.city,
                state=a.state,
                pincode=a.postal_code,
                country=a.country,
            ),
            promo_code=order.promo_code,
            tracking_token=order.tracking_token,
            created_at=order.created_at,
        )


class OrderResponse(Schema):
    order: OrderOut

    @classmethod
    def from_domain(cls, order: Order) -> OrderResponse:
        return cls(order=OrderOut.from_domain(order))


class VerifyPaymentResponse(Schema):
    success: bool = True
    order: OrderOut

    @classmethod
    def from_domain(cls, order: Order) -> VerifyPaymentResponse:
        return cls(order=OrderOut.from_domain(order))


class OrderListResponse(Schema):
    orders: list[OrderOut]


# ═══════════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════════


class RegisterRequest(Schema):
    name: str
    email: str
    password: str
    guest_id: str | None = None


class LoginRequest(Schema):
    email: str
    password: str
    guest_id: str | None = None


class UserOut(Schema):
    id: str
    email: str
    name: str


class ConversionOut(Schema):
    orders_linked: int
    cart_merged: bool
    dropped_lines: list[CartLineOut]
    clamped_lines: list[CartLineOut]

    @classmethod
    def from_domain(cls, report: ConversionReport) -> ConversionOut:
        return cls(
            orders_linked=report.orders_linked,
            cart_merged=report.cart_merged,
            dropped_lines=[CartLineOut.from_domain(l) for l in report.dropped_lines],
            clamped_lines=[CartLineOut.from_domain(l) for l in report.clamped_lines],
        )


class AuthResponse(Schema):
    token: str
    user: UserOut
    conversion: ConversionOut | None = None

    @classmethod
    def from_domain(cls, auth: AuthResult) -> AuthResponse:
        return cls(
            token=auth.token,
            user=UserOut(id=auth.user.id, email=auth.user.email, name=auth.user.name),
            conversion=(
                ConversionOut.from_domain(auth.conversion)
                if auth.conversion is not None
                else None
            ),
        )
