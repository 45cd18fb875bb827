"""
Routes — thin adapters from JSON to the core and back.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from storefront.accounts import MIN_PASSWORD_LENGTH
from storefront.errors import AccountError
from storefront.session import Identity
from storefront.http._deps import (
    BearerDep,
    GuestDep,
    StorefrontDep,
    UserDep,
    resolve_caller,
    unwrap,
)
from storefront.http._errors import ApiError
from storefront.http._schemas import (
    AuthResponse,
    CartResponse,
    CheckoutRequest,
    ConvertGuestRequest,
    CreatePaymentResponse,
    GuestSessionResponse,
    LineRequest,
    LoginRequest,
    OrderListResponse,
    OrderOut,
    OrderResponse,
    PaymentFailedRequest,
    PromoValidateRequest,
    PromoValidateResponse,
    QuantityRequest,
    RegisterRequest,
    TrackByEmailRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from storefront.app import Storefront

logger = logging.getLogger(__name__)

cart_router = APIRouter(prefix="/cart", tags=["cart"])
guest_router = APIRouter(prefix="/guest", tags=["guest"])
promo_router = APIRouter(prefix="/promo", tags=["promo"])
orders_router = APIRouter(prefix="/orders", tags=["orders"])
auth_router = APIRouter(prefix="/auth", tags=["auth"])


# ═══════════════════════════════════════════════════════════════════════════════
# Cart verbs (shared by users and guests)
# ═══════════════════════════════════════════════════════════════════════════════


async def _get(store: Storefront, who: Identity) -> CartResponse:
    return CartResponse.from_domain(unwrap(await store.cart.get_cart(who)))


async def _add(store: Storefront, who: Identity, req: QuantityRequest) -> CartResponse:
    return CartResponse.from_domain(unwrap(
        await store.cart.add_item(who, req.product_id, req.size, req.color, req.quantity)
    ))


async def _update(store: Storefront, who: Identity, req: QuantityRequest) -> CartResponse:
    return CartResponse.from_domain(unwrap(
        await store.cart.update_item(who, req.product_id, req.size, req.color, req.quantity)
    ))


async def _remove(store: Storefront, who: Identity, req: LineRequest) -> CartResponse:
    return CartResponse.from_domain(unwrap(
        await store.cart.remove_item(who, req.product_id, req.size, req.color)
    ))


async def _clear(store: Storefront, who: Identity) -> CartResponse:
    return CartResponse.from_domain(unwrap(await store.cart.clear_cart(who)))


async def _save(store: Storefront, who: Identity, req: LineRequest) -> CartResponse:
    return CartResponse.from_domain(unwrap(
        await store.cart.save_for_later(who, req.product_id, req.size, req.color)
    ))


async def _unsave(store: Storefront, who: Identity, req: LineRequest) -> CartResponse:
    return CartResponse.from_domain(unwrap(
        await store.cart.move_to_cart(who, req.product_id, req.size, req.color)
    ))


@cart_router.get("")
async def get_cart(store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _get(store, user)


@cart_router.post("/add")
async def add_to_cart(req: QuantityRequest, store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _add(store, user, req)


@cart_router.put("/update")
async def update_cart_item(req: QuantityRequest, store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _update(store, user, req)


@cart_router.delete("/remove")
async def remove_cart_item(req: LineRequest, store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _remove(store, user, req)


@cart_router.delete("/clear")
async def clear_cart(store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _clear(store, user)


@cart_router.post("/save-for-later")
async def save_for_later(req: LineRequest, store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _save(store, user, req)


@cart_router.post("/move-to-cart")
async def move_to_cart(req: LineRequest, store: StorefrontDep, user: UserDep) -> CartResponse:
    return await _unsave(store, user, req)


# ═══════════════════════════════════════════════════════════════════════════════
# Guest
# ═══════════════════════════════════════════════════════════════════════════════


@guest_router.post("/init", status_code=status.HTTP_201_CREATED)
async def init_guest(store: StorefrontDep) -> GuestSessionResponse:
    return GuestSessionResponse.from_domain(await store.sessions.init_guest_session())


@guest_router.get("/{guest_id}/cart")
async def get_guest_cart(store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _get(store, guest)


@guest_router.post("/{guest_id}/cart/add")
async def add_to_guest_cart(req: QuantityRequest, store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _add(store, guest, req)


@guest_router.put("/{guest_id}/cart/update")
async def update_guest_cart_item(
    req: QuantityRequest, store: StorefrontDep, guest: GuestDep
) -> CartResponse:
    return await _update(store, guest, req)


@guest_router.delete("/{guest_id}/cart/remove")
async def remove_guest_cart_item(req: LineRequest, store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _remove(store, guest, req)


@guest_router.delete("/{guest_id}/cart/clear")
async def clear_guest_cart(store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _clear(store, guest)


@guest_router.post("/{guest_id}/cart/save-for-later")
async def guest_save_for_later(req: LineRequest, store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _save(store, guest, req)


@guest_router.post("/{guest_id}/cart/move-to-cart")
async def guest_move_to_cart(req: LineRequest, store: StorefrontDep, guest: GuestDep) -> CartResponse:
    return await _unsave(store, guest, req)


@guest_router.post("/{guest_id}/convert", status_code=status.HTTP_201_CREATED)
async def convert_guest(req: ConvertGuestRequest, store: StorefrontDep, guest: GuestDep) -> AuthResponse:
    if len(req.password) < MIN_PASSWORD_LENGTH:
        raise ApiError.of(AccountError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        ))
    name = req.name.strip() or req.email.split("@", 1)[0]
    auth = unwrap(await store.accounts.register(req.email, req.password, name, guest_id=guest.id))
    return AuthResponse.from_domain(auth)


@guest_router.post("/track-by-email")
async def track_by_email(req: TrackByEmailRequest, store: StorefrontDep) -> OrderResponse:
    order = await store.orders.track_by_email(req.email, req.order_number)
    if order is None:
        raise ApiError.not_found("Order not found")
    return OrderResponse.from_domain(order)


@guest_router.get("/track/{tracking_token}")
async def track_order(tracking_token: str, store: StorefrontDep) -> OrderResponse:
    order = await store.orders.track_by_token(tracking_token)
    if order is None:
        raise ApiError.not_found("Order not found")
    return OrderResponse.from_domain(order)


# ═══════════════════════════════════════════════════════════════════════════════
# Promo
# ═══════════════════════════════════════════════════════════════════════════════


@promo_router.post("/validate")
async def validate_promo(
    req: PromoValidateRequest, store: StorefrontDep, credentials: BearerDep
) -> PromoValidateResponse:
    owner = None
    if credentials is not None or req.guest_id:
        owner = (await resolve_caller(store, credentials, req.guest_id)).owner
    application = unwrap(await store.promos.validate(
        req.code, req.order_amount, [item.to_domain() for item in req.items], owner
    ))
    return PromoValidateResponse.from_domain(application)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders / payments
# ═══════════════════════════════════════════════════════════════════════════════


@orders_router.post("/create-payment")
async def create_payment(
    req: CheckoutRequest, store: StorefrontDep, credentials: BearerDep
) -> CreatePaymentResponse:
    who = await resolve_caller(store, credentials, req.guest_id)
    flow = unwrap(store.checkout.review(
        req.shipping_address.to_domain(), req.method, req.promo_code, req.email
    ))
    placement = await store.checkout.open_payment(who, flow)
    return CreatePaymentResponse.from_domain(unwrap(placement.result))


@orders_router.post("/verify-payment")
async def verify_payment(req: VerifyPaymentRequest, store: StorefrontDep) -> VerifyPaymentResponse:
    order = unwrap(await store.checkout.handle_payment_result(req.to_domain()))
    return VerifyPaymentResponse.from_domain(order)


@orders_router.post("", status_code=status.HTTP_201_CREATED)
async def place_order(
    req: CheckoutRequest, store: StorefrontDep, credentials: BearerDep
) -> OrderResponse:
    who = await resolve_caller(store, credentials, req.guest_id)
    flow = unwrap(store.checkout.review(
        req.shipping_address.to_domain(), req.method, req.promo_code, req.email
    ))
    placement = await store.checkout.place_deferred(who, flow)
    return OrderResponse.from_domain(unwrap(placement.result))


@orders_router.get("")
async def list_orders(store: StorefrontDep, user: UserDep) -> OrderListResponse:
    return OrderListResponse(
        orders=[OrderOut.from_domain(o) for o in await store.orders.list_for(user.owner)]
    )


@orders_router.post("/payment-failed")
async def payment_failed(
    req: PaymentFailedRequest, store: StorefrontDep, credentials: BearerDep
) -> dict[str, bool]:
    owner = None
    if credentials is not None or req.guest_id:
        owner = (await resolve_caller(store, credentials, req.guest_id)).owner
    store.checkout.report_payment_failure(req.intent_id, req.reason, owner)
    return {"success": True}


# ═══════════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════════


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(req: RegisterRequest, store: StorefrontDep) -> AuthResponse:
    auth = unwrap(await store.accounts.register(req.email, req.password, req.name, req.guest_id))
    return AuthResponse.from_domain(auth)


@auth_router.post("/login")
async def login(req: LoginRequest, store: StorefrontDep) -> AuthResponse:
    auth = unwrap(await store.accounts.login(req.email, req.password, req.guest_id))
    return AuthResponse.from_domain(auth)


routers = (cart_router, guest_router, promo_router, orders_router, auth_router)

__all__ = ("routers",)
