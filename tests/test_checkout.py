"""Tests for checkout: the flow, deferred capture and gateway capture."""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest
from kungfu import Error, Ok
from sqlalchemy import text

from storefront._types import utcnow
from storefront.checkout import (
    CheckoutFlow,
    CheckoutState,
    OrderStatus,
    PaymentMethod,
)
from storefront.errors import (
    AddressInvalid,
    EmptyCart,
    InvalidTransition,
    PaymentCancelled,
    PaymentFailureKind,
    PromoInvalid,
    PromoReason,
    StorageFailed,
)
from storefront.db import IdempotencyRecordTable
from storefront.promo import DiscountType, PromoCode, UsageFacts
from storefront.session import UserIdentity

from tests.helpers import err, kochi_address, ok

SAVE10 = PromoCode("SAVE10", DiscountType.PERCENTAGE, 10, description="10% off")


async def saree_cart(store, identity=None, promo=True):
    identity = identity or await store.sessions.init_guest_session()
    ok(await store.cart.add_item(identity, "P3", "M", "black", 1))
    if promo:
        await store.promos.put(SAVE10)
    return identity


def reviewed(store, method, promo_code="SAVE10"):
    return ok(store.checkout.review(
        kochi_address(), method, promo_code=promo_code, contact_email="asha@example.com"
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Flow
# ═══════════════════════════════════════════════════════════════════════════════


def test_flow_walks_forward_and_back():
    address = kochi_address()
    flow = ok(CheckoutFlow().submit_address(address))
    assert flow.state is CheckoutState.COLLECTING_PAYMENT

    flow = ok(flow.choose_payment(PaymentMethod.COD))
    flow = ok(flow.apply_promo("SAVE10"))
    assert flow.state is CheckoutState.REVIEWING_ORDER
    assert flow.is_ready_to_place

    back = ok(flow.back_to(CheckoutState.COLLECTING_ADDRESS))
    assert back.state is CheckoutState.COLLECTING_ADDRESS
    assert back.address == address
    assert isinstance(err(back.back_to(CheckoutState.REVIEWING_ORDER)), InvalidTransition)


def test_flow_rejects_skipping_steps():
    error = err(CheckoutFlow().choose_payment(PaymentMethod.COD))
    assert error.current == "CollectingAddress"
    assert isinstance(err(CheckoutFlow().begin_placement()), InvalidTransition)


def test_placed_is_terminal():
    flow = ok(ok(CheckoutFlow().submit_address(kochi_address())).choose_payment(PaymentMethod.COD))
    placed = ok(flow.begin_placement()).placed(7)

    assert placed.state is CheckoutState.PLACED
    assert isinstance(err(placed.back_to(CheckoutState.COLLECTING_ADDRESS)), InvalidTransition)
    assert isinstance(err(placed.begin_placement()), InvalidTransition)
    assert isinstance(err(placed.apply_promo(None)), InvalidTransition)


def test_settle_moves_to_placed_or_failed():
    placing = ok(ok(ok(CheckoutFlow().submit_address(kochi_address())).choose_payment(PaymentMethod.GATEWAY)).begin_placement())
    assert placing.settle(Ok(3)).order_id == 3
    failed = placing.settle(Error(EmptyCart()))
    assert failed.state is CheckoutState.PLACEMENT_FAILED
    assert ok(failed.begin_placement()).state is CheckoutState.PLACING_ORDER


def test_review_rejects_an_address_outside_the_area(with_store):
    async def scenario(store):
        error = err(store.checkout.review(kochi_address(state="Goa"), PaymentMethod.COD))
        assert isinstance(error, AddressInvalid)
        assert error.field == "state"

    with_store(scenario)


# ═══════════════════════════════════════════════════════════════════════════════
# Quote
# ═══════════════════════════════════════════════════════════════════════════════


def test_quote_prices_promo_shipping_and_tax(with_store):
    async def scenario(store):
        guest = await saree_cart(store)
        q = ok(await store.checkout.quote(guest, "save10"))
        assert q.promo.code == "SAVE10"
        assert (q.totals.subtotal, q.totals.discount, q.totals.shipping, q.totals.tax, q.totals.total) == (
            1800, 180, 99, 292, 2011,
        )
        assert q.currency == "INR"

    with_store(scenario)


def test_quote_surfaces_minimum_amount(with_store):
    async def scenario(store):
        guest = await saree_cart(store, promo=False)
        await store.promos.put(PromoCode("BIG500", DiscountType.FIXED, 500, min_order_amount=2500))
        error = err(await store.checkout.quote(guest, "BIG500"))
        assert isinstance(error, PromoInvalid)
        assert error.min_order_amount == 2500

    with_store(scenario)


# ═══════════════════════════════════════════════════════════════════════════════
# Deferred capture
# ═══════════════════════════════════════════════════════════════════════════════


def test_cash_on_delivery_places_order_and_empties_cart(with_store):
    async def scenario(store):
        guest = await saree_cart(store)
        placement = await store.checkout.place_deferred(guest, reviewed(store, PaymentMethod.COD))

        order = ok(placement.result)
        assert placement.flow.state is CheckoutState.PLACED
        assert placement.flow.order_id == order.id
        assert order.status is OrderStatus.PENDING_FULFILLMENT
        assert order.totals.total == 2011
        assert order.promo_code == "SAVE10"
        assert order.tracking_token is not None
        assert len(order.order_number) == 6

        assert ok(await store.cart.get_cart(guest)).is_empty
        assert (await store.promos.lookup("SAVE10")).current_usage_count == 1
        assert [o.id for o in await store.orders.list_for(guest.owner)] == [order.id]

    with_store(scenario)


def test_empty_cart_cannot_be_placed(with_store):
    async def scenario(store):
        user = UserIdentity(id="u1")
        placement = await store.checkout.place_deferred(user, reviewed(store, PaymentMethod.COD, None))
        assert isinstance(err(placement.result), EmptyCart)
        assert placement.flow.state is CheckoutState.PLACEMENT_FAILED

    with_store(scenario)


def test_wrong_method_for_path(with_store):
    async def scenario(store):
        guest = await saree_cart(store)
        placement = await store.checkout.place_deferred(guest, reviewed(store, PaymentMethod.GATEWAY))
        assert isinstance(err(placement.result), InvalidTransition)
        opened = await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.COD))
        assert isinstance(err(opened.result), InvalidTransition)

    with_store(scenario)


def test_failed_order_write_releases_the_promo(with_store, monkeypatch):
    async def scenario(store):
        guest = await saree_cart(store, promo=False)
        await store.promos.put(PromoCode("SAVE10", DiscountType.PERCENTAGE, 10, max_usage_count=1))

        async def broken(session, draft, status, **kwargs):
            raise RuntimeError("database is locked")

        with monkeypatch.context() as patched:
            patched.setattr(store.orders, "create_in", broken)
            placement = await store.checkout.place_deferred(guest, reviewed(store, PaymentMethod.COD))

        assert isinstance(err(placement.result), StorageFailed)
        assert placement.flow.state is CheckoutState.PLACEMENT_FAILED
        assert (await store.promos.lookup("SAVE10")).current_usage_count == 0
        assert not ok(await store.cart.get_cart(guest)).is_empty

        retried = await store.checkout.place_deferred(guest, placement.flow)
        assert ok(retried.result).promo_code == "SAVE10"
        assert retried.flow.state is CheckoutState.PLACED

    with_store(scenario)


def test_promo_write_failure_fails_placement(with_store, monkeypatch):
    async def scenario(store):
        guest = await saree_cart(store)
        async with store.engine.begin() as conn:
            await conn.execute(text("DROP TABLE promo_usages"))

        async def no_usage(code, owner):
            return UsageFacts()

        with monkeypatch.context() as patched:
            patched.setattr(store.promos, "usage_facts", no_usage)
            placement = await store.checkout.place_deferred(guest, reviewed(store, PaymentMethod.COD))

        assert isinstance(err(placement.result), StorageFailed)
        assert placement.flow.state is CheckoutState.PLACEMENT_FAILED
        assert (await store.promos.lookup("SAVE10")).current_usage_count == 0
        assert await store.orders.list_for(guest.owner) == []
        assert not ok(await store.cart.get_cart(guest)).is_empty

    with_store(scenario)


def test_exhausted_promo_blocks_placement(with_store):
    async def scenario(store):
        guest = await saree_cart(store, promo=False)
        await store.promos.put(PromoCode("ONCE", DiscountType.FIXED, 100, max_usage_count=1))
        ok(await store.promos.consume("ONCE", ("user", "someone")))

        placement = await store.checkout.place_deferred(guest, reviewed(store, PaymentMethod.COD, "ONCE"))
        assert err(placement.result).reason is PromoReason.USAGE_EXHAUSTED
        assert not ok(await store.cart.get_cart(guest)).is_empty

    with_store(scenario)


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway capture
# ═══════════════════════════════════════════════════════════════════════════════


def test_duplicate_success_callbacks_create_one_paid_order(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        opened = await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))

        intent = ok(opened.result)
        assert opened.flow.state is CheckoutState.PLACING_ORDER
        assert gateway.opened[0].amount == 201100
        assert await store.orders.list_for(guest.owner) == []
        assert not ok(await store.cart.get_cart(guest)).is_empty

        callback = gateway.succeed(intent.intent_id)
        first = ok(await store.checkout.handle_payment_result(callback))
        again = await asyncio.gather(
            *(store.checkout.handle_payment_result(callback) for _ in range(3))
        )

        assert {ok(r).id for r in again} == {first.id}
        assert first.status is OrderStatus.PAID
        assert first.totals.total == 2011
        assert first.payment_intent_id == intent.intent_id
        assert len(await store.orders.list_for(guest.owner)) == 1
        assert ok(await store.cart.get_cart(guest)).is_empty
        assert (await store.promos.lookup("SAVE10")).current_usage_count == 1

        assert opened.flow.settle(Ok(first.id)).state is CheckoutState.PLACED

    with_store(scenario)


def test_bad_signature_creates_nothing(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        intent = ok((await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))).result)

        forged = replace(gateway.succeed(intent.intent_id), signature="0" * 64)

        error = err(await store.checkout.handle_payment_result(forged))
        assert error.kind is PaymentFailureKind.SIGNATURE
        assert await store.orders.list_for(guest.owner) == []
        assert not ok(await store.cart.get_cart(guest)).is_empty

    with_store(scenario)


@pytest.mark.parametrize("outcome", ["decline", "cancel"])
def test_decline_and_cancel_keep_the_cart(with_store, gateway, outcome):
    async def scenario(store):
        guest = await saree_cart(store)
        opened = await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))
        intent = ok(opened.result)

        callback = getattr(gateway, outcome)(intent.intent_id)
        error = err(await store.checkout.handle_payment_result(callback))
        if outcome == "decline":
            assert error.kind is PaymentFailureKind.DECLINED
        else:
            assert isinstance(error, PaymentCancelled)

        assert opened.flow.settle(Error(error)).state is CheckoutState.PLACEMENT_FAILED
        assert await store.orders.list_for(guest.owner) == []
        assert ok(await store.cart.get_cart(guest)).item_count == 1

    with_store(scenario)


def test_late_success_after_decline_still_captures(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        intent = ok((await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))).result)

        err(await store.checkout.handle_payment_result(gateway.decline(intent.intent_id)))
        order = ok(await store.checkout.handle_payment_result(gateway.succeed(intent.intent_id)))
        assert order.status is OrderStatus.PAID

    with_store(scenario)


@pytest.mark.parametrize("trip, kind", [("timeout_next", PaymentFailureKind.TIMEOUT), ("fail_next", PaymentFailureKind.GATEWAY)])
def test_gateway_outage_fails_placement(with_store, gateway, trip, kind):
    async def scenario(store):
        guest = await saree_cart(store)
        getattr(gateway, trip)()

        opened = await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))
        assert err(opened.result).kind is kind
        assert opened.flow.state is CheckoutState.PLACEMENT_FAILED
        assert not ok(await store.cart.get_cart(guest)).is_empty

        retried = await store.checkout.open_payment(guest, opened.flow)
        ok(retried.result)

    with_store(scenario)


def test_unknown_intent(with_store, gateway):
    async def scenario(store):
        error = err(await store.checkout.handle_payment_result(gateway.succeed("order_missing")))
        assert error.kind is PaymentFailureKind.UNKNOWN_INTENT

    with_store(scenario)


def test_user_order_has_no_tracking_token(with_store):
    async def scenario(store):
        user = await saree_cart(store, identity=UserIdentity(id="u1"), promo=False)
        order = ok((await store.checkout.place_deferred(user, reviewed(store, PaymentMethod.COD, None))).result)
        assert order.tracking_token is None
        assert order.totals.discount == 0

        found = await store.orders.track_by_email("ASHA@example.com", order.order_number)
        assert found is not None and found.id == order.id
        assert await store.orders.track_by_email("other@example.com", order.order_number) is None

    with_store(scenario)


def test_capture_leaves_lines_added_after_payment_opened(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        intent = ok((await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))).result)

        ok(await store.cart.add_item(guest, "P3", "M", "black", 1))
        ok(await store.cart.add_item(guest, "P1", "M", "red", 2))

        order = ok(await store.checkout.handle_payment_result(gateway.succeed(intent.intent_id)))
        assert [(l.product_id, l.quantity) for l in order.lines] == [("P3", 1)]

        cart = ok(await store.cart.get_cart(guest))
        assert [(l.product_id, l.quantity) for l in cart.lines] == [("P3", 1), ("P1", 2)]

    with_store(scenario)


def test_stale_capture_claim_does_not_block_the_order(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        intent = ok((await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))).result)

        # Left behind by a worker that died between claiming and finishing.
        async with store.session_factory.begin() as session:
            session.add(IdempotencyRecordTable(
                idempotency_key=f"payment-capture:{intent.intent_id}",
                idempotency_status="pending",
                idempotency_expires_at=utcnow() - timedelta(seconds=1),
            ))

        order = ok(await store.checkout.handle_payment_result(gateway.succeed(intent.intent_id)))
        assert order.status is OrderStatus.PAID
        assert [o.id for o in await store.orders.list_for(guest.owner)] == [order.id]

    with_store(scenario)


def test_payment_storage_outage_is_storage_failed(with_store, gateway):
    async def scenario(store):
        guest = await saree_cart(store)
        intent = ok((await store.checkout.open_payment(guest, reviewed(store, PaymentMethod.GATEWAY))).result)
        async with store.engine.begin() as conn:
            await conn.execute(text("DROP TABLE payment_intents"))

        for callback in (gateway.decline(intent.intent_id), gateway.succeed(intent.intent_id)):
            assert isinstance(err(await store.checkout.handle_payment_result(callback)), StorageFailed)

    with_store(scenario)
