"""Tests for promo validation rules, pricing and usage accounting."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from storefront.errors import PromoReason, StorageFailed
from storefront.promo import (
    DiscountType,
    PromoCode,
    PromoLineItem,
    UsageFacts,
    evaluate,
    price_discount,
)

from tests.helpers import err, ok

NOW = datetime(2025, 6, 1, 12, 0)
SHIRTS = [PromoLineItem("P1", "shirts", 2)]


def save10(**overrides) -> PromoCode:
    fields = dict(code="SAVE10", discount_type=DiscountType.PERCENTAGE, discount_value=10)
    fields.update(overrides)
    return PromoCode(**fields)


def test_percentage_discount():
    app = ok(evaluate(save10(), "save10", 1800, SHIRTS, now=NOW))
    assert app.code == "SAVE10"
    assert app.discount_amount == 180
    assert app.discount_type is DiscountType.PERCENTAGE


def test_percentage_rounds_half_up():
    assert price_discount(save10(), 1805) == 181  # 180.5
    assert price_discount(save10(), 1804) == 180  # 180.4


def test_percentage_respects_max_discount():
    assert price_discount(save10(discount_value=50, max_discount_amount=300), 2000) == 300


def test_fixed_discount_is_capped_at_order_amount():
    flat = PromoCode("FLAT300", DiscountType.FIXED, 300)
    assert ok(evaluate(flat, "FLAT300", 1000, SHIRTS, now=NOW)).discount_amount == 300
    assert ok(evaluate(flat, "FLAT300", 200, SHIRTS, now=NOW)).discount_amount == 200


@pytest.mark.parametrize(
    "promo, code, reason",
    [
        (save10(), "s!", PromoReason.INVALID_FORMAT),
        (None, "NOPE10", PromoReason.UNKNOWN),
        (save10(is_active=False), "SAVE10", PromoReason.INACTIVE),
        (save10(start_date=NOW + timedelta(days=1)), "SAVE10", PromoReason.NOT_STARTED),
        (save10(end_date=NOW - timedelta(days=1)), "SAVE10", PromoReason.EXPIRED),
        (save10(max_usage_count=5, current_usage_count=5), "SAVE10", PromoReason.USAGE_EXHAUSTED),
        (save10(applicable_products=("P9",)), "SAVE10", PromoReason.NOT_APPLICABLE),
    ],
)
def test_rejections(promo, code, reason):
    assert err(evaluate(promo, code, 1800, SHIRTS, now=NOW)).reason is reason


def test_minimum_amount_is_reported():
    error = err(evaluate(save10(min_order_amount=2000), "SAVE10", 1500, SHIRTS, now=NOW))
    assert error.reason is PromoReason.BELOW_MINIMUM
    assert error.min_order_amount == 2000


def test_category_scope_matches_line_category():
    scoped = save10(applicable_categories=("shirts",))
    assert ok(evaluate(scoped, "SAVE10", 1000, SHIRTS, now=NOW)).discount_amount == 100
    kurtas = [PromoLineItem("P2", "kurtas", 1)]
    assert err(evaluate(scoped, "SAVE10", 1000, kurtas, now=NOW)).reason is PromoReason.NOT_APPLICABLE


def test_per_caller_rules():
    once = save10(max_usage_per_user=1)
    used = UsageFacts(owner="user:u1", user_id="u1", owner_uses=1)
    assert err(evaluate(once, "SAVE10", 1800, SHIRTS, now=NOW, usage=used)).reason is PromoReason.USAGE_EXHAUSTED

    first = save10(first_order_only=True)
    returning = UsageFacts(owner="user:u1", user_id="u1", prior_orders=2)
    assert err(evaluate(first, "SAVE10", 1800, SHIRTS, now=NOW, usage=returning)).reason is PromoReason.FIRST_ORDER_ONLY

    vip = save10(applicable_users=("u7",))
    assert err(evaluate(vip, "SAVE10", 1800, SHIRTS, now=NOW, usage=used)).reason is PromoReason.NOT_ELIGIBLE
    assert ok(evaluate(vip, "SAVE10", 1800, SHIRTS, now=NOW, usage=UsageFacts(owner="user:u7", user_id="u7")))


def test_consume_stops_at_the_global_limit(with_store):
    async def scenario(store):
        await store.promos.put(PromoCode("ONETIME", DiscountType.FIXED, 100, max_usage_count=1))
        owner = ("user", "u1")

        assert ok(await store.promos.consume("onetime", owner)) == "ONETIME"
        assert err(await store.promos.consume("ONETIME", ("user", "u2"))).reason is PromoReason.USAGE_EXHAUSTED

        await store.promos.release("ONETIME", owner)
        promo = await store.promos.lookup("ONETIME")
        assert promo.current_usage_count == 0

    with_store(scenario)


def test_validate_uses_stored_usage(with_store):
    async def scenario(store):
        await store.promos.put(save10(max_usage_per_user=1))
        owner = ("guest", "guest_abc")

        ok(await store.promos.validate("save10", 1800, SHIRTS, owner))
        ok(await store.promos.consume("SAVE10", owner))
        error = err(await store.promos.validate("SAVE10", 1800, SHIRTS, owner))
        assert error.reason is PromoReason.USAGE_EXHAUSTED
        ok(await store.promos.validate("SAVE10", 1800, SHIRTS, ("guest", "guest_other")))

    with_store(scenario)


def test_storage_errors_come_back_as_storage_failed(with_store):
    async def scenario(store):
        await store.promos.put(save10())
        async with store.engine.begin() as conn:
            await conn.execute(text("DROP TABLE promo_usages"))

        assert isinstance(err(await store.promos.validate("SAVE10", 1800, SHIRTS, ("user", "u1"))), StorageFailed)
        assert isinstance(err(await store.promos.consume("SAVE10", ("user", "u1"))), StorageFailed)
        assert (await store.promos.lookup("SAVE10")).current_usage_count == 0

    with_store(scenario)
