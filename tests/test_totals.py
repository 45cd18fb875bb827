"""Tests for order totals and delivery-area address checks."""

import pytest

from storefront.checkout import DeliveryArea, Totals, TotalsPolicy, compute_totals, validate_address
from storefront.config import Settings

from tests.helpers import err, kochi_address, ok

POLICY = TotalsPolicy.from_settings(Settings())
KERALA = DeliveryArea.from_settings(Settings())


def test_promo_order_totals():
    """1800 with 10% off: shipping charged, 18% tax on the discounted amount."""
    totals = compute_totals(1800, 180, POLICY)
    assert totals == Totals(subtotal=1800, discount=180, shipping=99, tax=292, total=2011)
    assert totals.subtotal_after_discount == 1620


@pytest.mark.parametrize(
    "subtotal, discount, shipping",
    [
        (1999, 0, 99),
        (2000, 0, 0),
        (2500, 0, 0),
        (2100, 200, 99),  # threshold applies after the discount
    ],
)
def test_free_shipping_threshold(subtotal, discount, shipping):
    assert compute_totals(subtotal, discount, POLICY).shipping == shipping


def test_discount_larger_than_subtotal_floors_at_zero():
    totals = compute_totals(300, 500, POLICY)
    assert totals.subtotal_after_discount == 0
    assert totals.tax == 0
    assert totals.total == 99


def test_total_is_sum_of_parts():
    for subtotal in (1, 99, 555, 1999, 2000, 12345):
        t = compute_totals(subtotal, subtotal // 7, POLICY)
        assert t.total == t.subtotal_after_discount + t.shipping + t.tax


def test_valid_address_is_normalized():
    address = ok(validate_address(
        kochi_address(name="  Asha Menon ", phone="+91 98765-43210", state="kerala", country="india"),
        KERALA,
    ))
    assert address.name == "Asha Menon"
    assert address.phone == "9876543210"
    assert address.state == "Kerala"
    assert address.country == "India"


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"city": " "}, "city"),
        ({"phone": "12345"}, "phone"),
        ({"country": "Sri Lanka"}, "country"),
        ({"state": "Tamil Nadu"}, "state"),
        ({"postal_code": "68200"}, "postal_code"),
        ({"postal_code": "560001"}, "postal_code"),
    ],
)
def test_invalid_addresses(overrides, field):
    error = err(validate_address(kochi_address(**overrides), KERALA))
    assert error.field == field


def test_out_of_state_message_names_the_area():
    error = err(validate_address(kochi_address(state="Karnataka"), KERALA))
    assert "Kerala" in error.message
