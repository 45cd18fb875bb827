"""
Totals — exact order arithmetic.
"""

from __future__ import annotations

from decimal import Decimal

from storefront._types import round_half_up
from storefront.checkout._types import Totals, TotalsPolicy


def compute_totals(subtotal: int, discount: int, policy: TotalsPolicy) -> Totals:
    """
    subtotal_after_discount = max(0, subtotal - discount)
    shipping = 0 at or above the free threshold, else the flat fee
    tax      = round(subtotal_after_discount * tax_rate)
    total    = subtotal_after_discount + shipping + tax
    """
    after_discount = max(0, subtotal - discount)
    shipping = 0 if after_discount >= policy.free_shipping_threshold else policy.flat_shipping_fee
    tax = round_half_up(Decimal(after_discount) * Decimal(str(policy.tax_rate)))
    return Totals(
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=after_discount + shipping + tax,
    )


__all__ = ("compute_totals",)
