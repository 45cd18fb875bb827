"""
Conversion types.
"""

from __future__ import annotations

from dataclasses import dataclass

from storefront.cart import CartLine
from storefront.errors import ConversionStep


@dataclass(frozen=True, slots=True)
class ConversionReport:
    """
    What a conversion carried over. A repeat call on a converted guest
    returns the empty report.

    Note: dropped_lines are no longer orderable; clamped_lines hold the
    quantity that did not fit under the per-line limit.
    """

    orders_linked: int = 0
    cart_merged: bool = False
    dropped_lines: tuple[CartLine, ...] = ()
    clamped_lines: tuple[CartLine, ...] = ()


NOTHING = ConversionReport()


__all__ = ("ConversionStep", "ConversionReport", "NOTHING")
