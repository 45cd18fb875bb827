"""
Cart types — lines and server-authoritative snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class VariantKey:
    """Line identity: one line per (product, size, color) per list."""

    product_id: str
    size: str
    color: str


@dataclass(frozen=True, slots=True)
class CartLine:
    """
    Note: price_at_add is the unit price captured on the first add. It is
    never refreshed from the catalog.
    """

    product_id: str
    size: str
    color: str
    quantity: int
    price_at_add: int

    @property
    def key(self) -> VariantKey:
        return VariantKey(self.product_id, self.size, self.color)

    @property
    def line_total(self) -> int:
        return self.price_at_add * self.quantity


# Saved-for-later lines have the same shape; they just live in the other list.
type SavedLine = CartLine


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """
    Full cart state as returned by every operation.

    Note: item_count and subtotal are derived on read, never stored.
    Saved lines count toward neither.
    """

    owner_kind: str
    owner_id: str
    lines: tuple[CartLine, ...]
    saved: tuple[SavedLine, ...]
    updated_at: datetime

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line(self, product_id: str, size: str, color: str) -> CartLine | None:
        key = VariantKey(product_id, size, color)
        return next((line for line in self.lines if line.key == key), None)


@dataclass(frozen=True, slots=True)
class MergeReport:
    """
    Outcome of carrying lines into another cart.

    merged: what was carried, with the carried quantities
    dropped: lines whose variant is no longer orderable
    clamped: quantity left behind by the per-line limit
    """

    cart: CartSnapshot
    merged: tuple[CartLine, ...]
    dropped: tuple[CartLine, ...]
    clamped: tuple[CartLine, ...] = ()


__all__ = ("VariantKey", "CartLine", "SavedLine", "CartSnapshot", "MergeReport")
