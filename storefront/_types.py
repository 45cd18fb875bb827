"""
Core types for storefront.

Re-exports from kungfu + shared aliases used across the core.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Never

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

type Pure[T] = Lazy[T, Never]
"""Lazy computation that cannot fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Domain Scalars
# ═══════════════════════════════════════════════════════════════════════════════

type Money = int
"""Whole currency units (rupees). Gateways receive minor units (x100)."""

type ProductId = str
type UserId = str
type GuestId = str


def to_minor_units(amount: Money) -> int:
    """Convert whole currency units to the gateway's minor units."""
    return amount * 100


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def round_half_up(value: Decimal | int | float) -> int:
    """
    Round to the nearest whole unit, halves away from zero.

    Note: Python's round() is banker's rounding; money is not. Floats go
    through str() so 0.18 stays 0.18.
    """
    exact = value if isinstance(value, Decimal) else Decimal(str(value))
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Type aliases
    "Lazy",
    "Pure",
    "Money",
    "ProductId",
    "UserId",
    "GuestId",
    # Helpers
    "to_minor_units",
    "round_half_up",
    "utcnow",
)
