"""
storefront — cart, guest session and checkout core of a clothing store.

    from storefront import cart as C       # Cart lines and snapshots
    from storefront import checkout as CO  # Totals, placement, payments
    from storefront import saga as S       # Compensated multi-step writes
    from storefront import graph as G      # Quote pipeline
"""

from storefront import saga
from storefront import graph
from storefront import idempotency
from storefront._types import (
    Lazy,
    Pure,
    Money,
    to_minor_units,
    round_half_up,
)
from storefront.config import Settings, load_settings
from storefront.catalog import Catalog, MemoryCatalog, VariantInfo
from storefront.app import Storefront, build_storefront

__version__ = "0.1.0"

__all__ = (
    "saga",
    "graph",
    "idempotency",
    "Lazy",
    "Pure",
    "Money",
    "to_minor_units",
    "round_half_up",
    "Settings",
    "load_settings",
    "Catalog",
    "MemoryCatalog",
    "VariantInfo",
    "Storefront",
    "build_storefront",
)
