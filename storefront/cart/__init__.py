"""
Cart — line items for a guest session or a registered user.

    from storefront import cart as C

    engine = C.CartEngine(session_factory, catalog, settings)
    match await engine.add_item(identity, "P1", "M", "red", 2):
        case Ok(snapshot): ...
        case Error(e): ...
"""

from storefront.cart._types import (
    VariantKey,
    CartLine,
    SavedLine,
    CartSnapshot,
    MergeReport,
)
from storefront.cart._engine import CartEngine

__all__ = (
    "VariantKey",
    "CartLine",
    "SavedLine",
    "CartSnapshot",
    "MergeReport",
    "CartEngine",
)
