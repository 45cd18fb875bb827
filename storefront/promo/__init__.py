"""
Promotions — validate and price a promo code against a cart.

    from storefront import promo as P

    match P.evaluate(code_record, "save10", 1800, items):
        case Ok(app): app.discount_amount
        case Error(e): e.message, e.min_order_amount
"""

from storefront.promo._types import (
    DiscountType,
    PromoCode,
    PromoLineItem,
    UsageFacts,
    PromoApplication,
)
from storefront.promo._evaluate import (
    normalize_code,
    is_well_formed,
    price_discount,
    evaluate,
)
from storefront.promo._service import PromoService, owner_tag

__all__ = (
    "DiscountType",
    "PromoCode",
    "PromoLineItem",
    "UsageFacts",
    "PromoApplication",
    "normalize_code",
    "is_well_formed",
    "price_discount",
    "evaluate",
    "PromoService",
    "owner_tag",
)
