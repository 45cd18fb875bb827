"""
Quote — cart -> promo -> totals as a node graph.

    quote = await G.run(QuoteNode).inject(QuoteInput(cart, "SAVE10", owner, promos, catalog, policy))
    match quote.data:
        case Ok(q): q.totals.total
        case Error(e): e.message
"""

from dataclasses import dataclass

from kungfu import Ok, Error, Result

from storefront import graph as G
from storefront.cart import CartSnapshot
from storefront.catalog import Catalog
from storefront.errors import PromoInvalid, StorageFailed
from storefront.promo import PromoApplication, PromoLineItem, PromoService
from storefront.checkout._totals import compute_totals
from storefront.checkout._types import OrderLine, Totals, TotalsPolicy


@dataclass(frozen=True, slots=True)
class QuoteInput:
    cart: CartSnapshot
    promo_code: str | None
    owner: tuple[str, str] | None
    promos: PromoService
    catalog: Catalog
    policy: TotalsPolicy


@dataclass(frozen=True, slots=True)
class Quote:
    """Priced cart. Lines bill at price_at_add."""

    lines: tuple[OrderLine, ...]
    promo: PromoApplication | None
    totals: Totals
    currency: str


@G.node
class CartNode:
    """Entry point: wraps the quote input."""

    def __init__(self, data: QuoteInput) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, source: QuoteInput) -> "CartNode":
        return cls(source)


@G.node
class LineItemsNode:
    """Cart lines annotated with catalog categories, for promo scoping."""

    def __init__(self, items: tuple[PromoLineItem, ...]) -> None:
        self.items = items

    @classmethod
    async def __compose__(cls, cart: CartNode) -> "LineItemsNode":
        items = []
        for line in cart.data.cart.lines:
            variant = await cart.data.catalog.get_variant(line.product_id, line.size, line.color)
            items.append(PromoLineItem(
                product_id=line.product_id,
                category_id=variant.category_id if variant is not None else None,
                quantity=line.quantity,
            ))
        return cls(tuple(items))


@G.node
class PromoNode:
    """Ok(None) without a code; the validated application otherwise."""

    def __init__(self, data: Result[PromoApplication | None, PromoInvalid | StorageFailed]) -> None:
        self.data = data

    @classmethod
    async def __compose__(cls, cart: CartNode, items: LineItemsNode) -> "PromoNode":
        source = cart.data
        if not source.promo_code:
            return cls(Ok(None))
        return cls(await source.promos.validate(
            source.promo_code, source.cart.subtotal, items.items, source.owner
        ))


@G.node
class QuoteNode:
    def __init__(self, data: Result[Quote, PromoInvalid | StorageFailed]) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, cart: CartNode, promo: PromoNode) -> "QuoteNode":
        source = cart.data
        match promo.data:
            case Error(e):
                return cls(Error(e))
            case Ok(application):
                discount = application.discount_amount if application is not None else 0
                return cls(Ok(Quote(
                    lines=tuple(
                        OrderLine(l.product_id, l.size, l.color, l.quantity, l.price_at_add)
                        for l in source.cart.lines
                    ),
                    promo=application,
                    totals=compute_totals(source.cart.subtotal, discount, source.policy),
                    currency=source.policy.currency,
                )))


async def quote(source: QuoteInput) -> Result[Quote, PromoInvalid | StorageFailed]:
    node = await G.run(QuoteNode).inject(source)
    return node.data


__all__ = ("QuoteInput", "Quote", "CartNode", "LineItemsNode", "PromoNode", "QuoteNode", "quote")
