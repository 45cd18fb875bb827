"""
Graph — small computation graphs over nodnod.

    from storefront import graph as G

    @G.node
    class SubtotalNode:
        def __init__(self, value: int) -> None:
            self.value = value

        @classmethod
        def __compose__(cls, cart: CartNode) -> "SubtotalNode":
            return cls(cart.data.subtotal)

    subtotal = await G.compose(SubtotalNode, quote_input)
"""

from nodnod import scalar_node as node

from storefront.graph._run import Run, run, compose

__all__ = ("node", "Run", "run", "compose")
