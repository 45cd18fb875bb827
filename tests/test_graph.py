"""Tests for the node-graph runner."""

import asyncio
from dataclasses import dataclass

from storefront import graph as G
from storefront.checkout import parse_order_number


@dataclass(frozen=True)
class Basket:
    prices: tuple[int, ...]


@G.node
class BasketNode:
    def __init__(self, basket: Basket) -> None:
        self.basket = basket

    @classmethod
    def __compose__(cls, basket: Basket) -> "BasketNode":
        return cls(basket)


@G.node
class SumNode:
    def __init__(self, value: int) -> None:
        self.value = value

    @classmethod
    async def __compose__(cls, basket: BasketNode) -> "SumNode":
        return cls(sum(basket.basket.prices))


def test_run_resolves_dependencies():
    node = asyncio.run(G.run(SumNode).inject(Basket((500, 900))))
    assert node.value == 1400


def test_compose_injects_by_runtime_type():
    node = asyncio.run(G.compose(SumNode, Basket(())))
    assert node.value == 0


def test_parse_order_number():
    assert parse_order_number("000042") == 42
    assert parse_order_number("#000007") == 7
    assert parse_order_number("000000") is None
    assert parse_order_number("abc") is None
