"""
Catalog collaborator — the only thing the core needs from the product catalog.

    info = await catalog.get_variant("P1", "M", "red")
    if info is None or not info.orderable: ...
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class VariantInfo:
    """Live facts about one (product, size, color)."""

    price: int
    orderable: bool
    category_id: str | None = None


class Catalog(Protocol):
    async def get_variant(
        self, product_id: str, size: str, color: str
    ) -> VariantInfo | None:
        """Return None for an unknown product or variant."""
        ...


class MemoryCatalog:
    """
    Dict-backed catalog for development and tests.

        catalog = MemoryCatalog()
        catalog.put("P1", "M", "red", price=500, category_id="shirts")
    """

    def __init__(self) -> None:
        self._variants: dict[tuple[str, str, str], VariantInfo] = {}

    @classmethod
    def from_file(cls, path: str | Path) -> MemoryCatalog:
        """
        Load variants from a JSON list:

            [{"product_id": "P1", "size": "M", "color": "red", "price": 500,
              "category_id": "shirts", "orderable": true}]
        """
        catalog = cls()
        for entry in json.loads(Path(path).read_text(encoding="utf-8")):
            catalog.put(
                entry["product_id"],
                entry["size"],
                entry["color"],
                price=int(entry["price"]),
                orderable=entry.get("orderable", True),
                category_id=entry.get("category_id"),
            )
        return catalog

    def __len__(self) -> int:
        return len(self._variants)

    def put(
        self,
        product_id: str,
        size: str,
        color: str,
        *,
        price: int,
        orderable: bool = True,
        category_id: str | None = None,
    ) -> None:
        self._variants[(product_id, size, color)] = VariantInfo(
            price=price, orderable=orderable, category_id=category_id
        )

    def set_orderable(self, product_id: str, size: str, color: str, orderable: bool) -> None:
        current = self._variants[(product_id, size, color)]
        self._variants[(product_id, size, color)] = VariantInfo(
            price=current.price, orderable=orderable, category_id=current.category_id
        )

    async def get_variant(
        self, product_id: str, size: str, color: str
    ) -> VariantInfo | None:
        return self._variants.get((product_id, size, color))


__all__ = ("VariantInfo", "Catalog", "MemoryCatalog")
