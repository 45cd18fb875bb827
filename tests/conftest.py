"""Pytest fixtures: per-test SQLite database, seeded catalog, sandbox gateway."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

import pytest

from storefront.app import Storefront, build_storefront
from storefront.catalog import MemoryCatalog
from storefront.checkout import SandboxGateway
from storefront.config import Settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return replace(
        Settings(),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        password_hash_rounds=4,
    )


@pytest.fixture
def catalog() -> MemoryCatalog:
    catalog = MemoryCatalog()

    catalog.put("P1", "M", "red", price=500, category_id="shirts")
    catalog.put("P1", "L", "red", price=500, category_id="shirts")
    catalog.put("P2", "S", "blue", price=900, category_id="kurtas")
    catalog.put("P3", "M", "black", price=1800, category_id="sarees")
    catalog.put("P4", "M", "green", price=700, orderable=False)  # Discontinued

    return catalog


@pytest.fixture
def gateway(settings) -> SandboxGateway:
    return SandboxGateway(settings.payment_key_secret, key_id=settings.payment_key_id)


@pytest.fixture
def with_store(settings, catalog, gateway) -> Callable[[Callable[[Storefront], Awaitable[Any]]], Any]:
    """Run `scenario(store)` on a fresh storefront inside its own event loop."""

    def runner(scenario: Callable[[Storefront], Awaitable[Any]]) -> Any:
        async def main() -> Any:
            store = await build_storefront(settings, catalog, gateway)
            try:
                return await scenario(store)
            finally:
                await store.dispose()

        return asyncio.run(main())

    return runner
