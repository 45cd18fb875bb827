"""
FastAPI application factory.

    app = create_app(settings, catalog, gateway)

Without explicit collaborators the catalog is read from CATALOG_PATH and the
payment gateway is chosen by PAYMENT_GATEWAY.

The storefront container is built in the lifespan and lives on
`app.state.storefront`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.app import build_storefront
from storefront.catalog import Catalog, MemoryCatalog
from storefront.checkout import PaymentGateway, gateway_from_settings
from storefront.config import Settings, configure_logging, load_settings
from storefront.http._errors import ApiError, handle_api_error
from storefront.http._routes import routers

logger = logging.getLogger(__name__)


def _catalog_from_settings(settings: Settings) -> MemoryCatalog:
    if settings.catalog_path is None:
        logger.warning("CATALOG_PATH is not set; every variant will be unavailable")
        return MemoryCatalog()
    catalog = MemoryCatalog.from_file(settings.catalog_path)
    logger.info("Loaded %d catalog variants from %s", len(catalog), settings.catalog_path)
    return catalog


def create_app(
    settings: Settings | None = None,
    catalog: Catalog | None = None,
    gateway: PaymentGateway | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    if catalog is None:
        catalog = _catalog_from_settings(settings)
    gateway = gateway if gateway is not None else gateway_from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        store = await build_storefront(settings, catalog, gateway)
        app.state.storefront = store
        try:
            yield
        finally:
            await store.dispose()
            logger.info("Storefront stopped")

    app = FastAPI(title="Storefront", lifespan=lifespan)
    app.add_exception_handler(ApiError, handle_api_error)
    for router in routers:
        app.include_router(router, prefix="/api")
    return app


def main() -> FastAPI:
    """Entry point for `uvicorn --factory storefront.http:main`."""
    settings = load_settings()
    configure_logging(settings.log_level)
    return create_app(settings)


__all__ = ("create_app", "main")
