"""
Storefront — the wired-up core.

    store = await build_storefront(settings, catalog, gateway)
    try:
        await store.cart.add_item(identity, "P1", "M", "red", 1)
    finally:
        await store.dispose()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from storefront.accounts import AccountService
from storefront.cart import CartEngine
from storefront.catalog import Catalog
from storefront.checkout import CheckoutOrchestrator, OrderRepository, PaymentGateway
from storefront.config import Settings
from storefront.conversion import ConversionService
from storefront.db import create_database
from storefront.promo import PromoService
from storefront.session import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Storefront:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    catalog: Catalog
    gateway: PaymentGateway
    sessions: SessionStore
    cart: CartEngine
    promos: PromoService
    orders: OrderRepository
    checkout: CheckoutOrchestrator
    conversions: ConversionService
    accounts: AccountService

    async def dispose(self) -> None:
        await self.engine.dispose()


async def build_storefront(
    settings: Settings,
    catalog: Catalog,
    gateway: PaymentGateway,
) -> Storefront:
    session_factory, engine = await create_database(settings.database_url)

    sessions = SessionStore(session_factory, settings)
    cart = CartEngine(session_factory, catalog, settings)
    promos = PromoService(session_factory)
    orders = OrderRepository(session_factory)
    conversions = ConversionService(session_factory, cart)

    logger.info("Storefront ready on %s", engine.url.render_as_string(hide_password=True))
    return Storefront(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        catalog=catalog,
        gateway=gateway,
        sessions=sessions,
        cart=cart,
        promos=promos,
        orders=orders,
        checkout=CheckoutOrchestrator(
            session_factory, cart, promos, orders, catalog, gateway, settings
        ),
        conversions=conversions,
        accounts=AccountService(session_factory, sessions, conversions, settings),
    )


__all__ = ("Storefront", "build_storefront")
