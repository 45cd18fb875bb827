"""
Persistence — SQLAlchemy 2.0 async models and setup.

    session_factory, engine = await create_database("sqlite+aiosqlite:///shop.db")
"""

from storefront.db._models import (
    Base,
    OwnerKind,
    GuestSessionTable,
    UserTable,
    CartTable,
    CartLineTable,
    OrderTable,
    OrderLineTable,
    PaymentIntentTable,
    PromoCodeTable,
    PromoUsageTable,
    IdempotencyRecordTable,
)
from storefront.db._engine import create_database

__all__ = (
    "Base",
    "OwnerKind",
    "GuestSessionTable",
    "UserTable",
    "CartTable",
    "CartLineTable",
    "OrderTable",
    "OrderLineTable",
    "PaymentIntentTable",
    "PromoCodeTable",
    "PromoUsageTable",
    "IdempotencyRecordTable",
    "create_database",
)
