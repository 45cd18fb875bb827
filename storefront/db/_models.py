"""
Database layer — SQLAlchemy models.

Ownership is a (owner_kind, owner_id) pair: "guest" + guest id, or
"user" + user id. Carts are unique per owner; orders carry their owner
and may be re-owned from guest to user exactly once.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from storefront.idempotency import IdempotencyMixin


class Base(DeclarativeBase):
    pass


class OwnerKind:
    GUEST = "guest"
    USER = "user"


# ═══════════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════════


class GuestSessionTable(Base):
    """
    Guest session + conversion checkpoints.

    Note: claimed_by is set when a conversion starts; *_at columns record
    each finished sub-step so a retry resumes where the last one stopped.
    """

    __tablename__ = "guest_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    claimed_by: Mapped[str | None] = mapped_column(String(40), nullable=True, index=True)
    orders_linked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    orders_linked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cart_merged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cart_merged_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    dropped_lines: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    clamped_lines: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class UserTable(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartTable(Base):
    __tablename__ = "carts"
    __table_args__ = (UniqueConstraint("owner_kind", "owner_id", name="uq_cart_owner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class CartLineTable(Base):
    """
    Cart and saved-for-later lines share one table, split by `saved`.

    Note: the unique key is what makes ON CONFLICT increments possible.
    Row id order is display order.
    """

    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint(
            "cart_id", "saved", "product_id", "size", "color", name="uq_cart_line_key"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(
        ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    saved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(20), nullable=False)
    color: Mapped[str] = mapped_column(String(40), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_add: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders / Payments
# ═══════════════════════════════════════════════════════════════════════════════


class OrderTable(Base):
    """Order header. `id` doubles as the sequence behind order numbers."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    origin_guest_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reowned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_intent_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )
    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    promo_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    discount: Mapped[int] = mapped_column(Integer, nullable=False)
    shipping: Mapped[int] = mapped_column(Integer, nullable=False)
    tax: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    tracking_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class OrderLineTable(Base):
    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(20), nullable=False)
    color: Mapped[str] = mapped_column(String(40), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)


class PaymentIntentTable(Base):
    """
    An opened gateway payment. The snapshot holds everything needed to
    build the order once the success callback is verified.
    """

    __tablename__ = "payment_intents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Promotions
# ═══════════════════════════════════════════════════════════════════════════════


class PromoCodeTable(Base):
    """Empty applicable_* lists mean "applies to everything"."""

    __tablename__ = "promo_codes"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    discount_type: Mapped[str] = mapped_column(String(12), nullable=False)
    discount_value: Mapped[int] = mapped_column(Integer, nullable=False)
    min_order_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_discount_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_usage_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_usage_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    first_order_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applicable_products: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applicable_categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applicable_users: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class PromoUsageTable(Base):
    __tablename__ = "promo_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    owner: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    used_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency
# ═══════════════════════════════════════════════════════════════════════════════


class IdempotencyRecordTable(Base, IdempotencyMixin):
    """Records for guarded operations (payment captures)."""

    __tablename__ = "idempotency_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
