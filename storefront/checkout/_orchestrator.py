"""
Checkout Orchestrator — from a priced cart to exactly one order.

Two paths:

    Deferred capture (COD):
        place_deferred()  → promo consumed + order + cart cleared, now

    Gateway capture:
        open_payment()          → intent opened, snapshot stored, no order
        handle_payment_result() → verified success: order + cart cleared,
                                  at most once per intent

Every path returns a Placement carrying the next CheckoutFlow, so callers
always know where the shopper stands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import LazyCoroResult, Result, Ok, Error
from combinators import flow, lift as L

from storefront import idempotency as I
from storefront import saga as S
from storefront._types import to_minor_units, utcnow
from storefront.cart import CartEngine, VariantKey
from storefront.catalog import Catalog
from storefront.config import Settings
from storefront.db import IdempotencyRecordTable, PaymentIntentTable
from storefront.errors import (
    CheckoutError,
    EmptyCart,
    InvalidTransition,
    PaymentCancelled,
    PaymentFailed,
    PaymentFailureKind,
    StorageFailed,
)
from storefront.promo import PromoService
from storefront.session import Identity
from storefront.checkout._address import validate_address
from storefront.checkout._gateway import PaymentGateway, verify_signature
from storefront.checkout._orders import OrderDraft, OrderRepository
from storefront.checkout._quote import Quote, QuoteInput, quote
from storefront.checkout._state import CheckoutFlow
from storefront.checkout._types import (
    DeliveryArea,
    IntentStatus,
    Order,
    OrderStatus,
    PaymentCallback,
    PaymentIntent,
    PaymentMethod,
    PaymentOutcome,
    ShippingAddress,
    TotalsPolicy,
)

logger = logging.getLogger(__name__)

_CAPTURABLE = (IntentStatus.OPEN, IntentStatus.FAILED, IntentStatus.CANCELLED)


@dataclass(frozen=True, slots=True)
class Placement[T]:
    """Outcome of a placement step plus the flow the shopper is now in."""

    flow: CheckoutFlow
    result: Result[T, CheckoutError]


def _gateway_failure(e: Exception) -> PaymentFailed:
    if isinstance(e, TimeoutError):
        return PaymentFailed(PaymentFailureKind.TIMEOUT, "Payment gateway timed out")
    return PaymentFailed(PaymentFailureKind.GATEWAY, f"Payment gateway error: {e}")


def _storage_failure(e: Exception) -> StorageFailed:
    logger.error("Checkout storage failure: %s", e)
    return StorageFailed(str(e))


def _ordered(draft: OrderDraft) -> list[tuple[VariantKey, int]]:
    return [(VariantKey(l.product_id, l.size, l.color), l.quantity) for l in draft.lines]


class CheckoutOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cart: CartEngine,
        promos: PromoService,
        orders: OrderRepository,
        catalog: Catalog,
        gateway: PaymentGateway,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._cart = cart
        self._promos = promos
        self._orders = orders
        self._catalog = catalog
        self._gateway = gateway
        self._secret = settings.payment_key_secret
        self._area = DeliveryArea.from_settings(settings)
        self._policy = TotalsPolicy.from_settings(settings)
        self._captures = (
            I.idempotent(self._capture)
            .key(lambda cb: f"payment-capture:{cb.intent_id}")
            .store(I.SQLAlchemyStore(session_factory, IdempotencyRecordTable))
            .policy(I.Policy().with_ttl(hours=24 * 30).with_lock_timeout(seconds=30))
            .build()
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Review
    # ═══════════════════════════════════════════════════════════════════════════

    async def quote(
        self, identity: Identity, promo_code: str | None = None
    ) -> Result[Quote, CheckoutError]:
        """Price the current cart: lines, promo, shipping, tax, total."""
        match await self._cart.get_cart(identity):
            case Error(e):
                return Error(e)  # type: ignore[arg-type]
            case Ok(cart):
                pass
        source = QuoteInput(
            cart=cart,
            promo_code=promo_code,
            owner=identity.owner,
            promos=self._promos,
            catalog=self._catalog,
            policy=self._policy,
        )
        match await L.catching_async(lambda: quote(source), on_error=_storage_failure):
            case Error(e):
                return Error(e)
            case Ok(priced):
                pass
        match priced:
            case Ok(q):
                return Ok(q)
            case Error(e):
                return Error(e)

    def submit_address(
        self,
        checkout: CheckoutFlow,
        address: ShippingAddress,
        contact_email: str | None = None,
    ) -> Result[CheckoutFlow, CheckoutError]:
        """Validate before the flow may move on; nothing downstream sees a bad address."""
        match validate_address(address, self._area):
            case Error(e):
                return Error(e)
            case Ok(normalized):
                pass
        match checkout.submit_address(normalized, contact_email):
            case Ok(moved):
                return Ok(moved)
            case Error(e):
                return Error(e)

    def review(
        self,
        address: ShippingAddress,
        method: PaymentMethod,
        promo_code: str | None = None,
        contact_email: str | None = None,
    ) -> Result[CheckoutFlow, CheckoutError]:
        """Walk a fresh flow to ReviewingOrder in one go (stateless clients)."""
        match self.submit_address(CheckoutFlow(), address, contact_email):
            case Error(e):
                return Error(e)
            case Ok(checkout):
                pass
        match checkout.choose_payment(method):
            case Error(e):
                return Error(e)
            case Ok(checkout):
                pass
        match checkout.apply_promo(promo_code):
            case Error(e):
                return Error(e)
            case Ok(checkout):
                return Ok(checkout)

    # ═══════════════════════════════════════════════════════════════════════════
    # Placement
    # ═══════════════════════════════════════════════════════════════════════════

    async def _prepare(
        self, identity: Identity, placing: CheckoutFlow
    ) -> Result[OrderDraft, CheckoutError]:
        """Re-check everything at placement time; the review may be stale."""
        if placing.address is None or placing.payment_method is None:
            return Error(InvalidTransition(placing.state.value, "placement"))

        match validate_address(placing.address, self._area):
            case Error(e):
                return Error(e)
            case Ok(address):
                pass

        match await self.quote(identity, placing.promo_code):
            case Error(e):
                return Error(e)
            case Ok(q):
                pass

        if not q.lines:
            return Error(EmptyCart())

        return Ok(OrderDraft(
            owner_kind=identity.owner[0],
            owner_id=identity.owner[1],
            payment_method=placing.payment_method,
            lines=q.lines,
            totals=q.totals,
            currency=q.currency,
            shipping_address=address,
            promo_code=q.promo.code if q.promo is not None else None,
            contact_email=placing.contact_email,
        ))

    def _fail[T](self, placing: CheckoutFlow, error: CheckoutError) -> Placement[T]:
        logger.warning("Checkout placement failed: %s", getattr(error, "message", error))
        return Placement(placing.failed(error), Error(error))

    async def place_deferred(
        self, identity: Identity, checkout: CheckoutFlow
    ) -> Placement[Order]:
        """
        Cash on delivery: the order exists as soon as this returns Ok.

        The promo use is consumed first and released if the order cannot be
        written, so a failed placement never burns a limited code.
        """
        match checkout.begin_placement():
            case Error(e):
                return Placement(checkout, Error(e))
            case Ok(placing):
                pass

        if placing.payment_method is not PaymentMethod.COD:
            return self._fail(placing, InvalidTransition(placing.state.value, "deferred capture"))

        match await self._prepare(identity, placing):
            case Error(e):
                return self._fail(placing, e)
            case Ok(draft):
                pass

        create = S.from_async(
            lambda: self._create_order(draft, OrderStatus.PENDING_FULFILLMENT),
            on_error=_storage_failure,
        )
        if draft.promo_code is not None:
            code, owner = draft.promo_code, draft.owner
            placed: S.Saga[Order, Any] = S.step(
                self._promos.consume(code, owner),
                compensate=lambda _: self._promos.release(code, owner),
            ).then(lambda _: create)
        else:
            placed = create

        match await S.run(placed):
            case Ok(r):
                order = r.value
            case Error(e):
                if not e.rollback_complete:
                    logger.error("Promo %s was not released after a failed placement", draft.promo_code)
                return self._fail(placing, e.error)

        logger.info("Order %s placed (COD) for %s:%s", order.order_number, *draft.owner)
        return Placement(placing.placed(order.id), Ok(order))

    async def _create_order(
        self,
        draft: OrderDraft,
        status: OrderStatus,
    ) -> Order:
        async with self._session_factory.begin() as session:
            order = await self._orders.create_in(session, draft, status)
            await self._cart.deduct_in(session, draft.owner, _ordered(draft))
        return order

    # ═══════════════════════════════════════════════════════════════════════════
    # Gateway capture
    # ═══════════════════════════════════════════════════════════════════════════

    async def open_payment(
        self, identity: Identity, checkout: CheckoutFlow
    ) -> Placement[PaymentIntent]:
        """
        Open a gateway intent for the re-validated total. No order exists
        until a verified success callback arrives; the flow stays in
        PlacingOrder until then.
        """
        match checkout.begin_placement():
            case Error(e):
                return Placement(checkout, Error(e))
            case Ok(placing):
                pass

        if placing.payment_method is not PaymentMethod.GATEWAY:
            return self._fail(placing, InvalidTransition(placing.state.value, "gateway capture"))

        match await self._prepare(identity, placing):
            case Error(e):
                return self._fail(placing, e)
            case Ok(draft):
                pass

        amount = to_minor_units(draft.totals.total)
        opened = await L.catching_async(
            lambda: self._gateway.open_intent(amount, draft.currency),
            on_error=_gateway_failure,
        )
        match opened:
            case Error(e):
                return self._fail(placing, e)
            case Ok(intent):
                pass

        stored = await L.catching_async(
            lambda: self._store_intent(intent, draft),
            on_error=_storage_failure,
        )
        match stored:
            case Error(e):
                return self._fail(placing, e)
            case Ok(_):
                pass

        logger.info(
            "Payment intent %s opened for %s:%s (%d %s)",
            intent.intent_id, *draft.owner, intent.amount, intent.currency,
        )
        return Placement(placing.awaiting_payment(intent), Ok(intent))

    async def _store_intent(self, intent: PaymentIntent, draft: OrderDraft) -> None:
        now = utcnow()
        async with self._session_factory.begin() as session:
            session.add(PaymentIntentTable(
                id=intent.intent_id,
                owner_kind=draft.owner_kind,
                owner_id=draft.owner_id,
                amount=intent.amount,
                currency=intent.currency,
                status=IntentStatus.OPEN,
                snapshot=draft.to_snapshot(),
                created_at=now,
                updated_at=now,
            ))

    async def handle_payment_result(
        self, callback: PaymentCallback
    ) -> Result[Order, CheckoutError]:
        """
        Apply an asynchronous gateway result. Safe to call any number of
        times for the same intent: at most one order is ever created.

        Use CheckoutFlow.settle() on the result to move the shopper's flow.
        """
        match await L.catching_async(
            lambda: self._load_intent(callback.intent_id), on_error=_storage_failure
        ):
            case Error(e):
                return Error(e)
            case Ok(intent):
                pass
        if intent is None:
            logger.warning("Payment callback for unknown intent %s", callback.intent_id)
            return Error(PaymentFailed(PaymentFailureKind.UNKNOWN_INTENT, "Unknown payment"))

        match callback.outcome:
            case PaymentOutcome.SUCCESS:
                return await self._settle_success(callback)
            case PaymentOutcome.FAILURE:
                match await self._close_intent(callback.intent_id, IntentStatus.FAILED):
                    case Error(e):
                        return Error(e)
                    case Ok(_):
                        pass
                logger.warning("Payment %s declined: %s", callback.intent_id, callback.reason)
                return Error(PaymentFailed(
                    PaymentFailureKind.DECLINED, callback.reason or "Payment failed"
                ))
            case PaymentOutcome.CANCELLED:
                match await self._close_intent(callback.intent_id, IntentStatus.CANCELLED):
                    case Error(e):
                        return Error(e)
                    case Ok(_):
                        pass
                logger.info("Payment %s cancelled by the shopper", callback.intent_id)
                return Error(PaymentCancelled(callback.intent_id))

    async def _load_intent(self, intent_id: str) -> PaymentIntentTable | None:
        async with self._session_factory() as session:
            return await session.get(PaymentIntentTable, intent_id)

    async def _settle_success(self, callback: PaymentCallback) -> Result[Order, CheckoutError]:
        if (
            not callback.payment_id
            or not callback.signature
            or not verify_signature(
                self._secret, callback.intent_id, callback.payment_id, callback.signature
            )
        ):
            logger.warning("Rejected payment callback for %s: bad signature", callback.intent_id)
            return Error(PaymentFailed(PaymentFailureKind.SIGNATURE, "Payment verification failed"))

        match await self._captures.run(callback):
            case Ok(captured):
                order_id = int(captured.value)
                if captured.from_cache:
                    logger.info("Duplicate success for %s, order %s", callback.intent_id, order_id)
            case Error(e):
                if isinstance(e.original_error, StorageFailed):
                    return Error(e.original_error)
                return Error(StorageFailed(e.message))

        match await L.catching_async(lambda: self._orders.get(order_id), on_error=_storage_failure):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass
        if order is None:
            return Error(StorageFailed(f"Order {order_id} vanished"))
        return Ok(order)

    def _capture(self, callback: PaymentCallback) -> LazyCoroResult[str, StorageFailed]:
        return (
            flow(L.catching_async(lambda: self._finalize(callback), on_error=_storage_failure))
            .map(str)
            .compile()
        )

    async def _finalize(self, callback: PaymentCallback) -> int:
        """
        Claim the intent (compare-and-set to captured), create the Paid order
        from its snapshot and take its lines out of the cart, all in one transaction. A lost
        claim means the order already exists.
        """
        async with self._session_factory.begin() as session:
            claimed = await session.execute(
                update(PaymentIntentTable)
                .where(
                    PaymentIntentTable.id == callback.intent_id,
                    PaymentIntentTable.status.in_(_CAPTURABLE),
                )
                .values(status=IntentStatus.CAPTURED, updated_at=utcnow())
            )
            intent = (
                await session.execute(
                    select(PaymentIntentTable).where(PaymentIntentTable.id == callback.intent_id)
                )
            ).scalar_one()

            if claimed.rowcount == 0:  # type: ignore[attr-defined]
                if intent.order_id is None:
                    raise LookupError(f"Intent {callback.intent_id} captured without an order")
                return intent.order_id

            draft = OrderDraft.from_snapshot(intent.snapshot)
            order = await self._orders.create_in(
                session,
                draft,
                OrderStatus.PAID,
                payment_intent_id=callback.intent_id,
                payment_id=callback.payment_id,
            )
            await session.execute(
                update(PaymentIntentTable)
                .where(PaymentIntentTable.id == callback.intent_id)
                .values(order_id=order.id)
            )
            await self._cart.deduct_in(session, draft.owner, _ordered(draft))

        logger.info("Order %s paid via %s", order.order_number, callback.intent_id)
        if draft.promo_code is not None:
            await self._consume_after_capture(draft)
        return order.id

    async def _consume_after_capture(self, draft: OrderDraft) -> None:
        """The money is taken; a promo that ran out meanwhile is logged, not refused."""
        assert draft.promo_code is not None
        match await self._promos.consume(draft.promo_code, draft.owner):
            case Error(StorageFailed() as e):
                logger.error("Could not record promo %s usage: %s", draft.promo_code, e.message)
            case Error(e):
                logger.warning("Promo %s over its limit after capture: %s", draft.promo_code, e.message)
            case Ok(_):
                pass

    def _close_intent(self, intent_id: str, status: str) -> LazyCoroResult[None, StorageFailed]:
        async def close() -> None:
            async with self._session_factory.begin() as session:
                await session.execute(
                    update(PaymentIntentTable)
                    .where(
                        PaymentIntentTable.id == intent_id,
                        PaymentIntentTable.status == IntentStatus.OPEN,
                    )
                    .values(status=status, updated_at=utcnow())
                )

        return L.catching_async(close, on_error=_storage_failure)

    def report_payment_failure(
        self, intent_id: str | None, reason: str, owner: tuple[str, str] | None = None
    ) -> None:
        """Client-side payment failure telemetry. Changes nothing."""
        logger.warning(
            "Client reported payment failure for %s (%s): %s",
            intent_id or "-",
            "%s:%s" % owner if owner else "anonymous",
            reason,
        )


__all__ = ("CheckoutOrchestrator", "Placement")
