"""
Checkout state machine.

    CollectingAddress → CollectingPayment → ReviewingOrder → PlacingOrder
                                                               ├→ Placed
                                                               └→ PlacementFailed

Every transition returns a new flow. back_to() may jump to any earlier
step and keeps what was entered for the others; PlacementFailed can go back
or retry placement.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from kungfu import Result, Ok, Error

from storefront.errors import CheckoutError, InvalidTransition
from storefront.checkout._types import PaymentIntent, PaymentMethod, ShippingAddress


class CheckoutState(Enum):
    COLLECTING_ADDRESS = "CollectingAddress"
    COLLECTING_PAYMENT = "CollectingPayment"
    REVIEWING_ORDER = "ReviewingOrder"
    PLACING_ORDER = "PlacingOrder"
    PLACED = "Placed"
    PLACEMENT_FAILED = "PlacementFailed"


_STEPS = (
    CheckoutState.COLLECTING_ADDRESS,
    CheckoutState.COLLECTING_PAYMENT,
    CheckoutState.REVIEWING_ORDER,
)


@dataclass(frozen=True, slots=True)
class CheckoutFlow:
    state: CheckoutState = CheckoutState.COLLECTING_ADDRESS
    address: ShippingAddress | None = None
    contact_email: str | None = None
    payment_method: PaymentMethod | None = None
    promo_code: str | None = None
    intent: PaymentIntent | None = None
    order_id: int | None = None
    failure: CheckoutError | None = None

    def _move(self, allowed: tuple[CheckoutState, ...], target: CheckoutState, **changes: object) -> Result[CheckoutFlow, InvalidTransition]:
        if self.state not in allowed:
            return Error(InvalidTransition(self.state.value, target.value))
        return Ok(replace(self, state=target, **changes))  # type: ignore[arg-type]

    # ═══════════════════════════════════════════════════════════════════════════
    # Forward
    # ═══════════════════════════════════════════════════════════════════════════

    def submit_address(
        self, address: ShippingAddress, contact_email: str | None = None
    ) -> Result[CheckoutFlow, InvalidTransition]:
        return self._move(
            (CheckoutState.COLLECTING_ADDRESS,),
            CheckoutState.COLLECTING_PAYMENT,
            address=address,
            contact_email=contact_email if contact_email is not None else self.contact_email,
        )

    def choose_payment(self, method: PaymentMethod) -> Result[CheckoutFlow, InvalidTransition]:
        return self._move(
            (CheckoutState.COLLECTING_PAYMENT,),
            CheckoutState.REVIEWING_ORDER,
            payment_method=method,
        )

    def apply_promo(self, code: str | None) -> Result[CheckoutFlow, InvalidTransition]:
        """Set or clear the promo code; allowed until placement starts."""
        if self.state not in _STEPS:
            return Error(InvalidTransition(self.state.value, "apply_promo"))
        return Ok(replace(self, promo_code=code))

    def begin_placement(self) -> Result[CheckoutFlow, InvalidTransition]:
        return self._move(
            (CheckoutState.REVIEWING_ORDER, CheckoutState.PLACEMENT_FAILED),
            CheckoutState.PLACING_ORDER,
            failure=None,
            intent=None,
        )

    def awaiting_payment(self, intent: PaymentIntent) -> CheckoutFlow:
        return replace(self, intent=intent)

    def placed(self, order_id: int) -> CheckoutFlow:
        return replace(self, state=CheckoutState.PLACED, order_id=order_id, failure=None)

    def failed(self, error: CheckoutError) -> CheckoutFlow:
        return replace(self, state=CheckoutState.PLACEMENT_FAILED, failure=error)

    def settle(self, result: Result[int, CheckoutError]) -> CheckoutFlow:
        """Apply the outcome of an asynchronous payment (order id or error)."""
        match result:
            case Ok(order_id):
                return self.placed(order_id)
            case Error(error):
                return self.failed(error)

    # ═══════════════════════════════════════════════════════════════════════════
    # Back
    # ═══════════════════════════════════════════════════════════════════════════

    def back_to(self, target: CheckoutState) -> Result[CheckoutFlow, InvalidTransition]:
        if target not in _STEPS or self.state is CheckoutState.PLACED:
            return Error(InvalidTransition(self.state.value, target.value))
        if self.state in _STEPS and _STEPS.index(target) >= _STEPS.index(self.state):
            return Error(InvalidTransition(self.state.value, target.value))
        return Ok(replace(self, state=target, failure=None, intent=None))

    @property
    def is_ready_to_place(self) -> bool:
        return self.address is not None and self.payment_method is not None


__all__ = ("CheckoutState", "CheckoutFlow")
