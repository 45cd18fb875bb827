"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

from kungfu import LazyCoroResult
from combinators import lift as L

from storefront.saga._types import SagaStep, Compensator


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Example:
        reserve = S.step(
            action=promos.consume(code, owner),
            compensate=lambda _: promos.release(code, owner),
        )
        place = reserve.then(lambda _: S.step(action=orders.create(draft)))
    """
    return SagaStep(action=action, compensate=compensate)


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """Create step from an async callable, lifting exceptions into E."""
    return SagaStep(
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
    )


__all__ = ("step", "from_async")
