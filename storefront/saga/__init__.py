"""
Saga — multi-step writes with compensation.

    from storefront import saga as S

    placed = S.step(consume_promo, release_promo).then(lambda _: S.step(create_order))
    result = await S.run(placed)
"""

from storefront.saga._types import (
    Compensator,
    SagaStep,
    Then,
    Saga,
    SagaResult,
    SagaError,
)
from storefront.saga._step import step, from_async
from storefront.saga._run import run

__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "Saga",
    "SagaResult",
    "SagaError",
    "step",
    "from_async",
    "run",
)
