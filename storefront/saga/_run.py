"""
Saga execution with automatic rollback.
"""

from __future__ import annotations

import logging
from typing import Any

from kungfu import Result, Ok, Error

from storefront.saga._types import (
    Saga,
    SagaStep,
    SagaResult,
    SagaError,
    Then,
    Compensator,
)

logger = logging.getLogger(__name__)

type Recorded = list[tuple[Any, Compensator[Any]]]


class _Failed(Exception):
    """Internal: carries a step error out of the recursive walk."""

    def __init__(self, error: Any, step_no: int) -> None:
        self.error = error
        self.step_no = step_no


async def _walk(saga: Saga[Any, Any], recorded: Recorded, counter: list[int]) -> Any:
    if isinstance(saga, Then):
        value = await _walk(saga.inner, recorded, counter)
        return await _walk(saga.f(value), recorded, counter)

    counter[0] += 1
    match await saga.action:
        case Ok(value):
            if saga.compensate is not None:
                recorded.append((value, saga.compensate))
            return value
        case Error(e):
            raise _Failed(e, counter[0])


async def _rollback(recorded: Recorded) -> tuple[int, int]:
    """Run compensators in reverse. Returns (run, failed)."""
    ran = failed = 0
    for value, compensate in reversed(recorded):
        try:
            await compensate(value)
            ran += 1
        except Exception:
            logger.exception("Compensator failed")
            failed += 1
    return ran, failed


async def run[T, E](saga: SagaStep[T, E] | Then[Any, T, E]) -> Result[SagaResult[T], SagaError[E]]:
    """
    Execute a step or chain; on failure compensate what already succeeded.

    Example:
        match await S.run(place_order):
            case Ok(r):
                r.value
            case Error(e):
                e.error, e.rollback_complete
    """
    recorded: Recorded = []
    counter = [0]

    try:
        value = await _walk(saga, recorded, counter)
    except _Failed as failure:
        ran, failed = await _rollback(recorded)
        return Error(SagaError(
            error=failure.error,
            step_failed=failure.step_no,
            compensators_run=ran,
            compensators_failed=failed,
            rollback_complete=failed == 0,
        ))

    return Ok(SagaResult(
        value=value,
        steps_executed=counter[0],
        compensators_recorded=len(recorded),
    ))


__all__ = ("run",)
