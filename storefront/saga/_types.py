"""
Saga types — steps, chains, results.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable, Awaitable

from kungfu import LazyCoroResult

type Compensator[T] = Callable[[T], Awaitable[None]]
"""Receives the step's result and undoes it."""


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    One action + its compensator.

    When the action succeeds its compensator is recorded; if a later step
    fails, recorded compensators run in reverse.
    """

    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None

    def then[U](self, f: Callable[[T], Saga[U, E]]) -> Then[T, U, E]:
        """Chain the next step, built from this step's value."""
        return Then(self, f)


@dataclass(frozen=True, slots=True)
class Then[T, U, E]:
    """Sequential composition (monadic bind)."""

    inner: SagaStep[T, E] | Then[object, T, E]
    f: Callable[[T], Saga[U, E]]

    def then[V](self, g: Callable[[U], Saga[V, E]]) -> Then[U, V, E]:
        return Then(self, g)


type Saga[T, E] = SagaStep[T, E] | Then[object, T, E]


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """Failure with rollback status."""

    error: E
    step_failed: int
    compensators_run: int
    compensators_failed: int
    rollback_complete: bool


__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "Saga",
    "SagaResult",
    "SagaError",
)
