"""
Runner — awaitable sugar over nodnod.

The target node's dependencies are discovered from `__compose__` type
hints; inputs are injected into the scope by type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


@dataclass(frozen=True, slots=True)
class Run[T]:
    """
    Fluent runner for one target node.

        totals = await G.run(TotalsNode).inject(quote_input)
    """

    _target: type[T]
    _injections: tuple[tuple[type[Any], Any], ...] = ()

    def inject(self, value: object) -> Run[T]:
        """Inject a value under its runtime type."""
        return self.inject_as(cast(type[Any], type(value)), value)

    def inject_as[V](self, typ: type[V], value: V) -> Run[T]:
        """Inject under an explicit type (protocols, base classes)."""
        return Run(self._target, (*self._injections, (typ, value)))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        agent = EventLoopAgent.build({cast(type[Node[Any, Any]], self._target)})

        scope = Scope(detail="run")
        async with scope:
            for typ, value in self._injections:
                scope.push(Value(typ, value))

            run_method = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(agent, "run"),
            )
            await run_method(scope, {})

            found = scope.get(self._target)
            if found is None:
                raise KeyError(f"{self._target.__name__} was not produced")
            return cast(T, found.value)


def run[T](target: type[T]) -> Run[T]:
    return Run(_target=target)


async def compose[T](target: type[T], *inputs: object) -> T:
    """One-shot: run `target` with `inputs` injected by runtime type."""
    runner = run(target)
    for value in inputs:
        runner = runner.inject(value)
    return await runner


__all__ = ("Run", "run", "compose")
