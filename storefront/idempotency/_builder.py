"""
Idempotency builder — fluent API + executor.

    executor = (
        I.idempotent(capture_payment)
        .key(lambda cb: f"payment-capture:{cb.intent_id}")
        .store(store)
        .policy(I.Policy().with_ttl(hours=24))
        .build()
    )
    result = await executor.run(callback)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from collections.abc import Callable
from typing import Any

from kungfu import LazyCoroResult, Result, Ok, Error

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import StoreAny, StoreError, MemoryStore
from storefront.idempotency._policy import Policy, OnPending

logger = logging.getLogger(__name__)

type KeyFn[K] = Callable[[K], str]


def _store_failure[E](err: StoreError) -> IdempotencyError[E]:
    return IdempotencyError(IdempotencyErrorKind.STORE_ERROR, err.message)


# ═══════════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Idempotent[K, T, E]:
    _operation: Callable[[K], LazyCoroResult[T, E]]
    _key_fn: KeyFn[K] | None = None
    _store: StoreAny | None = None
    _policy: Policy = Policy()

    def key(self, fn: KeyFn[K]) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, fn, self._store, self._policy)

    def store(self, s: StoreAny) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, self._key_fn, s, self._policy)

    def policy(self, p: Policy) -> Idempotent[K, T, E]:
        return Idempotent(self._operation, self._key_fn, self._store, p)

    def build(self) -> IdempotentExecutor[K, T, E]:
        if self._key_fn is None:
            raise ValueError("key() is required")
        return IdempotentExecutor(
            operation=self._operation,
            key_fn=self._key_fn,
            store=self._store if self._store is not None else MemoryStore(),
            policy=self._policy,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Executor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class IdempotentExecutor[K, T, E]:
    """
    Runs the operation at most once per key.

    Flow:
        COMPLETED record  → replay cached value
        FAILED record     → replay cached error
        PENDING record    → WAIT (poll) or FAIL (conflict)
        no record         → claim PENDING, run, store outcome

    A PENDING claim lives for policy.lock_timeout only. Once that lapses the
    stores report no record, so the next caller takes the key over instead
    of waiting behind a caller that died mid-run.
    """

    operation: Callable[[K], LazyCoroResult[T, E]]
    key_fn: KeyFn[K]
    store: StoreAny
    policy: Policy

    def run(
        self, input_val: K
    ) -> LazyCoroResult[IdempotencyResult[T], IdempotencyError[E]]:
        key = self.key_fn(input_val)

        async def execute() -> Result[IdempotencyResult[T], IdempotencyError[E]]:
            deadline = time.monotonic() + self.policy.pending_wait_timeout.total_seconds()

            while True:
                match await self.store.get(key):
                    case Error(err):
                        return Error(_store_failure(err))
                    case Ok(record):
                        pass

                if record is None:
                    match await self.store.set_pending(key, self.policy.lock_timeout):
                        case Error(err):
                            return Error(_store_failure(err))
                        case Ok(True):
                            return await self._execute(key, input_val)
                        case Ok(_):
                            # Lost the race; re-read the winner's record.
                            continue

                if record.state is not RecordState.PENDING:
                    return self._replay(record)

                if self.policy.conflict_strategy is OnPending.FAIL:
                    return Error(IdempotencyError(
                        IdempotencyErrorKind.CONFLICT,
                        f"Pending conflict: {key}",
                    ))
                if time.monotonic() >= deadline:
                    return Error(IdempotencyError(
                        IdempotencyErrorKind.TIMEOUT,
                        f"Timed out waiting for pending: {key}",
                    ))
                await asyncio.sleep(self.policy.poll_interval.total_seconds())

        return LazyCoroResult(execute)

    def _replay(
        self, record: IdempotencyRecord[Any, Any]
    ) -> Result[IdempotencyResult[T], IdempotencyError[E]]:
        if record.state is RecordState.COMPLETED:
            return Ok(IdempotencyResult(value=record.value, from_cache=True, key=record.key))
        return Error(IdempotencyError(
            IdempotencyErrorKind.EXECUTION,
            "Cached failure",
            original_error=record.error,
        ))

    async def _execute(
        self, key: str, input_val: K
    ) -> Result[IdempotencyResult[T], IdempotencyError[E]]:
        try:
            outcome = await self.operation(input_val)
        except Exception:
            # Release the key so a retry is not stuck behind a dead PENDING record.
            await self.store.delete(key)
            raise

        match outcome:
            case Ok(value):
                match await self.store.set_completed(key, value, self.policy.result_ttl):
                    case Error(err):
                        logger.error("Operation %s succeeded but was not recorded: %s", key, err.message)
                        return Error(_store_failure(err))
                    case Ok(_):
                        return Ok(IdempotencyResult(value=value, from_cache=False, key=key))
            case Error(e):
                if self.policy.persist_failed:
                    await self.store.set_failed(key, e, self.policy.result_ttl)
                else:
                    await self.store.delete(key)
                return Error(IdempotencyError(
                    IdempotencyErrorKind.EXECUTION,
                    f"Operation failed: {key}",
                    original_error=e,
                ))

    async def invalidate(self, input_val: K) -> bool:
        match await self.store.delete(self.key_fn(input_val)):
            case Ok(deleted):
                return deleted
            case _:
                return False


def idempotent[K, T, E](
    operation: Callable[[K], LazyCoroResult[T, E]],
) -> Idempotent[K, T, E]:
    """Start building an idempotent wrapper around `operation`."""
    return Idempotent(_operation=operation)


__all__ = ("Idempotent", "IdempotentExecutor", "idempotent")
