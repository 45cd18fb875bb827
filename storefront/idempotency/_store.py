"""
Idempotency store — Result-based storage protocol + in-memory backend.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront.idempotency._types import RecordState, IdempotencyRecord


@dataclass(frozen=True, slots=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Store[T](Protocol):
    """
    Storage for idempotency records.

    `set_pending` is the only write that must be a compare-and-swap: it
    returns Ok(False) when the key is already held.
    """

    async def get(
        self, key: str
    ) -> Result[IdempotencyRecord[T, Any] | None, StoreError]: ...

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]: ...

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]: ...

    async def set_failed(
        self, key: str, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]: ...

    async def delete(self, key: str) -> Result[bool, StoreError]: ...


type StoreAny = Store[Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store
# ═══════════════════════════════════════════════════════════════════════════════


def _expiry(ttl: timedelta | None) -> datetime | None:
    return utcnow() + ttl if ttl else None


class MemoryStore[T]:
    """
    In-memory store.

    Note: single process only; records do not survive a restart.
    """

    def __init__(self) -> None:
        self._records: dict[str, IdempotencyRecord[T, Any]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> IdempotencyRecord[T, Any] | None:
        record = self._records.get(key)
        if record is not None and record.is_expired:
            del self._records[key]
            return None
        return record

    async def get(
        self, key: str
    ) -> Result[IdempotencyRecord[T, Any] | None, StoreError]:
        async with self._lock:
            return Ok(self._live(key))

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if self._live(key) is not None:
                return Ok(False)
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                error=None,
                expires_at=_expiry(ttl),
            )
            return Ok(True)

    async def set_completed(
        self, key: str, value: T, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        async with self._lock:
            if key not in self._records:
                return Error(StoreError(f"No pending record for key: {key}"))
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.COMPLETED,
                value=value,
                error=None,
                expires_at=_expiry(ttl),
            )
            return Ok(None)

    async def set_failed(
        self, key: str, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        async with self._lock:
            if key not in self._records:
                return Error(StoreError(f"No pending record for key: {key}"))
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.FAILED,
                value=None,
                error=error,
                expires_at=_expiry(ttl),
            )
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)


__all__ = ("StoreError", "Store", "StoreAny", "MemoryStore")
