"""
Idempotency policy — how a guarded call behaves around existing records.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto


class OnPending(Enum):
    """
    What to do when the key is held by a call still in flight.

    WAIT: poll until it finishes and return its result (retrying clients,
          duplicate gateway callbacks).
    FAIL: return CONFLICT immediately.
    """

    WAIT = auto()
    FAIL = auto()


WAIT = OnPending.WAIT
FAIL = OnPending.FAIL


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Immutable, fluent configuration.

        policy = Policy().with_ttl(hours=24).with_on_pending(FAIL).with_lock_timeout(seconds=30)

    result_ttl applies to finished records, lock_timeout to PENDING ones.
    """

    result_ttl: timedelta | None = None
    conflict_strategy: OnPending = OnPending.WAIT
    pending_wait_timeout: timedelta = timedelta(seconds=30)
    # How long a PENDING claim holds the key. A caller that dies mid-run
    # releases it when the lease runs out.
    lock_timeout: timedelta = timedelta(seconds=60)
    poll_interval: timedelta = timedelta(milliseconds=50)
    # Failures are forgotten by default so the caller may retry.
    persist_failed: bool = False

    def with_ttl(
        self,
        *,
        seconds: float = 0,
        minutes: float = 0,
        hours: float = 0,
    ) -> Policy:
        total = seconds + minutes * 60 + hours * 3600
        return replace(self, result_ttl=timedelta(seconds=total) if total > 0 else None)

    def with_on_pending(self, strategy: OnPending) -> Policy:
        return replace(self, conflict_strategy=strategy)

    def with_wait_timeout(self, *, seconds: float) -> Policy:
        return replace(self, pending_wait_timeout=timedelta(seconds=seconds))

    def with_lock_timeout(self, *, seconds: float) -> Policy:
        return replace(self, lock_timeout=timedelta(seconds=seconds))

    def with_store_failed(self, store: bool = True) -> Policy:
        return replace(self, persist_failed=store)


__all__ = ("OnPending", "WAIT", "FAIL", "Policy")
