"""
Idempotency types — records, results, errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto

from storefront._types import utcnow


# ═══════════════════════════════════════════════════════════════════════════════
# Record State
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    """
    Lifecycle of a guarded operation:

        PENDING → COMPLETED
                → FAILED
                → (deleted, so the operation may run again)
    """

    PENDING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class IdempotencyRecord[T, E]:
    """
    Stored state for one idempotency key.

    Note: value is set only for COMPLETED, error only for FAILED.
    """

    key: str
    state: RecordState
    value: T | None
    error: E | None
    expires_at: datetime | None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and utcnow() > self.expires_at


# ═══════════════════════════════════════════════════════════════════════════════
# Result / Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyResult[T]:
    """Value of the guarded operation. `from_cache` marks a replayed result."""

    value: T
    from_cache: bool
    key: str


class IdempotencyErrorKind(Enum):
    CONFLICT = auto()  # Another call holds the key and policy is FAIL
    TIMEOUT = auto()  # Waited for a pending call too long
    STORE_ERROR = auto()  # Storage backend failed
    EXECUTION = auto()  # Guarded operation failed


@dataclass(frozen=True, slots=True)
class IdempotencyError[E]:
    """
    Note: original_error carries the operation's own error for EXECUTION.
    """

    kind: IdempotencyErrorKind
    message: str
    original_error: E | None = None


__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyErrorKind",
    "IdempotencyError",
)
