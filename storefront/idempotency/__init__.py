"""
Idempotency — run an operation at most once per key.

    from storefront import idempotency as I

    executor = (
        I.idempotent(capture)
        .key(lambda cb: f"payment-capture:{cb.intent_id}")
        .store(I.SQLAlchemyStore(session_factory, IdempotencyRecordTable))
        .policy(I.Policy().with_ttl(hours=24))
        .build()
    )
    result = await executor.run(callback)

Used for payment callbacks: gateways retry, the order must exist once.
"""

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import (
    Store,
    StoreAny,
    StoreError,
    MemoryStore,
)
from storefront.idempotency._policy import (
    Policy,
    OnPending,
    WAIT,
    FAIL,
)
from storefront.idempotency._builder import (
    idempotent,
    Idempotent,
    IdempotentExecutor,
)
from storefront.idempotency._sqlalchemy import (
    IdempotencyMixin,
    IdempotencyStatus,
    SQLAlchemyStore,
)

__all__ = (
    # Types
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
    # Store
    "Store",
    "StoreAny",
    "StoreError",
    "MemoryStore",
    # Policy
    "Policy",
    "OnPending",
    "WAIT",
    "FAIL",
    # Builder
    "idempotent",
    "Idempotent",
    "IdempotentExecutor",
    # SQLAlchemy
    "IdempotencyMixin",
    "IdempotencyStatus",
    "SQLAlchemyStore",
)
