"""
SQLAlchemy integration — idempotency records in any model carrying the mixin.

    class IdempotencyRecordTable(Base, IdempotencyMixin):
        __tablename__ = "idempotency_records"
        id: Mapped[int] = mapped_column(primary_key=True)

    store = SQLAlchemyStore(session_factory, IdempotencyRecordTable)

Values are stored as text; callers serialize (e.g. json.dumps) before
completing a record.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import DateTime, String, Text, delete, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront._sql import insert_for
from storefront.idempotency._types import IdempotencyRecord, RecordState
from storefront.idempotency._store import StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Mixin
# ═══════════════════════════════════════════════════════════════════════════════


class IdempotencyMixin:
    """
    Adds idempotency columns to a model:

    - idempotency_key: unique deduplication key
    - idempotency_status: "pending" | "completed" | "failed"
    - idempotency_value: serialized result
    - idempotency_error: error text
    - idempotency_expires_at: optional TTL
    """

    idempotency_key: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    idempotency_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    idempotency_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )


class IdempotencyStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_STATES = {
    IdempotencyStatus.PENDING: RecordState.PENDING,
    IdempotencyStatus.COMPLETED: RecordState.COMPLETED,
    IdempotencyStatus.FAILED: RecordState.FAILED,
}


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    """
    Store[str] over a table with IdempotencyMixin.

    Note: set_pending is INSERT ... ON CONFLICT DO NOTHING; rowcount tells
    whether this caller won the key.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[Any],
        **defaults: Any,
    ) -> None:
        """
        Args:
            session_factory: async session factory
            model: mapped class with IdempotencyMixin
            defaults: extra column values for inserted pending rows
        """
        self._session_factory = session_factory
        self._model = model
        self._defaults = defaults

    async def get(self, key: str) -> Result[IdempotencyRecord[str, str] | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(self._model).where(self._model.idempotency_key == key)
                    )
                ).scalar_one_or_none()
        except Exception as e:
            return Error(StoreError(f"Failed to get: {e}", e))

        if row is None:
            return Ok(None)
        record = IdempotencyRecord(
            key=row.idempotency_key,
            state=_STATES.get(row.idempotency_status, RecordState.PENDING),
            value=row.idempotency_value,
            error=row.idempotency_error,
            expires_at=row.idempotency_expires_at,
        )
        return Ok(None if record.is_expired else record)

    async def set_pending(
        self, key: str, ttl: timedelta | None
    ) -> Result[bool, StoreError]:
        model = self._model
        try:
            async with self._session_factory.begin() as session:
                # An expired row would otherwise hold the key forever.
                await session.execute(
                    delete(model).where(
                        model.idempotency_key == key,
                        model.idempotency_expires_at.is_not(None),
                        model.idempotency_expires_at < utcnow(),
                    )
                )
                stmt = (
                    insert_for(session, model)
                    .values(
                        idempotency_key=key,
                        idempotency_status=IdempotencyStatus.PENDING,
                        idempotency_expires_at=utcnow() + ttl if ttl else None,
                        **self._defaults,
                    )
                    .on_conflict_do_nothing(index_elements=["idempotency_key"])
                )
                cursor: CursorResult[Any] = await session.execute(stmt)  # type: ignore[assignment]
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StoreError(f"Failed to set pending: {e}", e))

    async def _finish(
        self, key: str, ttl: timedelta | None, **values: Any
    ) -> Result[None, StoreError]:
        model = self._model
        try:
            async with self._session_factory.begin() as session:
                cursor: CursorResult[Any] = await session.execute(  # type: ignore[assignment]
                    update(model)
                    .where(model.idempotency_key == key)
                    .values(
                        idempotency_expires_at=utcnow() + ttl if ttl else None,
                        **values,
                    )
                )
                if cursor.rowcount == 0:
                    return Error(StoreError(f"Record not found: {key}"))
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to update: {e}", e))

    async def set_completed(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        return await self._finish(
            key,
            ttl,
            idempotency_status=IdempotencyStatus.COMPLETED,
            idempotency_value=value,
        )

    async def set_failed(
        self, key: str, error: Any, ttl: timedelta | None
    ) -> Result[None, StoreError]:
        return await self._finish(
            key,
            ttl,
            idempotency_status=IdempotencyStatus.FAILED,
            idempotency_error=str(error),
        )

    async def delete(self, key: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory.begin() as session:
                cursor: CursorResult[Any] = await session.execute(  # type: ignore[assignment]
                    delete(self._model).where(self._model.idempotency_key == key)
                )
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StoreError(f"Failed to delete: {e}", e))


__all__ = ("IdempotencyMixin", "IdempotencyStatus", "SQLAlchemyStore")
