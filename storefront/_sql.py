"""
Dialect-aware statement helpers.

`INSERT ... ON CONFLICT` lives in dialect modules; pick the one matching
the session's engine so upserts work on SQLite and PostgreSQL alike.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, model: type[Any]) -> Any:
    """Return a dialect `insert()` supporting on_conflict_do_* for `model`."""
    match session.get_bind().dialect.name:
        case "sqlite":
            return sqlite.insert(model)
        case "postgresql":
            return postgresql.insert(model)
        case other:
            raise NotImplementedError(f"Upserts are not supported on {other}")


__all__ = ("insert_for",)
