"""
Accounts — register / login, with best-effort guest conversion.

Conversion never decides whether the account action succeeds: a failed
step is logged and retried on the next login.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront._types import utcnow
from storefront.config import Settings
from storefront.conversion import ConversionReport, ConversionService
from storefront.db import UserTable
from storefront.errors import AccountError
from storefront.session import SessionStore

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class Account:
    id: str
    email: str
    name: str


@dataclass(frozen=True, slots=True)
class AuthResult:
    """`conversion` is None when no guest was converted in this call."""

    user: Account
    token: str
    conversion: ConversionReport | None = None


def _account(row: UserTable) -> Account:
    return Account(id=row.id, email=row.email, name=row.name)


class AccountService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sessions: SessionStore,
        conversions: ConversionService,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._sessions = sessions
        self._conversions = conversions
        self._rounds = settings.password_hash_rounds

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(self._rounds)).decode("utf-8")

    @staticmethod
    def _check(password: str, hashed: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        guest_id: str | None = None,
    ) -> Result[AuthResult, AccountError]:
        """
        Create the user, then convert the guest (if any) and link guest
        orders placed under the same email.
        """
        email = normalize_email(email)
        if not _EMAIL.match(email):
            return Error(AccountError("Please provide a valid email"))
        if len(password) < MIN_PASSWORD_LENGTH:
            return Error(AccountError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            ))
        if not name.strip():
            return Error(AccountError("Name is required"))

        row = UserTable(
            id=secrets.token_hex(12),
            email=email,
            name=name.strip(),
            password_hash=self._hash(password),
            created_at=utcnow(),
        )
        try:
            async with self._session_factory.begin() as session:
                session.add(row)
        except IntegrityError:
            return Error(AccountError("User already exists"))
        logger.info("User %s registered", row.id)

        conversion = await self._convert(guest_id, row.id) if guest_id else None
        try:
            await self._conversions.link_orders_by_email(email, row.id)
        except Exception:
            logger.exception("Linking guest orders by email failed for %s", row.id)

        return Ok(AuthResult(
            user=_account(row),
            token=self._sessions.issue_user_token(row.id),
            conversion=conversion,
        ))

    async def login(
        self,
        email: str,
        password: str,
        guest_id: str | None = None,
    ) -> Result[AuthResult, AccountError]:
        """Unfinished conversions of this user are retried here."""
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(UserTable).where(func.lower(UserTable.email) == normalize_email(email))
                )
            ).scalar_one_or_none()

        if row is None or not self._check(password, row.password_hash):
            return Error(AccountError("Invalid email or password", status=401))

        for retried in await self._conversions.resume_pending(row.id):
            match retried:
                case Error(e):
                    logger.warning("Conversion retry for %s still failing at %s", row.id, e.step.value)
                case Ok(_):
                    pass

        conversion = await self._convert(guest_id, row.id) if guest_id else None
        return Ok(AuthResult(
            user=_account(row),
            token=self._sessions.issue_user_token(row.id),
            conversion=conversion,
        ))

    async def _convert(self, guest_id: str, user_id: str) -> ConversionReport | None:
        match await self._conversions.convert(guest_id, user_id):
            case Ok(report):
                return report
            case Error(e):
                logger.warning(
                    "Guest %s conversion for %s incomplete at %s: %s",
                    guest_id, user_id, e.step.value, e.message,
                )
                return None

    async def get(self, user_id: str) -> Account | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
        return _account(row) if row is not None else None


__all__ = ("Account", "AuthResult", "AccountService", "normalize_email", "MIN_PASSWORD_LENGTH")
