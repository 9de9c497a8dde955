"""
Account queries against the document store.

All calls are bounded by the configured DB timeout and translate
SQLAlchemy failures into ``PersistenceError`` (or ``Conflict`` for
unique-constraint violations) so raw driver errors never leave this layer.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Account
from utils.errors import Conflict, PersistenceError, ServiceTimeout
from utils.schemas import PublicAccount
from utils.timeouts import bounded

logger = logging.getLogger(__name__)

# Columns safe to return to clients.
_PUBLIC_COLUMNS = (
    Account.account_id,
    Account.handle,
    Account.email,
    Account.display_name,
    Account.avatar_url,
    Account.cover_url,
    Account.created_at,
    Account.updated_at,
)


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


class AccountRepository:
    def __init__(self, session: AsyncSession, *, timeout: float = 5.0):
        self._session = session
        self._timeout = timeout

    async def find_by_handle_or_email(self, handle: str, email: str) -> Optional[Account]:
        """Return any account colliding with *handle* or *email*."""
        stmt = select(Account).where(
            or_(Account.handle == handle.lower(), Account.email == email)
        ).limit(1)
        return await self._scalar(stmt, "account uniqueness lookup")

    async def find_by_identifier(self, identifier: str) -> Optional[Account]:
        """Look up by handle (case-insensitive) or email."""
        stmt = select(Account).where(
            or_(Account.handle == identifier.lower(), Account.email == identifier)
        ).limit(1)
        return await self._scalar(stmt, "account lookup")

    async def create(self, **fields: Any) -> Account:
        """Insert and commit a new account."""
        account = Account(**fields)
        self._session.add(account)
        try:
            await bounded(self._session.commit(), self._timeout, "account insert")
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning("Account insert hit a unique constraint: %s", exc.orig)
            raise Conflict("User with email or handle already exists")
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("Account insert failed: %s", exc)
            raise PersistenceError("Failed to create account")
        except ServiceTimeout:
            await self._session.rollback()
            raise
        return account

    async def get_public(self, account_id: str | uuid.UUID) -> Optional[PublicAccount]:
        """Re-read an account with sensitive fields excluded."""
        stmt = select(*_PUBLIC_COLUMNS).where(Account.account_id == to_uuid(account_id))
        try:
            result = await bounded(self._session.execute(stmt), self._timeout, "account read")
        except SQLAlchemyError as exc:
            logger.error("Account read failed: %s", exc)
            raise PersistenceError("Failed to read account")
        row = result.one_or_none()
        if row is None:
            return None
        return PublicAccount.model_validate(dict(row._mapping))

    async def _scalar(self, stmt, what: str) -> Optional[Account]:
        try:
            result = await bounded(self._session.execute(stmt), self._timeout, what)
        except SQLAlchemyError as exc:
            logger.error("%s failed: %s", what, exc)
            raise PersistenceError(f"{what} failed")
        return result.scalar_one_or_none()
