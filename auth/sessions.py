"""
Session store — the current refresh token per account.

A session exists while ``accounts.refresh_token`` holds a value; there is
at most one per account.  Every write commits immediately so the next
request (possibly on another replica) reads the latest token.
"""

from __future__ import annotations

import hmac
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.accounts import to_uuid
from database.models import Account
from utils.errors import PersistenceError
from utils.timeouts import bounded

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, session: AsyncSession, *, timeout: float = 5.0):
        self._session = session
        self._timeout = timeout

    async def record_session(self, account_id: str | uuid.UUID, refresh_token: str) -> None:
        """Overwrite the stored token, replacing any prior session."""
        stmt = (
            update(Account)
            .where(Account.account_id == to_uuid(account_id))
            .values(refresh_token=refresh_token)
            .execution_options(synchronize_session=False)
        )
        await self._write(stmt, "session record")

    async def validate_session(self, account_id: str | uuid.UUID, presented: str) -> bool:
        stmt = select(Account.refresh_token).where(Account.account_id == to_uuid(account_id))
        try:
            result = await bounded(self._session.execute(stmt), self._timeout, "session lookup")
        except SQLAlchemyError as exc:
            logger.error("session lookup failed: %s", exc)
            raise PersistenceError("session lookup failed")
        stored = result.scalar_one_or_none()
        if not stored or not presented:
            return False
        return hmac.compare_digest(stored.encode(), presented.encode())

    async def rotate_session(
        self,
        account_id: str | uuid.UUID,
        presented: str,
        new_refresh_token: str,
    ) -> bool:
        """
        Replace *presented* with *new_refresh_token* only if *presented* is
        still the stored value.

        Returns ``True`` when this call's rotation became canonical.  A
        concurrent refresh that already rotated the same token makes the
        conditional update match zero rows.
        """
        stmt = (
            update(Account)
            .where(
                Account.account_id == to_uuid(account_id),
                Account.refresh_token == presented,
            )
            .values(refresh_token=new_refresh_token)
            .execution_options(synchronize_session=False)
        )
        rowcount = await self._write(stmt, "session rotation")
        return rowcount == 1

    async def clear_session(self, account_id: str | uuid.UUID) -> None:
        """Drop the stored token. Clearing an absent session is a no-op."""
        stmt = (
            update(Account)
            .where(Account.account_id == to_uuid(account_id))
            .values(refresh_token=None)
            .execution_options(synchronize_session=False)
        )
        await self._write(stmt, "session clear")

    async def _write(self, stmt, what: str) -> int:
        try:
            result = await bounded(self._session.execute(stmt), self._timeout, what)
            await bounded(self._session.commit(), self._timeout, f"{what} commit")
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("%s failed: %s", what, exc)
            raise PersistenceError(f"{what} failed")
        return result.rowcount
