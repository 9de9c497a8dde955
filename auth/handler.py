"""
Auth session handler — login, refresh, logout and access-token checks.

Holds no state of its own: the current refresh token lives in the
``SessionStore``, so any replica can serve any request.

Session lifecycle per account::

    No Session ──login──▶ Active Session ──refresh──▶ Active Session
         ▲                      │
         └────────logout────────┘
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from auth.jwt import ExpiredToken, InvalidToken, TokenIssuer
from auth.password import CredentialHashError, verify_password, verify_without_account
from auth.sessions import SessionStore
from database.accounts import AccountRepository, to_uuid
from utils.errors import (
    InvalidCredential,
    NotFound,
    PersistenceError,
    Unauthorized,
    ValidationError,
)
from utils.schemas import AuthenticatedAccount, LoginResult, TokenPair

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "Invalid credentials"


class AuthSessionHandler:
    def __init__(
        self,
        issuer: TokenIssuer,
        sessions: SessionStore,
        accounts: AccountRepository,
        *,
        password_rounds: int = 12,
    ):
        self._issuer = issuer
        self._sessions = sessions
        self._accounts = accounts
        self._password_rounds = password_rounds

    # ── login ───────────────────────────────────────────────────────────

    async def login(self, identifier: str, password: str) -> LoginResult:
        """
        Verify credentials and open a new session.

        Unknown account and wrong password are both reported as
        ``InvalidCredential`` so callers cannot probe which handles exist.
        """
        identifier = (identifier or "").strip()
        if not identifier or not password:
            raise ValidationError("Handle or email and password are required")

        try:
            account = await self._accounts.find_by_identifier(identifier)
            if account is None:
                await asyncio.to_thread(
                    verify_without_account, password, rounds=self._password_rounds
                )
                raise NotFound("Account not found")
            if not await asyncio.to_thread(verify_password, password, account.password_hash):
                raise InvalidCredential(_INVALID_CREDENTIALS)
        except NotFound:
            logger.info("Login rejected: no account for identifier")
            raise InvalidCredential(_INVALID_CREDENTIALS)
        except InvalidCredential:
            logger.info("Login rejected: wrong password for %s", account.account_id)
            raise
        except CredentialHashError as exc:
            logger.error("Stored password hash unusable for %s: %s", account.account_id, exc)
            raise PersistenceError("Credential verification failed")

        tokens = self._issuer.issue_pair(account.account_id)
        await self._sessions.record_session(account.account_id, tokens.refresh_token)

        public = await self._accounts.get_public(account.account_id)
        if public is None:
            raise PersistenceError("Account vanished during login")
        logger.info("Login: %s (%s)", public.handle, public.account_id)
        return LoginResult(tokens=tokens, account=public)

    # ── refresh ─────────────────────────────────────────────────────────

    async def refresh(self, presented: Optional[str]) -> TokenPair:
        """
        Rotate the session: exchange *presented* for a new token pair.

        The presented token becomes permanently invalid, even if it has
        not expired.  Presenting a rotated-out token always fails.
        """
        if not presented:
            raise Unauthorized("Refresh token is required")

        account_id = self._verify(presented, refresh=True)

        if not await self._sessions.validate_session(account_id, presented):
            logger.info("Refresh rejected for %s: token is not the current session", account_id)
            raise Unauthorized("Invalid refresh token")

        tokens = self._issuer.issue_pair(account_id)
        if not await self._sessions.rotate_session(account_id, presented, tokens.refresh_token):
            logger.info("Refresh rejected for %s: lost rotation race", account_id)
            raise Unauthorized("Invalid refresh token")

        logger.info("Rotated session for %s", account_id)
        return tokens

    # ── logout ──────────────────────────────────────────────────────────

    async def logout(self, account_id: str | uuid.UUID) -> None:
        await self._sessions.clear_session(account_id)
        logger.info("Logout: %s", account_id)

    # ── access-token verification ───────────────────────────────────────

    async def authenticate(self, access_token: Optional[str]) -> AuthenticatedAccount:
        if not access_token:
            raise Unauthorized("Unauthorized request")

        account_id = self._verify(access_token, refresh=False)
        account = await self._accounts.get_public(account_id)
        if account is None:
            logger.info("Access token for unknown account %s", account_id)
            raise Unauthorized("Invalid access token")
        return AuthenticatedAccount(account_id=account.account_id, account=account)

    def _verify(self, token: str, *, refresh: bool) -> uuid.UUID:
        """Verify a token and collapse every failure into ``Unauthorized``."""
        kind = "refresh" if refresh else "access"
        try:
            if refresh:
                subject = self._issuer.verify_refresh_token(token)
            else:
                subject = self._issuer.verify_access_token(token)
            return to_uuid(subject)
        except ExpiredToken:
            logger.debug("Rejected expired %s token", kind)
        except InvalidToken as exc:
            logger.debug("Rejected invalid %s token: %s", kind, exc)
        except ValueError:
            logger.debug("Rejected %s token with malformed subject", kind)
        raise Unauthorized(f"Invalid {kind} token")
