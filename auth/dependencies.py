"""
FastAPI dependencies for authentication.

``get_authenticated_account`` is the session-verification step every
protected route depends on: it reads the access token from the
``access_token`` cookie or an ``Authorization: Bearer`` header and
rejects the request with 401 before the route body runs.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.handler import AuthSessionHandler
from auth.jwt import TokenIssuer
from auth.sessions import SessionStore
from config.settings import Settings
from database.accounts import AccountRepository
from database.session import get_db_session
from utils.schemas import AuthenticatedAccount

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


async def get_auth_handler(
    session: AsyncSession = Depends(get_db_session),
    issuer: TokenIssuer = Depends(get_token_issuer),
    settings: Settings = Depends(get_settings),
) -> AuthSessionHandler:
    timeout = settings.db_timeout_seconds
    return AuthSessionHandler(
        issuer,
        SessionStore(session, timeout=timeout),
        AccountRepository(session, timeout=timeout),
        password_rounds=settings.password_hash_rounds,
    )


async def get_authenticated_account(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    handler: AuthSessionHandler = Depends(get_auth_handler),
) -> AuthenticatedAccount:
    """
    Resolve the caller's account from their access token.

    Raises ``Unauthorized`` (401) when the token is missing, invalid,
    expired, or names an account that no longer exists.
    """
    token = request.cookies.get(ACCESS_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials
    return await handler.authenticate(token)
