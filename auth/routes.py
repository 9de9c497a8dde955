"""
Auth API routes — login, refresh, logout, current account.

Route prefix: /api/v1/users
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, Response

from auth.dependencies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_auth_handler,
    get_authenticated_account,
    get_settings,
)
from auth.handler import AuthSessionHandler
from config.settings import Settings
from utils.schemas import (
    AuthenticatedAccount,
    LoginRequest,
    LoginResponse,
    PublicAccount,
    RefreshRequest,
    TokenPair,
    TokenResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _cookie_options(settings: Settings) -> Dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "strict",
        "path": "/",
    }


def _set_token_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    options = _cookie_options(settings)
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.access_token,
        max_age=settings.access_token_expiry_seconds,
        **options,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=settings.refresh_token_expiry_seconds,
        **options,
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    response: Response,
    handler: AuthSessionHandler = Depends(get_auth_handler),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Login with handle or email + password."""
    result = await handler.login(req.resolved_identifier(), req.password)
    _set_token_cookies(response, result.tokens, settings)
    return {
        "account": result.account,
        "access_token": result.tokens.access_token,
        "refresh_token": result.tokens.refresh_token,
    }


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    req: Optional[RefreshRequest] = Body(default=None),
    handler: AuthSessionHandler = Depends(get_auth_handler),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Exchange a refresh token (cookie or body) for a new token pair."""
    presented = request.cookies.get(REFRESH_COOKIE) or (req.refresh_token if req else None)
    tokens = await handler.refresh(presented)
    _set_token_cookies(response, tokens, settings)
    return tokens.model_dump()


@router.post("/logout", response_model=PublicAccount)
async def logout(
    response: Response,
    current: AuthenticatedAccount = Depends(get_authenticated_account),
    handler: AuthSessionHandler = Depends(get_auth_handler),
    settings: Settings = Depends(get_settings),
) -> PublicAccount:
    """End the caller's session and clear both cookies."""
    await handler.logout(current.account_id)
    options = _cookie_options(settings)
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)
    logger.info("Account %s logged out", current.account_id)
    return current.account


@router.get("/me", response_model=PublicAccount)
async def current_account(
    current: AuthenticatedAccount = Depends(get_authenticated_account),
) -> PublicAccount:
    return current.account
