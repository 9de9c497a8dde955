"""
Pydantic schemas for the account service.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════════════════════
# Accounts
# ═══════════════════════════════════════════════════════════════════════════════


class PublicAccount(BaseModel):
    """Account as exposed to clients: no password hash, no refresh token."""

    model_config = ConfigDict(from_attributes=True)

    account_id: uuid.UUID
    handle: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthenticatedAccount(BaseModel):
    """Identity resolved from a verified access token.

    Produced by the session-verification dependency and passed explicitly
    to route handlers.
    """

    model_config = ConfigDict(frozen=True)

    account_id: uuid.UUID
    account: PublicAccount


# ═══════════════════════════════════════════════════════════════════════════════
# Tokens
# ═══════════════════════════════════════════════════════════════════════════════


class TokenPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str


class LoginResult(BaseModel):
    tokens: TokenPair
    account: PublicAccount


# ═══════════════════════════════════════════════════════════════════════════════
# Requests / responses
# ═══════════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    """Either ``identifier`` or one of ``username`` / ``email`` is required."""

    identifier: Optional[str] = Field(default=None, max_length=255)
    username: Optional[str] = Field(default=None, max_length=64)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = ""

    def resolved_identifier(self) -> str:
        for candidate in (self.identifier, self.username, self.email):
            if candidate and candidate.strip():
                return candidate.strip()
        return ""


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class LoginResponse(BaseModel):
    account: PublicAccount
    access_token: str
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
