"""
JWT-style token creation and verification.

Tokens are base64url-encoded JSON payloads signed with HMAC-SHA256::

    <base64url(json payload)>.<hex hmac>

Unpadded base64url keeps tokens cookie-safe (no quoting needed).

Access and refresh tokens use distinct secrets and lifetimes, both taken
from the ``TokenSecrets`` value passed in at construction.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
import uuid
from base64 import b64decode, urlsafe_b64encode
from typing import Callable

from config.settings import TokenSecrets
from utils.errors import ConfigurationError
from utils.schemas import TokenPair

ACCESS = "access"
REFRESH = "refresh"


def encode_segment(raw: bytes) -> str:
    return urlsafe_b64encode(raw).rstrip(b"=").decode()


def decode_segment(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return b64decode(padded, altchars=b"-_", validate=True)


class InvalidToken(Exception):
    """Malformed token, bad signature or wrong token type."""


class ExpiredToken(InvalidToken):
    """Signature is valid but ``exp`` has passed."""


class TokenIssuer:
    def __init__(self, secrets: TokenSecrets, *, clock: Callable[[], float] = time.time):
        if not secrets.access_secret or not secrets.refresh_secret:
            raise ConfigurationError("Token signing secrets are not configured")
        if secrets.access_ttl_seconds <= 0 or secrets.refresh_ttl_seconds <= 0:
            raise ConfigurationError("Token lifetimes must be positive")
        self._secrets = secrets
        self._clock = clock

    # ── issuance ────────────────────────────────────────────────────────

    def issue_access_token(self, account_id: str | uuid.UUID) -> str:
        return self._sign(
            str(account_id), ACCESS, self._secrets.access_ttl_seconds, self._secrets.access_secret
        )

    def issue_refresh_token(self, account_id: str | uuid.UUID) -> str:
        return self._sign(
            str(account_id), REFRESH, self._secrets.refresh_ttl_seconds, self._secrets.refresh_secret
        )

    def issue_pair(self, account_id: str | uuid.UUID) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(account_id),
            refresh_token=self.issue_refresh_token(account_id),
        )

    # ── verification ────────────────────────────────────────────────────

    def verify(self, token: str, expected_secret: str, *, token_type: str | None = None) -> str:
        """
        Verify *token* against *expected_secret* and return the account id.

        Raises ``InvalidToken`` on bad format / signature / type and
        ``ExpiredToken`` when the signature is good but ``exp`` has passed.
        """
        parts = token.split(".", 1)
        if len(parts) != 2:
            raise InvalidToken("bad format")
        try:
            raw = decode_segment(parts[0])
        except (binascii.Error, ValueError):
            raise InvalidToken("bad encoding")

        expected_sig = hmac.new(expected_secret.encode(), raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(parts[1].encode(), expected_sig.encode()):
            raise InvalidToken("bad signature")

        try:
            payload = json.loads(raw)
        except ValueError:
            raise InvalidToken("bad payload")
        if not isinstance(payload, dict) or not payload.get("sub"):
            raise InvalidToken("missing subject")
        if token_type is not None and payload.get("typ") != token_type:
            raise InvalidToken("wrong token type")
        if payload.get("exp", 0) < self._clock():
            raise ExpiredToken("token expired")
        return str(payload["sub"])

    def verify_access_token(self, token: str) -> str:
        return self.verify(token, self._secrets.access_secret, token_type=ACCESS)

    def verify_refresh_token(self, token: str) -> str:
        return self.verify(token, self._secrets.refresh_secret, token_type=REFRESH)

    # ── internals ───────────────────────────────────────────────────────

    def _sign(self, subject: str, token_type: str, ttl: int, secret: str) -> str:
        now = int(self._clock())
        payload = {
            "sub": subject,
            "typ": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        raw = json.dumps(payload).encode()
        sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
        return encode_segment(raw) + "." + sig
