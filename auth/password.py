"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic
salting and configurable work factor.
"""

from __future__ import annotations

import functools
import secrets

import bcrypt

# bcrypt only looks at the first 72 bytes; newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72


class CredentialHashError(Exception):
    """The stored hash is empty or not a valid bcrypt hash."""


def _encode(password: str) -> bytes:
    return password.encode()[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Hash a password with bcrypt (auto-salted)."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """
    Constant-time comparison against a bcrypt hash.

    A wrong password is a plain ``False``; an unusable stored hash raises
    ``CredentialHashError``.
    """
    if not password_hash:
        raise CredentialHashError("stored password hash is empty")
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode())
    except (ValueError, TypeError) as exc:
        raise CredentialHashError(f"stored password hash is unusable: {exc}")


@functools.lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    return hash_password(secrets.token_urlsafe(16), rounds=rounds)


def verify_without_account(password: str, *, rounds: int = 12) -> bool:
    """
    Run a full bcrypt check against a throwaway hash of cost *rounds*, for
    logins whose identifier matched no account.  Always ``False``.
    """
    verify_password(password, _dummy_hash(rounds))
    return False
