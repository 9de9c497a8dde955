"""
Error kinds raised by the registration saga and the auth handler.

Every class carries the HTTP ``status_code`` and stable ``error_code`` it
maps to at the transport boundary (see ``api/error_handling.py``).  A
``retryable`` error is always answered with 503 + ``Retry-After``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors that cross the saga / handler boundary."""

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        self.retryable = retryable


class ConfigurationError(RuntimeError):
    """Fatal startup misconfiguration (e.g. missing signing secret)."""


class ValidationError(ServiceError):
    """Client-fixable input problem (400)."""

    status_code = 400
    error_code = "validation_error"


class Unauthorized(ServiceError):
    """Missing, invalid, expired or revoked credential (401)."""

    status_code = 401
    error_code = "unauthorized"


class InvalidCredential(Unauthorized):
    """Wrong password or unknown account at login (401)."""


class NotFound(ServiceError):
    """Requested record does not exist (404)."""

    status_code = 404
    error_code = "not_found"


class Conflict(ServiceError):
    """Duplicate identity (409)."""

    status_code = 409
    error_code = "conflict"


class UploadFailed(ServiceError):
    """Remote object store rejected or failed an upload."""

    status_code = 500
    error_code = "upload_failed"


class PersistenceError(ServiceError):
    """Document store failure or read-after-write inconsistency."""

    status_code = 500
    error_code = "persistence_error"


class ServiceTimeout(ServiceError):
    """A collaborator call exceeded its time budget."""

    status_code = 503
    error_code = "timeout"

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, detail=detail, retryable=True)
