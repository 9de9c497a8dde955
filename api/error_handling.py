"""
Translate service errors into HTTP responses.

Body shape follows FastAPI's ``HTTPException`` (``{"detail": ...}``) with a
stable ``code`` alongside.  Retryable errors answer 503 with
``Retry-After`` regardless of their nominal status.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.errors import ServiceError, ValidationError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5


def error_response(exc: ServiceError) -> JSONResponse:
    status_code = 503 if exc.retryable else exc.status_code
    content = {"detail": exc.message, "code": exc.error_code}
    if exc.detail:
        content["context"] = exc.detail
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    if status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 or exc.retryable else logger.warning
        log_fn(
            "%s %s -> %s (%s): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.error_code,
            exc.message,
        )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        # Only field locations go back to the client; submitted values may be secrets.
        fields = sorted(
            {
                ".".join(str(part) for part in err.get("loc", ()) if part != "body")
                for err in exc.errors()
            }
        )
        logger.warning(
            "%s %s -> 400 (validation_error): %s", request.method, request.url.path, fields
        )
        return error_response(ValidationError("Invalid request", detail={"fields": fields}))
