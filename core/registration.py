"""
Registration saga — create an account together with its media.

Steps run in order::

    validate → check_uniqueness → stage_avatar → stage_cover → persist_account

A step that leaves something behind in an external system registers an
undo action in the compensation table.  When a later step fails, the
table is unwound in reverse order before the error is re-raised.  Undo
failures are logged and never replace the original error.

``finalize`` (the sanitized re-read) runs after the table is closed: once
the account row exists the media belongs to it and is never unstaged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from auth.password import hash_password
from database.accounts import AccountRepository
from database.models import (
    DISPLAY_NAME_MAX_LENGTH,
    EMAIL_MAX_LENGTH,
    HANDLE_MAX_LENGTH,
    Account,
)
from media.staging import MediaHandle, MediaStagingCoordinator
from utils.errors import (
    Conflict,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from utils.schemas import PublicAccount

logger = logging.getLogger(__name__)

UndoAction = Callable[[], Awaitable[Any]]


@dataclass
class RegistrationForm:
    handle: str
    email: str
    display_name: str
    password: str
    avatar_path: Optional[Path] = None
    cover_path: Optional[Path] = None


@dataclass
class _SagaState:
    form: RegistrationForm
    current_step: str = ""
    avatar: Optional[MediaHandle] = None
    cover: Optional[MediaHandle] = None
    account: Optional[Account] = None
    compensations: List[Tuple[str, UndoAction]] = field(default_factory=list)


class RegistrationSaga:
    def __init__(
        self,
        accounts: AccountRepository,
        media: MediaStagingCoordinator,
        *,
        password_rounds: int = 12,
    ):
        self._accounts = accounts
        self._media = media
        self._password_rounds = password_rounds

    def _steps(self) -> List[Tuple[str, Callable[[_SagaState], Awaitable[None]]]]:
        return [
            ("validate", self._validate),
            ("check_uniqueness", self._check_uniqueness),
            ("stage_avatar", self._stage_avatar),
            ("stage_cover", self._stage_cover),
            ("persist_account", self._persist_account),
        ]

    # ── public entry point ──────────────────────────────────────────────

    async def run(self, form: RegistrationForm) -> PublicAccount:
        state = _SagaState(form=form)
        try:
            for name, action in self._steps():
                state.current_step = name
                logger.debug("[Registration] step %s", name)
                await action(state)
        except ServiceError as exc:
            logger.warning(
                "[Registration] failed at %s: %s", state.current_step, exc.message
            )
            await self._compensate(state)
            raise
        except Exception as exc:
            logger.exception("[Registration] unexpected error at %s", state.current_step)
            await self._compensate(state)
            raise PersistenceError("Something went wrong while registering a user") from exc
        except BaseException:
            # Cancellation or interpreter shutdown; no account row exists yet.
            logger.warning("[Registration] interrupted at %s", state.current_step)
            await self._compensate(state)
            raise
        finally:
            self._discard_local_files(form)

        return await self._finalize(state)

    # ── steps ───────────────────────────────────────────────────────────

    async def _validate(self, state: _SagaState) -> None:
        form = state.form
        form.handle = (form.handle or "").strip().lower()
        form.email = (form.email or "").strip()
        form.display_name = (form.display_name or "").strip()

        missing = [
            name
            for name, value in (
                ("handle", form.handle),
                ("email", form.email),
                ("display_name", form.display_name),
                ("password", (form.password or "").strip()),
            )
            if not value
        ]
        if missing:
            raise ValidationError("All fields are required", detail={"missing": missing})

        too_long = [
            name
            for name, value, limit in (
                ("handle", form.handle, HANDLE_MAX_LENGTH),
                ("email", form.email, EMAIL_MAX_LENGTH),
                ("display_name", form.display_name, DISPLAY_NAME_MAX_LENGTH),
            )
            if len(value) > limit
        ]
        if too_long:
            raise ValidationError(
                "Fields exceed their maximum length", detail={"too_long": too_long}
            )
        if form.avatar_path is None:
            raise ValidationError("Avatar file is required", detail={"missing": ["avatar"]})

    async def _check_uniqueness(self, state: _SagaState) -> None:
        form = state.form
        existing = await self._accounts.find_by_handle_or_email(form.handle, form.email)
        if existing is not None:
            raise Conflict("User with email or handle already exists")

    async def _stage_avatar(self, state: _SagaState) -> None:
        state.avatar = await self._media.stage(state.form.avatar_path)
        state.compensations.append(("stage_avatar", partial(self._media.unstage, state.avatar)))

    async def _stage_cover(self, state: _SagaState) -> None:
        if state.form.cover_path is None:
            return
        state.cover = await self._media.stage(state.form.cover_path)
        state.compensations.append(("stage_cover", partial(self._media.unstage, state.cover)))

    async def _persist_account(self, state: _SagaState) -> None:
        form = state.form
        avatar, cover = state.avatar, state.cover
        password_hash = await asyncio.to_thread(
            hash_password, form.password, rounds=self._password_rounds
        )
        try:
            state.account = await self._accounts.create(
                handle=form.handle,
                email=form.email,
                display_name=form.display_name,
                password_hash=password_hash,
                avatar_url=avatar.url,
                avatar_public_id=avatar.public_id,
                avatar_resource_type=avatar.resource_type,
                cover_url=cover.url if cover else None,
                cover_public_id=cover.public_id if cover else None,
                cover_resource_type=cover.resource_type if cover else None,
            )
        except (Conflict, PersistenceError):
            raise
        except ServiceError as exc:
            raise PersistenceError(
                "Something went wrong while registering a user",
                retryable=exc.retryable,
            ) from exc
        logger.info("[Registration] created account %s (%s)", form.handle, state.account.account_id)

    async def _finalize(self, state: _SagaState) -> PublicAccount:
        account_id = state.account.account_id
        public = await self._accounts.get_public(account_id)
        if public is None:
            logger.warning(
                "[Registration] account %s missing on read-after-write; media left in place",
                account_id,
            )
            raise PersistenceError("Something went wrong while registering a user")
        return public

    # ── compensation ────────────────────────────────────────────────────

    async def _compensate(self, state: _SagaState) -> None:
        for step_name, undo in reversed(state.compensations):
            logger.info("[Registration] compensating %s", step_name)
            try:
                await undo()
            except Exception:
                logger.exception("[Registration] compensation for %s failed", step_name)
        state.compensations.clear()

    def _discard_local_files(self, form: RegistrationForm) -> None:
        for path in (form.avatar_path, form.cover_path):
            if path is None:
                continue
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove staging file %s: %s", path, exc)
