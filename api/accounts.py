"""
Account API routes — registration.

Route prefix: /api/v1/users
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from api.dependencies import get_registration_saga
from auth.dependencies import get_settings
from config.settings import Settings
from core.registration import RegistrationForm, RegistrationSaga
from utils.schemas import PublicAccount

logger = logging.getLogger(__name__)

router = APIRouter(tags=["accounts"])


async def _spool(upload: Optional[UploadFile], staging_dir: Path) -> Optional[Path]:
    """Write a multipart upload to the local staging directory."""
    if upload is None or not upload.filename:
        return None
    staging_dir.mkdir(parents=True, exist_ok=True)
    target = staging_dir / f"{uuid.uuid4().hex}-{Path(upload.filename).name}"
    target.write_bytes(await upload.read())
    return target


@router.post("/register", response_model=PublicAccount, status_code=status.HTTP_201_CREATED)
async def register(
    handle: str = Form(default=""),
    email: str = Form(default=""),
    display_name: str = Form(default=""),
    password: str = Form(default=""),
    avatar: Optional[UploadFile] = File(default=None),
    cover: Optional[UploadFile] = File(default=None),
    saga: RegistrationSaga = Depends(get_registration_saga),
    settings: Settings = Depends(get_settings),
) -> PublicAccount:
    """Register a new account with an avatar and an optional cover image."""
    staging_dir = Path(settings.media_staging_dir)
    form = RegistrationForm(
        handle=handle,
        email=email,
        display_name=display_name,
        password=password,
        avatar_path=await _spool(avatar, staging_dir),
        cover_path=await _spool(cover, staging_dir),
    )
    account = await saga.run(form)
    logger.info("Registered account %s (%s)", account.handle, account.account_id)
    return account
