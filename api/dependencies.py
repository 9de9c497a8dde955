"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import get_settings
from config.settings import Settings
from core.registration import RegistrationSaga
from database.accounts import AccountRepository
from database.session import get_db_session
from media.staging import MediaStagingCoordinator


def get_media(request: Request) -> MediaStagingCoordinator:
    return request.app.state.media


async def get_registration_saga(
    session: AsyncSession = Depends(get_db_session),
    media: MediaStagingCoordinator = Depends(get_media),
    settings: Settings = Depends(get_settings),
) -> RegistrationSaga:
    return RegistrationSaga(
        AccountRepository(session, timeout=settings.db_timeout_seconds),
        media,
        password_rounds=settings.password_hash_rounds,
    )
