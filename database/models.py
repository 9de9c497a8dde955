"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase

HANDLE_MAX_LENGTH = 64
EMAIL_MAX_LENGTH = 255
DISPLAY_NAME_MAX_LENGTH = 128


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"

    account_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    handle = Column(String(HANDLE_MAX_LENGTH), unique=True, nullable=False, index=True)
    email = Column(String(EMAIL_MAX_LENGTH), unique=True, nullable=False, index=True)
    display_name = Column(String(DISPLAY_NAME_MAX_LENGTH), nullable=False)
    password_hash = Column(String(255), nullable=False)

    avatar_url = Column(Text)
    avatar_public_id = Column(String(255))
    avatar_resource_type = Column(String(16))
    cover_url = Column(Text)
    cover_public_id = Column(String(255))
    cover_resource_type = Column(String(16))

    # Current refresh token; NULL means no active session.
    refresh_token = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
