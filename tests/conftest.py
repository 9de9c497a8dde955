"""
Shared fixtures: token secrets, an in-memory SQLite document store, an
in-memory object store double, and a FastAPI test client.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Set

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from auth.jwt import TokenIssuer
from auth.password import hash_password
from config.settings import Settings, TokenSecrets
from database.accounts import AccountRepository
from database.session import build_engine, build_session_factory, create_schema
from media.staging import MediaHandle
from utils.errors import UploadFailed

SQLITE_URL = "sqlite+aiosqlite:///:memory:"
TEST_ROUNDS = 4  # bcrypt minimum, keeps the suite fast


class FakeMedia:
    """Object-store double recording every stage / unstage call.

    ``fail_on_calls`` holds 1-based ``stage`` call numbers that should
    raise ``UploadFailed``.
    """

    def __init__(self) -> None:
        self.stored: Dict[str, MediaHandle] = {}
        self.staged: List[str] = []
        self.unstaged: List[str] = []
        self.fail_on_calls: Set[int] = set()
        self.fail_unstage = False
        self._calls = 0

    async def stage(self, local_path) -> MediaHandle:
        self._calls += 1
        path = Path(local_path)
        path.unlink(missing_ok=True)
        if self._calls in self.fail_on_calls:
            raise UploadFailed(f"Upload of {path.name} failed")
        handle = MediaHandle(
            url=f"https://media.test/{self._calls}/{path.name}",
            public_id=f"media-{self._calls}",
            resource_type="image",
        )
        self.stored[handle.public_id] = handle
        self.staged.append(handle.public_id)
        return handle

    async def unstage(self, handle: MediaHandle) -> bool:
        self.unstaged.append(handle.public_id)
        if self.fail_unstage:
            raise RuntimeError("object store unavailable")
        self.stored.pop(handle.public_id, None)
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def token_secrets() -> TokenSecrets:
    return TokenSecrets(
        access_secret="access-secret-for-tests",
        refresh_secret="refresh-secret-for-tests",
        access_ttl_seconds=900,
        refresh_ttl_seconds=86400,
    )


@pytest.fixture
def issuer(token_secrets) -> TokenIssuer:
    return TokenIssuer(token_secrets)


@pytest.fixture
def media() -> FakeMedia:
    return FakeMedia()


@pytest.fixture
def make_file(tmp_path):
    def _make(name: str, content: bytes = b"\x89PNG fake image") -> Path:
        path = tmp_path / name
        path.write_bytes(content)
        return path

    return _make


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine(SQLITE_URL)
    await create_schema(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def alice(db_session):
    """A persisted account: handle ``alice``, password ``p1``."""
    return await AccountRepository(db_session).create(
        handle="alice",
        email="a@x.com",
        display_name="Alice",
        password_hash=hash_password("p1", rounds=TEST_ROUNDS),
        avatar_url="https://media.test/alice.png",
        avatar_public_id="media-alice",
        avatar_resource_type="image",
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=SQLITE_URL,
        access_token_secret="access-secret-for-tests",
        refresh_token_secret="refresh-secret-for-tests",
        password_hash_rounds=TEST_ROUNDS,
        media_staging_dir=str(tmp_path / "staging"),
        environment="development",
    )


@pytest.fixture
def client(settings, media):
    from main import create_app

    app = create_app(settings, media=media)
    with TestClient(app) as test_client:
        yield test_client
