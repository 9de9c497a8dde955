"""
Tests for MediaStagingCoordinator against a mocked Cloudinary API.
"""

from urllib.parse import parse_qs

import httpx
import pytest

from media.staging import (
    CloudinaryCredentials,
    MediaHandle,
    MediaStagingCoordinator,
    sign_params,
)
from utils.errors import UploadFailed

CREDS = CloudinaryCredentials(
    cloud_name="demo",
    api_key="key-123",
    api_secret="shh",
    base_url="https://cloudinary.test",
)


def _coordinator(handler) -> MediaStagingCoordinator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MediaStagingCoordinator(CREDS, client=client)


class TestSignature:
    def test_signs_sorted_params_with_secret(self):
        import hashlib

        expected = hashlib.sha1(b"public_id=abc&timestamp=10shh").hexdigest()
        assert sign_params({"timestamp": 10, "public_id": "abc"}, "shh") == expected

    def test_empty_params_are_skipped(self):
        assert sign_params({"timestamp": 10, "folder": None}, "s") == sign_params(
            {"timestamp": 10}, "s"
        )


class TestStage:
    @pytest.mark.asyncio
    async def test_successful_upload_returns_handle_and_removes_local_file(self, make_file):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.content
            return httpx.Response(
                200,
                json={
                    "public_id": "avatars/abc",
                    "secure_url": "https://res.test/avatars/abc.png",
                    "resource_type": "image",
                },
            )

        path = make_file("avatar.png")
        handle = await _coordinator(handler).stage(path)

        assert handle == MediaHandle(
            url="https://res.test/avatars/abc.png",
            public_id="avatars/abc",
            resource_type="image",
        )
        assert seen["url"] == "https://cloudinary.test/v1_1/demo/auto/upload"
        assert b"key-123" in seen["body"]
        assert b"avatar.png" in seen["body"]
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_rejected_upload_raises_and_removes_local_file(self, make_file):
        path = make_file("avatar.png")
        coordinator = _coordinator(lambda request: httpx.Response(401, json={"error": "no"}))

        with pytest.raises(UploadFailed) as excinfo:
            await coordinator.stage(path)

        assert excinfo.value.retryable is False
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, make_file):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(UploadFailed) as excinfo:
            await _coordinator(handler).stage(make_file("avatar.png"))
        assert excinfo.value.retryable is True

    @pytest.mark.asyncio
    async def test_missing_locator_is_a_failure(self, make_file):
        coordinator = _coordinator(lambda request: httpx.Response(200, json={"status": "?"}))
        with pytest.raises(UploadFailed):
            await coordinator.stage(make_file("avatar.png"))

    @pytest.mark.asyncio
    async def test_missing_local_file(self, tmp_path):
        coordinator = _coordinator(lambda request: httpx.Response(500))
        with pytest.raises(UploadFailed):
            await coordinator.stage(tmp_path / "nope.png")


class TestUnstage:
    @pytest.mark.asyncio
    async def test_destroy_call(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"result": "ok"})

        ok = await _coordinator(handler).unstage(MediaHandle("u", "avatars/abc", "video"))

        assert ok is True
        assert seen["url"] == "https://cloudinary.test/v1_1/demo/video/destroy"
        assert seen["form"]["public_id"] == ["avatars/abc"]
        assert "signature" in seen["form"]

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        assert await _coordinator(handler).unstage(MediaHandle("u", "x")) is False

    @pytest.mark.asyncio
    async def test_not_found_result_reports_false(self):
        coordinator = _coordinator(lambda request: httpx.Response(200, json={"result": "not found"}))
        assert await coordinator.unstage(MediaHandle("u", "x")) is False
