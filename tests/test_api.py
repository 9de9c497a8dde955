"""
End-to-end tests through the HTTP layer.
"""

from unittest.mock import AsyncMock

import pytest

from utils.errors import UploadFailed

BASE = "/api/v1/users"
PNG = ("avatar.png", b"\x89PNG fake", "image/png")


def _register(client, handle="alice", email="a@x.com", password="p1", cover=False):
    files = {"avatar": PNG}
    if cover:
        files["cover"] = ("cover.png", b"\x89PNG cover", "image/png")
    return client.post(
        f"{BASE}/register",
        data={"handle": handle, "email": email, "display_name": "Alice", "password": password},
        files=files,
    )


def _login(client, identifier="alice", password="p1"):
    return client.post(f"{BASE}/login", json={"identifier": identifier, "password": password})


def _refresh_with_body(client, token):
    client.cookies.clear()
    return client.post(f"{BASE}/refresh-token", json={"refresh_token": token})


class TestRegistration:
    def test_register_then_duplicate_conflicts(self, client):
        created = _register(client, cover=True)
        assert created.status_code == 201
        body = created.json()
        assert body["handle"] == "alice"
        assert body["cover_url"]
        assert "password_hash" not in body
        assert "refresh_token" not in body

        again = _register(client, email="other@x.com")
        assert again.status_code == 409
        assert again.json()["code"] == "conflict"

    def test_missing_avatar_is_a_client_error(self, client):
        response = client.post(
            f"{BASE}/register",
            data={"handle": "alice", "email": "a@x.com", "display_name": "A", "password": "p1"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_blank_field_is_a_client_error(self, client, media):
        response = _register(client, handle="  ")
        assert response.status_code == 400
        assert media.staged == []

    def test_upload_failure_leaves_no_account(self, client, media):
        media.fail_on_calls = {1}
        response = _register(client)
        assert response.status_code == 500
        assert response.json()["code"] == "upload_failed"
        assert _login(client).status_code == 401

    def test_cover_failure_unstages_avatar(self, client, media):
        media.fail_on_calls = {2}
        assert _register(client, cover=True).status_code == 500
        assert media.stored == {}

    def test_retryable_upload_failure_is_503(self, client, media):
        media.stage = AsyncMock(side_effect=UploadFailed("timed out", retryable=True))
        response = _register(client)
        assert response.status_code == 503
        assert response.headers["Retry-After"]

    def test_staging_directory_is_emptied(self, client, settings):
        from pathlib import Path

        assert _register(client, cover=True).status_code == 201
        assert list(Path(settings.media_staging_dir).iterdir()) == []


class TestLogin:
    def test_wrong_then_right_password(self, client):
        _register(client)

        wrong = _login(client, password="wrong")
        assert wrong.status_code == 401
        assert wrong.json()["code"] == "unauthorized"

        right = _login(client)
        assert right.status_code == 200
        body = right.json()
        assert body["account"]["handle"] == "alice"
        assert body["access_token"] and body["refresh_token"]

        cookies = right.headers.get_list("set-cookie")
        for name in ("access_token", "refresh_token"):
            cookie = next(c for c in cookies if c.startswith(f"{name}="))
            assert "HttpOnly" in cookie
            assert "samesite=strict" in cookie.lower()
            assert "Secure" not in cookie

    def test_unknown_account_is_401_not_404(self, client):
        _register(client)
        unknown = _login(client, identifier="ghost")
        wrong = _login(client, password="wrong")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_long_password_registers_and_logs_in(self, client):
        secret = "s" * 200
        assert _register(client, password=secret).status_code == 201

        response = _login(client, password=secret)
        assert response.status_code == 200
        assert response.json()["account"]["handle"] == "alice"

    def test_malformed_body_is_400_without_echoing_input(self, client):
        response = client.post(
            f"{BASE}/login", json={"identifier": "alice", "password": ["hunter2-secret"]}
        )
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "validation_error"
        assert body["context"] == {"fields": ["password"]}
        assert "hunter2-secret" not in response.text

    def test_legacy_username_field(self, client):
        _register(client)
        response = client.post(f"{BASE}/login", json={"username": "alice", "password": "p1"})
        assert response.status_code == 200


class TestRefresh:
    def test_rotation_scenario(self, client):
        _register(client)
        r1 = _login(client).json()["refresh_token"]

        first = _refresh_with_body(client, r1)
        assert first.status_code == 200
        r2 = first.json()["refresh_token"]
        assert r2 != r1

        assert _refresh_with_body(client, r1).status_code == 401
        assert _refresh_with_body(client, r2).status_code == 200

    def test_refresh_from_cookie_resets_cookies(self, client):
        _register(client)
        _login(client)
        old = client.cookies.get("refresh_token")

        response = client.post(f"{BASE}/refresh-token")
        assert response.status_code == 200
        assert client.cookies.get("refresh_token") == response.json()["refresh_token"] != old

    def test_missing_token(self, client):
        assert client.post(f"{BASE}/refresh-token").status_code == 401


class TestProtectedRoutes:
    def test_me_requires_access_token(self, client):
        assert client.get(f"{BASE}/me").status_code == 401
        assert client.get(
            f"{BASE}/me", headers={"Authorization": "Bearer garbage"}
        ).status_code == 401

    def test_me_with_cookie_and_bearer(self, client):
        _register(client)
        access = _login(client).json()["access_token"]

        assert client.get(f"{BASE}/me").json()["handle"] == "alice"
        client.cookies.clear()
        response = client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {access}"})
        assert response.json()["handle"] == "alice"

    def test_logout_clears_session_and_is_idempotent(self, client):
        _register(client)
        tokens = _login(client).json()
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        client.cookies.clear()
        assert client.post(f"{BASE}/logout").status_code == 401

        first = client.post(f"{BASE}/logout", headers=headers)
        assert first.status_code == 200
        assert first.json()["handle"] == "alice"
        assert any(c.startswith("refresh_token=") for c in first.headers.get_list("set-cookie"))

        assert client.post(f"{BASE}/logout", headers=headers).status_code == 200
        assert _refresh_with_body(client, tokens["refresh_token"]).status_code == 401


@pytest.mark.parametrize("path", ["/health"])
def test_health(client, path):
    assert client.get(path).json() == {"status": "ok"}
