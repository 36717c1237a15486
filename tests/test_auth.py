"""Tests for bearer-token authentication and the dev-mode bypass."""

import time

import pytest
from jose import jwt

from app.core.auth import DEV_USER, get_current_user
from app.core.config import get_settings
from app.core.errors import AuthenticationError
from app.core.flags import get_flags

SECRET = "test-secret-with-enough-length-for-hs256"


def make_token(secret=SECRET, **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": "user-a",
        "email": "a@example.com",
        "role": "authenticated",
        "aud": "authenticated",
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def shared_secret(monkeypatch):
    monkeypatch.setenv("AUTH_ALGORITHM", "HS256")
    monkeypatch.setenv("AUTH_JWT_SECRET", SECRET)
    get_settings.cache_clear()


class TestGetCurrentUser:
    async def test_valid_token(self, shared_secret):
        user = await get_current_user(f"Bearer {make_token()}")
        assert user.user_id == "user-a"
        assert user.email == "a@example.com"

    async def test_scheme_is_case_insensitive(self, shared_secret):
        user = await get_current_user(f"bearer {make_token()}")
        assert user.user_id == "user-a"

    @pytest.mark.parametrize("header", ["", "Bearer", "Bearer ", "Basic abc", "Token xyz"])
    async def test_missing_or_malformed_header(self, shared_secret, header):
        with pytest.raises(AuthenticationError):
            await get_current_user(header)

    async def test_wrong_secret(self, shared_secret):
        token = make_token(secret="another-secret-entirely-different")
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {token}")

    async def test_expired(self, shared_secret):
        token = make_token(exp=int(time.time()) - 60)
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {token}")

    async def test_wrong_audience(self, shared_secret):
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {make_token(aud='someone-else')}")

    async def test_missing_subject(self, shared_secret):
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {make_token(sub=None)}")

    async def test_garbage_token(self, shared_secret):
        with pytest.raises(AuthenticationError):
            await get_current_user("Bearer not-a-jwt")

    async def test_secret_not_configured(self, monkeypatch):
        monkeypatch.setenv("AUTH_ALGORITHM", "HS256")
        get_settings.cache_clear()
        with pytest.raises(AuthenticationError):
            await get_current_user(f"Bearer {make_token()}")

    async def test_dev_mode_bypass(self, monkeypatch):
        monkeypatch.setenv("FF_USE_AUTH", "false")
        get_flags.cache_clear()
        assert await get_current_user("") is DEV_USER


class TestProtectedRoutes:
    async def test_no_header_is_401(self, client):
        resp = await client.get("/progress/user-a")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert "error" in resp.json()

    async def test_401_before_body_validation(self, client, store):
        resp = await client.post("/progress/", json={})
        assert resp.status_code == 401
        assert store.records == {}

    async def test_leaderboard_requires_auth(self, client):
        resp = await client.get("/progress/leaderboard")
        assert resp.status_code == 401

    async def test_valid_token_reaches_handler(self, client, store, shared_secret):
        store.seed("user-a", total_xp=7)
        resp = await client.get(
            "/progress/user-a",
            headers={"Authorization": f"Bearer {make_token()}"},
        )
        assert resp.status_code == 200
        assert resp.json()["total_xp"] == 7

    async def test_token_for_other_user_is_403(self, client, store, shared_secret):
        store.seed("user-b")
        resp = await client.get(
            "/progress/user-b",
            headers={"Authorization": f"Bearer {make_token()}"},
        )
        assert resp.status_code == 403

    async def test_auth_config_reports_enabled(self, client):
        resp = await client.get("/auth/config")
        assert resp.json()["auth_enabled"] is True


async def test_dev_token_script_round_trip(shared_secret):
    from scripts.issue_dev_token import issue_token

    user = await get_current_user(f"Bearer {issue_token('user-z', hours=1)}")
    assert user.user_id == "user-z"


def test_dev_token_script_refuses_asymmetric_algorithm(monkeypatch):
    from scripts.issue_dev_token import issue_token

    monkeypatch.setenv("AUTH_ALGORITHM", "RS256")
    monkeypatch.setenv("AUTH_JWT_SECRET", SECRET)
    get_settings.cache_clear()

    with pytest.raises(SystemExit):
        issue_token("user-z")
