"""Tests for optional API-key auth, caller identity and auth rate limiting."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import src.api.middleware.auth as auth_mod
from src.api.middleware.auth import (
    _AUTH_FAIL_MAX,
    _get_client_ip,
    reset_rate_limiter,
    should_authenticate,
    validate_api_key_strength,
)

API_KEY = "a" * 32 + "-test-key"
LIST_URL = "/api/v1/threads/thread-1/actions"


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter state between tests."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


def test_api_auth_disabled_by_default(client: TestClient, monkeypatch):
    monkeypatch.delenv("SONA_API_KEY", raising=False)

    response = client.get(LIST_URL)
    assert response.status_code == 200


def test_api_auth_enforced_when_key_is_set(client: TestClient, monkeypatch):
    monkeypatch.setenv("SONA_API_KEY", API_KEY)

    response = client.get(LIST_URL)
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid or missing API key"}

    response = client.get(LIST_URL, headers={"X-API-Key": "wrong"})
    assert response.status_code == 401

    response = client.get(LIST_URL, headers={"X-API-Key": API_KEY})
    assert response.status_code == 200


def test_health_is_public(client: TestClient, monkeypatch):
    monkeypatch.setenv("SONA_API_KEY", API_KEY)
    assert client.get("/health").status_code == 200


def test_should_authenticate():
    assert should_authenticate("/api/v1/threads/t/actions") is True
    assert should_authenticate("/health") is False
    assert should_authenticate("/docs") is False
    assert should_authenticate("/openapi.json") is False


class TestCallerIdentity:
    """Tests for the X-User-Id dependency."""

    def test_missing_user_header(self, client: TestClient):
        response = client.get(LIST_URL, headers={"X-User-Id": ""})
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}


class TestApiKeyStrength:
    """Tests for API key minimum length validation."""

    def test_short_api_key_rejected_at_startup(self, monkeypatch):
        """Keys shorter than 32 characters raise ValueError."""
        monkeypatch.setenv("SONA_API_KEY", "too-short")
        with pytest.raises(ValueError, match="too short"):
            validate_api_key_strength()

    def test_valid_length_api_key_accepted(self, monkeypatch):
        """Keys of 32+ characters pass validation."""
        monkeypatch.setenv("SONA_API_KEY", "a" * 32)
        validate_api_key_strength()

    def test_empty_api_key_skips_validation(self, monkeypatch):
        """Empty/unset key (auth disabled) passes validation."""
        monkeypatch.delenv("SONA_API_KEY", raising=False)
        validate_api_key_strength()


class TestAuthRateLimit:
    """Tests for auth failure rate limiting."""

    def test_auth_rate_limit_blocks_after_max_attempts(
        self, client: TestClient, monkeypatch
    ):
        """After _AUTH_FAIL_MAX bad attempts, returns 429."""
        monkeypatch.setenv("SONA_API_KEY", API_KEY)

        for _ in range(_AUTH_FAIL_MAX):
            resp = client.get(LIST_URL, headers={"X-API-Key": "wrong-key"})
            assert resp.status_code == 401

        resp = client.get(LIST_URL, headers={"X-API-Key": "wrong-key"})
        assert resp.status_code == 429
        assert "too many" in resp.json()["detail"].lower()

    def test_auth_rate_limit_resets(self, client: TestClient, monkeypatch):
        """Clearing the failure records lifts the block."""
        monkeypatch.setenv("SONA_API_KEY", API_KEY)

        for _ in range(_AUTH_FAIL_MAX):
            client.get(LIST_URL, headers={"X-API-Key": "wrong-key"})
        assert client.get(LIST_URL, headers={"X-API-Key": "wrong-key"}).status_code == 429

        reset_rate_limiter()

        resp = client.get(LIST_URL, headers={"X-API-Key": "wrong-key"})
        assert resp.status_code == 401


class TestTrustedProxyConfig:
    """Tests for X-Forwarded-For trust configuration."""

    def test_get_client_ip_ignores_xff_by_default(self, monkeypatch):
        """Without SONA_TRUST_PROXY, X-Forwarded-For is ignored."""
        monkeypatch.setattr(auth_mod, "_TRUST_PROXY", False)
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "1.2.3.4"}
        request.client.host = "127.0.0.1"
        assert _get_client_ip(request) == "127.0.0.1"

    def test_get_client_ip_uses_xff_when_trusted(self, monkeypatch):
        """With SONA_TRUST_PROXY=true, the first X-Forwarded-For hop is used."""
        monkeypatch.setattr(auth_mod, "_TRUST_PROXY", True)
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "1.2.3.4, 5.6.7.8"}
        request.client.host = "127.0.0.1"
        assert _get_client_ip(request) == "1.2.3.4"
