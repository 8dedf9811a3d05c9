"""Optional API-key auth and caller identity for the automation API.

The API key is a shared secret between the mail backend and this service.
The acting merchant is carried per request in the X-User-Id header; every
query downstream is scoped to that user id.
"""

from __future__ import annotations

import hmac
import logging
import os
import threading
import time

from fastapi import Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

_PUBLIC_PATH_PREFIXES = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

_AUTH_FAIL_MAX = 10
_AUTH_FAIL_WINDOW_SECONDS = 300

# X-Forwarded-For is honored only behind a trusted proxy
_TRUST_PROXY = os.environ.get("SONA_TRUST_PROXY", "").strip().lower() in ("1", "true")

_MIN_API_KEY_LENGTH = 32


def _get_client_ip(request: Request) -> str:
    if _TRUST_PROXY:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class _AuthFailureTracker:
    """Sliding-window count of failed API-key attempts per client IP."""

    def __init__(self, limit: int, window_seconds: float) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._failures: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def blocked(self, client_ip: str) -> bool:
        cutoff = time.monotonic() - self.window_seconds
        with self._lock:
            recent = [t for t in self._failures.get(client_ip, []) if t > cutoff]
            self._failures[client_ip] = recent
            return len(recent) >= self.limit

    def record(self, client_ip: str) -> None:
        with self._lock:
            self._failures.setdefault(client_ip, []).append(time.monotonic())

    def clear(self) -> None:
        with self._lock:
            self._failures.clear()


_failed_attempts = _AuthFailureTracker(_AUTH_FAIL_MAX, _AUTH_FAIL_WINDOW_SECONDS)


def reset_rate_limiter() -> None:
    """Forget all recorded auth failures."""
    _failed_attempts.clear()


def get_expected_api_key() -> str:
    """Return configured API key; empty string means auth disabled."""
    return os.environ.get("SONA_API_KEY", "").strip()


def validate_api_key_strength() -> None:
    """Validate the configured API key at startup.

    Raises:
        ValueError: If SONA_API_KEY is set but shorter than 32 characters.
    """
    key = get_expected_api_key()
    if key and len(key) < _MIN_API_KEY_LENGTH:
        raise ValueError(
            f"SONA_API_KEY is too short ({len(key)} chars). "
            f"Minimum length is {_MIN_API_KEY_LENGTH} characters."
        )


def should_authenticate(path: str) -> bool:
    """Return True when this path should be protected by API-key auth."""
    if path.startswith(_PUBLIC_PATH_PREFIXES):
        return False
    return path.startswith("/api/")


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """FastAPI middleware entrypoint for optional API-key auth."""
    if request.method.upper() == "OPTIONS":
        return await call_next(request)

    expected_key = get_expected_api_key()
    if not expected_key or not should_authenticate(request.url.path):
        return await call_next(request)

    client_ip = _get_client_ip(request)
    if _failed_attempts.blocked(client_ip):
        logger.warning("Auth rate limit exceeded for IP %s", client_ip)
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many authentication failures. Try again later."},
        )

    provided_key = request.headers.get("X-API-Key", "")
    if not provided_key or not hmac.compare_digest(provided_key, expected_key):
        _failed_attempts.record(client_ip)
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or missing API key"},
        )
    return await call_next(request)


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Dependency returning the acting merchant's user id.

    Raises:
        HTTPException: 401 when the X-User-Id header is missing or blank.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
