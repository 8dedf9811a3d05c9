"""FastAPI application for the Sona automation API.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import version as _pkg_version

import httpx
from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import thread_actions
from src.cli.config import get_config
from src.db.connection import close_db, init_db
from src.errors import AutomationError, DomainError

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: schema setup, shared HTTP client and config."""
    global _startup_time

    _startup_time = _time.time()
    validate_api_key_strength()
    init_db()

    app.state.config = get_config()
    app.state.http_client = httpx.AsyncClient()
    logger.info(
        "Sona API started (Shopify API %s, timeout %.1fs)",
        app.state.config.shopify.api_version,
        app.state.config.shopify.request_timeout_seconds,
    )

    yield

    await app.state.http_client.aclose()
    close_db()


app = FastAPI(
    title="Sona Automation API",
    description="Policy-gated dispatch and approval of customer-support order actions",
    version="0.1.0",
    lifespan=lifespan,
)

# Optional API auth for /api/* when SONA_API_KEY is configured.
app.middleware("http")(maybe_require_api_key)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-User-Id"],
    )


@app.exception_handler(AutomationError)
async def automation_error_handler(request: Request, exc: AutomationError) -> JSONResponse:
    """Render pipeline errors with their registry code and remediation."""
    content = {"error": str(exc), **exc.to_dict()}
    upstream_status = getattr(exc, "status_code", None)
    if upstream_status is not None:
        content["upstream_status"] = upstream_status
    return JSONResponse(status_code=exc.http_status, content=content)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render domain errors using the status each exception carries."""
    return JSONResponse(status_code=exc.http_status, content={"error": str(exc)})


app.include_router(thread_actions.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint with uptime and version."""
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    try:
        version = _pkg_version("sona-automation")
    except Exception:
        version = "unknown"
    return {"status": "healthy", "version": version, "uptime_seconds": uptime}
