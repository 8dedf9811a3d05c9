"""Pytest fixtures for API tests.

Provides a TestClient whose database, HTTP client and configuration
dependencies point at the in-memory fixtures from the root conftest.
"""

from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.main import app
from src.api.middleware.auth import reset_rate_limiter
from src.api.routes.thread_actions import get_http_client, get_settings
from src.cli.config import SonaConfig
from src.db.connection import get_db
from tests.conftest import USER_ID


@pytest.fixture
def client(db_session: Session, http_client: httpx.AsyncClient) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden dependencies.

    Args:
        db_session: In-memory database session.
        http_client: httpx client routed to the fake Shopify store.

    Yields:
        TestClient sending X-User-Id for the default merchant.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_settings] = SonaConfig
    reset_rate_limiter()

    with_user = TestClient(app, headers={"X-User-Id": USER_ID})
    yield with_user

    app.dependency_overrides.clear()
    reset_rate_limiter()
