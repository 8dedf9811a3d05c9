"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite session (StaticPool, schema created per test)
- AES-256-GCM key exported through SONA_ENCRYPTION_KEY
- A connected Shopify shop and a mail thread for the default merchant
- An in-memory Shopify store served through httpx.MockTransport
"""

import base64
import json
import os
from collections.abc import Generator

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import AgentLog, Base, LogStatus, MailThread, ShopConnection, utc_now_iso
from src.services.credential_encryption import encrypt_token
from tests.helpers import ShopifyTestStore

USER_ID = "user-1"
THREAD_ID = "thread-1"
SHOP_DOMAIN = "demo-store.myshopify.com"
ACCESS_TOKEN = "shpat_test_token_0123456789"


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create an in-memory database session with the full schema."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.close()
    engine.dispose()


# ============================================================================
# Credential Fixtures
# ============================================================================


@pytest.fixture
def encryption_key(monkeypatch) -> bytes:
    """Random 32-byte key exported through SONA_ENCRYPTION_KEY."""
    key = os.urandom(32)
    monkeypatch.setenv("SONA_ENCRYPTION_KEY", base64.b64encode(key).decode())
    monkeypatch.delenv("SONA_ENCRYPTION_KEY_FILE", raising=False)
    return key


@pytest.fixture
def shop_connection(db_session: Session, encryption_key: bytes) -> ShopConnection:
    """Installed Shopify connection for the default merchant."""
    row = ShopConnection(
        owner_user_id=USER_ID,
        platform="shopify",
        shop_domain=SHOP_DOMAIN,
        access_token_encrypted=encrypt_token(ACCESS_TOKEN, encryption_key),
        created_at="2026-01-01T00:00:00+00:00",
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def mail_thread(db_session: Session) -> MailThread:
    """Mail thread owned by the default merchant."""
    thread = MailThread(
        id=THREAD_ID,
        user_id=USER_ID,
        provider_thread_id="gmail-thread-abc",
        subject="Re: Order #1001 wrong address",
        snippet="Hi, I moved last week",
    )
    db_session.add(thread)
    db_session.commit()
    return thread


@pytest.fixture
def proposal_log(db_session: Session):
    """Factory storing a drafted proposal in agent_logs, as the drafting agent does."""

    def _store(thread_id: str, detail) -> AgentLog:
        entry = AgentLog(
            thread_id=thread_id,
            step_name="shopify_action",
            step_detail=detail if isinstance(detail, str) else json.dumps(detail),
            status=LogStatus.info.value,
            created_at=utc_now_iso(),
        )
        db_session.add(entry)
        db_session.commit()
        return entry

    return _store


# ============================================================================
# Shopify Fixtures
# ============================================================================


@pytest.fixture
def shopify_store() -> ShopifyTestStore:
    """Fake store with one open order, #1001 (id 450789469)."""
    store = ShopifyTestStore(shop_domain=SHOP_DOMAIN)
    store.add_order(
        450789469,
        order_number=1001,
        name="#1001",
        tags="",
        shipping_address={
            "name": "Jonas Berg",
            "address1": "Nørrebrogade 1",
            "zip": "2200",
            "city": "København N",
            "country": "Denmark",
            "phone": "+4512345678",
        },
    )
    return store


@pytest.fixture
def http_client(shopify_store: ShopifyTestStore) -> httpx.AsyncClient:
    """httpx.AsyncClient routed to the fake store."""
    return shopify_store.http_client()
