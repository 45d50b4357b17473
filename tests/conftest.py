"""
Pytest configuration and fixtures.

QuickBooks and the Intuit token endpoint are replaced by ``FakeQuickBooks``
(see tests/fakes.py) served through ``httpx.MockTransport``.
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from invoicing_api.api import dependencies
from invoicing_api.config import Settings, get_settings
from invoicing_api.main import app
from invoicing_api.middleware.rate_limit import limiter
from invoicing_api.services.oauth import IntuitOAuthService
from invoicing_api.services.quickbooks_client import QuickBooksClient
from invoicing_api.services.token_store import InMemoryTokenStore, TokenRecord
from invoicing_api.utils.cache import cache
from tests.fakes import ACCESS_TOKEN, API_BASE_URL, COMPANY_ID, REFRESH_TOKEN, TOKEN_URL, FakeQuickBooks


@pytest.fixture(autouse=True)
def reset_shared_state() -> Generator[None, None, None]:
    """Rate limit counters and the customer cache are process globals."""
    limiter.reset()
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def fake_upstream() -> FakeQuickBooks:
    return FakeQuickBooks()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        intuit_client_id="client-id",
        intuit_client_secret="client-secret",
        intuit_redirect_uri="http://testserver/auth/callback",
        intuit_token_url=TOKEN_URL,
        intuit_base_url=API_BASE_URL,
        token_file_path=tmp_path / "tokens.json",
        settlement_poll_max_attempts=3,
        settlement_poll_initial_delay=0,
        settlement_poll_max_delay=0,
    )


@pytest.fixture
def http_client(fake_upstream: FakeQuickBooks) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream.handler))


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    """Store pre-authorized for COMPANY_ID with a token valid for an hour."""
    return InMemoryTokenStore(
        {
            COMPANY_ID: TokenRecord(
                access_token=ACCESS_TOKEN,
                refresh_token=REFRESH_TOKEN,
                expires_in=3600,
                token_type="bearer",
                expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        }
    )


@pytest.fixture
def oauth_service(settings: Settings, token_store: InMemoryTokenStore, http_client: httpx.AsyncClient) -> IntuitOAuthService:
    return IntuitOAuthService(settings, token_store, http_client)


@pytest.fixture
def quickbooks_client(settings: Settings, http_client: httpx.AsyncClient) -> QuickBooksClient:
    return QuickBooksClient(settings, http_client)


@pytest.fixture(scope="function")
def client(
    settings: Settings,
    token_store: InMemoryTokenStore,
    http_client: httpx.AsyncClient,
    oauth_service: IntuitOAuthService,
    quickbooks_client: QuickBooksClient,
) -> Generator[TestClient, None, None]:
    """Create a test client wired to the fake upstream."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_token_store] = lambda: token_store
    app.dependency_overrides[dependencies.get_http_client] = lambda: http_client
    app.dependency_overrides[dependencies.get_oauth_service] = lambda: oauth_service
    app.dependency_overrides[dependencies.get_quickbooks_client] = lambda: quickbooks_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
