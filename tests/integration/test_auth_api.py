"""
Integration tests for the Intuit OAuth endpoints.

Tests the full flow: authorize redirect, callback, refresh.
"""
from fastapi.testclient import TestClient

from tests.fakes import AUTH_CODE, REFRESH_TOKEN, FakeQuickBooks


class TestAuthorize:
    """Tests for /auth/authorize endpoint."""

    def test_redirects_to_intuit(self, client: TestClient):
        response = client.get("/auth/authorize", follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://appcenter.intuit.com/connect/oauth2?")
        assert "client_id=client-id" in location
        assert "state=" in location

    def test_rate_limited(self, client: TestClient):
        """The eleventh authorization start within a minute is rejected."""
        for _ in range(10):
            assert client.get("/auth/authorize", follow_redirects=False).status_code == 302

        response = client.get("/auth/authorize", follow_redirects=False)

        assert response.status_code == 429
        assert response.json()["success"] is False
        assert response.headers["Retry-After"] == "60"


class TestCallback:
    """Tests for /auth/callback endpoint."""

    def test_success_stores_tokens(self, client: TestClient, token_store):
        response = client.get("/auth/callback", params={"code": AUTH_CODE, "realmId": "realm-42"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "realm-42" in response.text
        assert "<script" not in response.text
        assert token_store.get("realm-42").access_token == "access-token-2"

    def test_intuit_error(self, client: TestClient, fake_upstream: FakeQuickBooks):
        response = client.get("/auth/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert "access_denied" in response.text
        assert "/auth/authorize" in response.text
        assert fake_upstream.requests == []

    def test_missing_realm_id(self, client: TestClient):
        response = client.get("/auth/callback", params={"code": AUTH_CODE})

        assert response.status_code == 400
        assert "Missing code or realmId" in response.text

    def test_rejected_code(self, client: TestClient, token_store):
        response = client.get("/auth/callback", params={"code": "expired", "realmId": "realm-42"})

        assert response.status_code == 400
        assert "Failed to exchange code for tokens" in response.text
        assert token_store.get("realm-42") is None

    def test_error_message_is_escaped(self, client: TestClient):
        response = client.get("/auth/callback", params={"error": "<b>bad</b>"})

        assert "<b>bad</b>" not in response.text
        assert "&lt;b&gt;bad&lt;/b&gt;" in response.text


class TestRefresh:
    """Tests for /auth/refresh endpoint."""

    def test_refresh_returns_tokens(self, client: TestClient):
        response = client.post("/auth/refresh", json={"refreshToken": REFRESH_TOKEN})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["access_token"] == "access-token-2"
        assert data["data"]["expires_in"] == 3600
        assert "error" not in data

    def test_refresh_with_company_stores_tokens(self, client: TestClient, token_store):
        response = client.post(
            "/auth/refresh",
            params={"companyId": "realm-7"},
            json={"refreshToken": REFRESH_TOKEN},
        )

        assert response.status_code == 200
        assert token_store.get("realm-7").access_token == "access-token-2"

    def test_refresh_token_required(self, client: TestClient):
        response = client.post("/auth/refresh", json={})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Refresh token is required"}

    def test_invalid_refresh_token(self, client: TestClient):
        response = client.post("/auth/refresh", json={"refreshToken": "revoked"})

        assert response.status_code == 400
        assert response.json()["error"] == "Failed to refresh token"
