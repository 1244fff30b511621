"""Integration tests for JWT authentication.

Validates:
  - /health is public (plain Django view, no DRF).
  - Factory endpoints return 401 without or with a bad token.
  - A SimpleJWT access token obtained from /api/v1/auth/token/ is accepted.
"""

import pytest
from django.contrib.auth import get_user_model

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/factory/orders/"
TOKEN_URL = "/api/v1/auth/token/"


class TestPublicEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_schema_is_public(self, api_client):
        response = api_client.get("/api/schema/")
        assert response.status_code == 200


class TestProtectedEndpoints:
    """All factory endpoints require a valid JWT (fail closed)."""

    @pytest.mark.parametrize(
        ("method", "url"),
        [
            ("get", ORDERS_URL),
            ("post", f"{ORDERS_URL}send-to-factory/"),
            ("get", "/api/v1/factory/departments/"),
            ("get", "/api/v1/factory/departments/CAD/board/"),
            ("get", "/api/v1/factory/workers/"),
        ],
    )
    def test_no_token_returns_401(self, api_client, method, url):
        response = getattr(api_client, method)(url)
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        assert api_client.get(ORDERS_URL).status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        assert api_client.get(ORDERS_URL).status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get(ORDERS_URL)
        assert "Bearer" in response.get("WWW-Authenticate", "")


class TestTokenFlow:
    def test_obtained_token_is_accepted(self, api_client):
        get_user_model().objects.create_user(username="floor-lead", password="s3cret-pass")

        response = api_client.post(
            TOKEN_URL,
            {"username": "floor-lead", "password": "s3cret-pass"},
            format="json",
        )
        assert response.status_code == 200
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

        assert api_client.get(ORDERS_URL).status_code == 200

    def test_wrong_password_is_rejected(self, api_client):
        get_user_model().objects.create_user(username="floor-lead", password="s3cret-pass")
        response = api_client.post(
            TOKEN_URL, {"username": "floor-lead", "password": "nope"}, format="json"
        )
        assert response.status_code == 401
