"""
Test configuration and fixtures for the Lookup Portal API tests.
"""
from typing import Any, Dict, Optional

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from lookup_api.config import Settings
from lookup_api.main import create_app

# ============================================================================
# CONSTANTS
# ============================================================================

ALLOWED_ORIGIN = "http://localhost:5000"
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/124.0 Safari/537.36"

SUPERUSER_USERNAME = "root_admin"
SUPERUSER_PASSWORD = "Sup3r-secret-pass"

LOOKUP_BASE = "https://lookup.test"
VEHICLE_BASE = "https://vehicle.test"
IP_BASE = "https://ip.test"

TEST_USER_USERNAME = "alice"
TEST_USER_PASSWORD = "alice-pass-1"

VPN_IP = "104.131.20.5"

# ============================================================================
# HELPERS
# ============================================================================


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "role_model": "admin_user",
        "mongodb_url": "",
        "superuser_username": SUPERUSER_USERNAME,
        "superuser_password": SUPERUSER_PASSWORD,
        "session_secret": "test-session-secret",
        "node_env": "test",
        "production_flag": False,
        "redis_url": None,
        "vpnapi_key": None,
        "lookup_api_base": LOOKUP_BASE,
        "vehicle_api_base": VEHICLE_BASE,
        "vehicle_api_key": "test-key",
        "ip_api_base": IP_BASE,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def login(client: TestClient, username: Any, password: Any, login_type: Any) -> httpx.Response:
    return client.post(
        "/api/auth/login",
        json={"username": username, "password": password, "loginType": login_type},
    )


# ============================================================================
# APPLICATION
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def database():
    return AsyncMongoMockClient()["lookup_test"]


@pytest.fixture
def upstream():
    """All outbound HTTP is mocked; unmatched calls fail the test."""
    with respx.mock(assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def app(settings, database, upstream):
    return create_app(settings, database=database, http_client=httpx.AsyncClient())


@pytest.fixture
def make_client(app):
    def _make(
        origin: Optional[str] = ALLOWED_ORIGIN,
        user_agent: str = BROWSER_UA,
        headers: Optional[Dict[str, str]] = None,
    ) -> TestClient:
        default_headers = {"User-Agent": user_agent}
        if origin:
            default_headers["Origin"] = origin
        default_headers.update(headers or {})
        return TestClient(app, headers=default_headers)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


# ============================================================================
# AUTHENTICATED CLIENTS
# ============================================================================


@pytest.fixture
def admin_client(make_client, settings) -> TestClient:
    """Signed in as the configured superuser."""
    admin = make_client()
    response = login(admin, SUPERUSER_USERNAME, SUPERUSER_PASSWORD, settings.roles.privileged)
    assert response.status_code == 200, response.text
    return admin


@pytest.fixture
def create_account(admin_client, settings):
    collection_url = f"/api/{settings.roles.privileged}/{settings.roles.route_segment}"

    def _create(
        username: str = TEST_USER_USERNAME,
        password: str = TEST_USER_PASSWORD,
        name: str = "Alice Example",
        email: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "username": username,
            "password": password,
            "name": name,
            "email": email or f"{username}@example.com",
        }
        if status:
            payload["status"] = status
        response = admin_client.post(collection_url, json=payload)
        assert response.status_code == 201, response.text
        return response.json()[settings.roles.managed]

    return _create


@pytest.fixture
def user_account(create_account) -> Dict[str, Any]:
    return create_account()


@pytest.fixture
def user_client(make_client, user_account, settings) -> TestClient:
    """Signed in as a regular managed account."""
    user = make_client()
    response = login(user, TEST_USER_USERNAME, TEST_USER_PASSWORD, settings.roles.managed)
    assert response.status_code == 200, response.text
    return user
