"""
tests/conftest.py -- Shared test fixtures for Wayfarer tests.

This module provides:
  - _make_test_stores(): isolated in-memory DBs for directory, bookings and
    the local credential provider
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - services: the AccountService/UserDirectory/BookingStore bundle for unit tests
  - api_client: TestClient plus an admin and a regular user, each with a token
  - register_user(): helper that registers through the API and returns the token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any core/auth/api import: get_settings() is
cached on first call, and api.limiter / api.main read it at import time.
  DEBUG=true               -- auto-generated SECRET_KEY instead of ValueError
  RATE_LIMIT_ENABLED=false -- slowapi per-IP limits would trip across tests
  ALLOWED_HOSTS            -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.accounts import AccountService
from auth.directory import UserDirectory
from auth.gateway import AuthGateway
from auth.provider import LocalCredentialProvider
from auth.throttle import LoginThrottle
from auth.tokens import issue_for
from bookings.store import BookingStore
from core.config import get_settings

ADMIN_PASSWORD = "Admin123!@#"
USER_PASSWORD = "Passw0rd1"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


@dataclass
class Services:
    directory: UserDirectory
    bookings: BookingStore
    provider: LocalCredentialProvider
    throttle: LoginThrottle
    accounts: AccountService
    gateway: AuthGateway

    def close(self) -> None:
        self.provider.close()
        self.bookings.close()
        self.directory.close()


def _db_url(db_suffix: str) -> str:
    return f"sqlite:///file:test_wayfarer_{db_suffix}?mode=memory&cache=shared&uri=true"


def _make_test_stores(db_suffix: str) -> Services:
    """Create isolated named shared-memory SQLite stores for test isolation.

    All three stores share one named database per suffix, as they share
    DATABASE_URL in production.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'accounts').
    """
    url = _db_url(db_suffix)
    directory = UserDirectory(url)
    bookings = BookingStore(url)
    provider = LocalCredentialProvider(url)
    throttle = LoginThrottle(max_attempts=5, window_seconds=900)
    accounts = AccountService(provider, directory, throttle)
    gateway = AuthGateway(directory, get_settings().secret_key)
    return Services(directory, bookings, provider, throttle, accounts, gateway)


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test services into app.state so TestClient routes see
    isolated test DBs rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.directory = services.directory
        app.state.bookings = services.bookings
        app.state.provider = services.provider
        app.state.throttle = services.throttle
        app.state.accounts = services.accounts
        app.state.gateway = services.gateway
        yield

    return test_lifespan


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def token_for(uid: str, email: str, role: str) -> str:
    return issue_for(uid, email, role, get_settings().secret_key, 3600)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_user(client: TestClient, email: str | None = None, password: str = USER_PASSWORD) -> dict:
    """Register through the API. Returns the response JSON (message, token, user)."""
    email = email or unique_email()
    resp = client.post(
        "/api/v1/auth/register",
        json={
            "email": email,
            "password": password,
            "confirmPassword": password,
            "firstName": "Test",
            "lastName": "User",
        },
    )
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def services() -> Generator[Services, None, None]:
    """Fresh stores per test under a random name so nothing leaks between tests."""
    svc = _make_test_stores(f"unit_{uuid.uuid4().hex}")
    yield svc
    svc.close()


@dataclass
class ApiContext:
    client: TestClient
    services: Services
    admin_uid: str
    admin_email: str
    admin_token: str
    user_uid: str
    user_email: str
    user_token: str


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. One
    admin (created through the bootstrap path) and one regular user exist
    before the first request.
    """
    services = _make_test_stores(f"api_{request.module.__name__.rsplit('.', 1)[-1]}")

    admin_email = unique_email("admin")
    admin = services.accounts.ensure_initial_admin(admin_email, ADMIN_PASSWORD)
    user_email = unique_email("member")
    user = services.accounts.register(user_email, USER_PASSWORD, "Mem", "Ber")

    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            services=services,
            admin_uid=admin.uid,
            admin_email=admin.email,
            admin_token=token_for(admin.uid, admin.email, admin.role),
            user_uid=user.uid,
            user_email=user.email,
            user_token=token_for(user.uid, user.email, user.role),
        )

    services.close()
