"""
tests/conftest.py -- Shared test fixtures for Planit unit and integration tests.

This module provides:
  - store:        a UserStore on a throwaway SQLite file (unit tests)
  - clock:        a settable clock for OTP / refresh-record expiry
  - api_client:   (client, mailer, store) -- TestClient over the real app
  - accounts:     AccountHelper that signs users up and verifies them via HTTP

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the integration client because TestClient runs route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The mailer is a MagicMock, so tests read the issued code straight from the
send_otp_email / send_password_reset_email call arguments.

Environment must be set before any auth/core import: DEBUG lets
get_settings() auto-generate signing keys, BCRYPT_ROUNDS keeps hashing at
the floor cost, and AUTH_RATE_LIMIT is raised so a whole module of signups
from one client IP does not trip the limiter.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import MagicMock

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("AUTH_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.models import Role, User, default_profile
from auth.store import UserStore
from core.config import get_settings

USER_PASSWORD = "Passw0rdOK"
ADMIN_PASSWORD = "AdminPass1"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock; tests move it forward to step past expiry."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def store(tmp_path) -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> MagicMock:
    return MagicMock()


def make_user(store: UserStore, email: str, role: str = Role.planner.value, verified: bool = True) -> User:
    """Insert a user directly through the store; returns the stored record."""
    full_name = email.split("@")[0].title()
    user_id = store.create_user(
        User(email=email, full_name=full_name, role=role, profile=default_profile(role, full_name)),
        USER_PASSWORD,
    )
    if verified:
        store.set_email_verified(user_id)
    return store.get_by_id(user_id)


@pytest.fixture
def user_factory(store):
    def factory(email: Optional[str] = None, role: str = Role.planner.value, verified: bool = True) -> User:
        return make_user(store, email or f"{uuid.uuid4().hex[:8]}@example.com", role, verified)

    return factory


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Runs the same wire_services() as production with the test store and the
    mock mailer. The purge_task is a long-sleeping coroutine (a real
    asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, user_store, mailer, get_settings())
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, MagicMock, UserStore], None, None]:
    """Yield (client, mailer, store) for API integration tests.

    One TestClient per test module. Tests use unique emails, so state left
    behind by one test does not leak into another's assertions.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store = _make_test_store(suffix)
    mailer = MagicMock()
    app.router.lifespan_context = _patch_lifespan(user_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer, user_store

    user_store.close()


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}.{uuid.uuid4().hex[:10]}@example.com"


class AccountHelper:
    """Drives the signup -> verify-email flow over HTTP for integration tests."""

    def __init__(self, client: TestClient, mailer: MagicMock, store: UserStore) -> None:
        self.client = client
        self.mailer = mailer
        self.store = store

    def last_otp(self) -> str:
        return self.mailer.send_otp_email.call_args.args[1]

    def last_reset_code(self) -> str:
        return self.mailer.send_password_reset_email.call_args.args[1]

    def signup(self, role: str = "planner", email: Optional[str] = None, password: str = USER_PASSWORD) -> dict:
        """Sign up; returns {userId, email, password, otp}."""
        email = email or unique_email(role)
        resp = self.client.post(
            "/api/auth/signup",
            json={"email": email, "password": password, "fullName": f"Test {role.title()}", "role": role},
        )
        assert resp.status_code == 201, f"signup failed: {resp.text}"
        return {
            "userId": resp.json()["data"]["user"]["id"],
            "email": email.lower(),
            "password": password,
            "otp": self.last_otp(),
        }

    def verified(self, role: str = "planner", email: Optional[str] = None) -> dict:
        """Sign up and verify; returns signup info plus accessToken, refreshToken, headers."""
        info = self.signup(role, email)
        resp = self.client.post("/api/auth/verify-email", json={"userId": info["userId"], "otp": info["otp"]})
        assert resp.status_code == 200, f"verify failed: {resp.text}"
        data = resp.json()["data"]
        info.update(
            accessToken=data["accessToken"],
            refreshToken=data["refreshToken"],
            headers={"Authorization": f"Bearer {data['accessToken']}"},
        )
        return info

    def admin(self) -> dict:
        """Create a verified admin directly in the store (no HTTP signup path) and log in."""
        email = unique_email("admin")
        user_id = self.store.create_user(User(email=email, full_name="Test Admin", role="admin"), ADMIN_PASSWORD)
        self.store.set_email_verified(user_id)
        resp = self.client.post("/api/auth/login", json={"email": email, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, f"admin login failed: {resp.text}"
        data = resp.json()["data"]
        return {
            "userId": user_id,
            "email": email,
            "password": ADMIN_PASSWORD,
            "accessToken": data["accessToken"],
            "refreshToken": data["refreshToken"],
            "headers": {"Authorization": f"Bearer {data['accessToken']}"},
        }


@pytest.fixture
def accounts(api_client) -> AccountHelper:
    client, mailer, user_store = api_client
    return AccountHelper(client, mailer, user_store)
