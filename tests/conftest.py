"""
tests/conftest.py -- Shared test fixtures for Exa integration tests.

This module provides:
  - _make_test_engine(): an isolated in-memory database per test module
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client / web_client: TestClient over the full asgi app (API + web pages)
  - seed_business(): an owner, a business, and welcome credits in one call
  - bearer(): Authorization header carrying a session token for a user id
  - api_login(): real login through the API, leaving the cookie in the jar

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment variables must be set before any core/auth import: Settings is
an lru_cache singleton, and the limiter, CORS allow-list and trusted hosts
are read from it at import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: configure before importing the app.
os.environ.setdefault("NODE_ENV", "test")
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef0123456789"
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'
os.environ["CORS_ALLOWED_ORIGINS"] = '["http://localhost:3000"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOGIN_OTP_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from asgi import app
from auth.models import User
from auth.session import sign_session
from auth.store import UserStore
from auth.tokens import hash_password
from business.models import Business
from business.store import BusinessStore
from core.db import create_db_engine, now_iso
from credits.store import CreditStore

DEFAULT_PASSWORD = "Passw0rd!"

# ---------------------------------------------------------------------------
# Engine and lifespan helpers
# ---------------------------------------------------------------------------


def _make_test_engine(db_suffix: str) -> Engine:
    """Create an isolated named shared-memory SQLite engine.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'web').
    """
    return create_db_engine(f"sqlite:///file:test_exa_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    The mailer is a MagicMock so tests can assert on what would have been
    sent. The purge_task is a long-sleeping coroutine; a real asyncio.Task is
    required because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = UserStore(engine)
        app.state.business_store = BusinessStore(engine)
        app.state.credit_store = CreditStore(engine)
        app.state.mailer = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def _client(db_suffix: str, **kwargs) -> Generator[TestClient, None, None]:
    engine = _make_test_engine(db_suffix)
    app.router.lifespan_context = _patch_lifespan(engine)
    with TestClient(app, raise_server_exceptions=True, **kwargs) as client:
        yield client
    engine.dispose()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


def seed_business(
    client: TestClient,
    email: str,
    *,
    business_name: str | None = None,
    role: str = "owner",
    verified: bool = True,
    password: str = DEFAULT_PASSWORD,
) -> User:
    """Create a business with one user in it and grant the welcome credits."""
    state = client.app.state
    business_id = state.business_store.create_business(Business(name=business_name or f"Biz {email}"))
    user = User(
        name=email.split("@")[0].title(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        business_id=business_id,
        email_verified_at=now_iso() if verified else None,
    )
    user.id = state.user_store.create_user(user)
    state.credit_store.grant_welcome_credits(business_id)
    return user


def add_member(client: TestClient, business_id: str, email: str, role: str = "member") -> User:
    user = User(
        name=email.split("@")[0].title(),
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        role=role,
        business_id=business_id,
        email_verified_at=now_iso(),
    )
    user.id = client.app.state.user_store.create_user(user)
    return user


def bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {sign_session(user_id)}"}


def api_login(client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Log in through the API so the client's cookie jar holds a real exa-session."""
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


# ---------------------------------------------------------------------------
# Fixtures -- one TestClient per test module for speed, cookies reset per test
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def _api_client(request) -> Generator[TestClient, None, None]:
    yield from _client(f"api_{request.module.__name__.rsplit('.', 1)[-1]}")


@pytest.fixture(scope="module")
def _web_client(request) -> Generator[TestClient, None, None]:
    """follow_redirects=False: web tests assert on redirect Location headers."""
    yield from _client(f"web_{request.module.__name__.rsplit('.', 1)[-1]}", follow_redirects=False)


@pytest.fixture
def api_client(_api_client: TestClient) -> TestClient:
    _api_client.cookies.clear()
    _api_client.app.state.mailer.reset_mock()
    return _api_client


@pytest.fixture
def web_client(_web_client: TestClient) -> TestClient:
    _web_client.cookies.clear()
    _web_client.app.state.mailer.reset_mock()
    return _web_client