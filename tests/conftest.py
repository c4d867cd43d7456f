"""
tests/conftest.py -- Shared test fixtures for the user authentication service.

This module provides:
  - store / issuer / user: unit-level fixtures over an in-memory UserStore
  - _make_test_store(): isolated named shared-memory DB for HTTP tests
  - _patch_lifespan(): wires the test store and issuer into app.state
  - api_client: TestClient over the real app with the patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the HTTP tests because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread.

Environment must be set before any application import:
  DEBUG=true              -> get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4         -> bcrypt's minimum cost, keeps the suite fast
  RATE_LIMIT_ENABLED=false -> login/register limits off unless a test turns them on
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
TEST_ROUNDS = 4


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore per test."""
    s = UserStore("sqlite:///:memory:", bcrypt_rounds=TEST_ROUNDS)
    yield s
    s.close()


@pytest.fixture
def issuer(store: UserStore) -> TokenIssuer:
    return TokenIssuer(secret_key=TEST_SECRET, store=store)


@pytest.fixture
def user(store: UserStore) -> User:
    """A stored user: Ann / a@x.com / secret."""
    return store.create_user("Ann", "a@x.com", "secret")


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _make_test_store() -> UserStore:
    """Create an isolated named shared-memory store.

    The uuid suffix keeps each test's database separate.
    """
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return UserStore(url, bcrypt_rounds=TEST_ROUNDS)


def _patch_lifespan(user_store: UserStore, token_issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so routes use the isolated
    test DB rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.token_issuer = token_issuer
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, UserStore, TokenIssuer], None, None]:
    """Yield (client, store, issuer) over the real FastAPI app.

    Tests hit real route handlers, middleware and exception handlers; only
    the store and issuer are swapped for test instances.
    """
    user_store = _make_test_store()
    token_issuer = TokenIssuer(secret_key=TEST_SECRET, store=user_store)

    app.router.lifespan_context = _patch_lifespan(user_store, token_issuer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, token_issuer

    user_store.close()


@pytest.fixture
def register(api_client):
    """Return a helper that POSTs a valid registration for Ann, with optional overrides."""
    client, _store, _issuer = api_client

    def _register(**overrides):
        body = {
            "name": "Ann",
            "email": "a@x.com",
            "password1": "secret",
            "password2": "secret",
        }
        body.update(overrides)
        return client.post("/api/users", json=body)

    return _register
