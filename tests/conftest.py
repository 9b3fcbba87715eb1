"""
tests/conftest.py -- Shared test fixtures for Turnstile.

This module provides:
  - _make_test_stores(): isolated named shared-memory SQLite stores
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - user_store / session_store / registry / sessions: core objects for unit tests
  - client: TestClient over the real app with a fresh pair of stores per test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread;
auth/store.py puts every in-memory URL on a StaticPool so one connection (and
so one database) serves all threads.
Each fixture call gets a uuid-suffixed name so tests never see each other's
users or sessions.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() is cached at first call, DEBUG lets it auto-generate SECRET_KEY,
and 4 rounds keeps every bcrypt call in the suite cheap.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.registry import UserRegistry
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore

_MOCK_USER = {
    "username": "testuser",
    "first_name": "Test",
    "last_name": "User",
    "email": "test@example.com",
    "password": "12345",
}

# Same user as the HTTP layer expects it (camelCase keys).
_MOCK_USER_JSON = {
    "username": "testuser",
    "firstName": "Test",
    "lastName": "User",
    "email": "test@example.com",
    "password": "12345",
}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores() -> tuple[UserStore, SessionStore]:
    """Create a fresh pair of named shared-memory SQLite stores."""
    suffix = uuid.uuid4().hex
    user_store = UserStore(f"sqlite:///file:test_users_{suffix}?mode=memory&cache=shared&uri=true")
    session_store = SessionStore(f"sqlite:///file:test_sessions_{suffix}?mode=memory&cache=shared&uri=true")
    return user_store, session_store


def _patch_lifespan(user_store: UserStore, session_store: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can .cancel() a
    real asyncio.Task just like in production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.registry = UserRegistry(user_store)
        app.state.sessions = SessionManager(app.state.registry, session_store, ttl_seconds=3600)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, SessionStore], None, None]:
    user_store, session_store = _make_test_stores()
    yield user_store, session_store
    session_store.close()
    user_store.close()


@pytest.fixture
def user_store(stores) -> UserStore:
    return stores[0]


@pytest.fixture
def session_store(stores) -> SessionStore:
    return stores[1]


@pytest.fixture
def registry(user_store: UserStore) -> UserRegistry:
    return UserRegistry(user_store)


@pytest.fixture
def sessions(registry: UserRegistry, session_store: SessionStore) -> SessionManager:
    return SessionManager(registry, session_store, ttl_seconds=3600)


# ---------------------------------------------------------------------------
# HTTP fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient over the real app with isolated stores.

    The client keeps cookies between requests, so a login followed by another
    call on the same client carries the session cookie automatically.
    """
    user_store, session_store = _make_test_stores()
    app.router.lifespan_context = _patch_lifespan(user_store, session_store)

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c

    session_store.close()
    user_store.close()


@pytest.fixture
def mock_user() -> dict:
    """Registration fields for UserRegistry.create() (snake_case)."""
    return dict(_MOCK_USER)


@pytest.fixture
def mock_user_json() -> dict:
    """Registration body for POST /api/v1/users (camelCase)."""
    return dict(_MOCK_USER_JSON)
