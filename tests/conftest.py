"""
tests/conftest.py -- Shared test fixtures for the CAD auth service.

This module provides:
  - _make_test_store(): creates an isolated in-memory DB for the account store
  - _patch_lifespan(): wires the test store into app.state, bypassing real startup
  - store: fresh UserStore per test for unit tests
  - api_client: TestClient over a fresh store per test for route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format shares one in-memory instance across all
connections in the same process.

Environment must be set before any auth/core import so get_settings() picks
it up: DEBUG auto-generates SECRET_KEY, BCRYPT_ROUNDS keeps hashing fast, and
the rate limits are raised so a module's worth of logins is never throttled.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import UserStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests never
                   share accounts (the first-account rule depends on it).
    """
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Empty UserStore backed by a private in-memory database."""
    s = _make_test_store(uuid.uuid4().hex)
    yield s
    s.close()


@pytest.fixture
def api_client(store: UserStore) -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for route integration tests.

    Function-scoped: every test starts with an empty installation so the
    first registration is always the owner.
    """
    app.router.lifespan_context = _patch_lifespan(store)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store
