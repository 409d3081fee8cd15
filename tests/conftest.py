"""
tests/conftest.py -- Shared test fixtures for the login directory tests.

This module provides:
  - store: an in-memory UserStore for unit tests
  - directory: a DirectoryService over that store
  - api_client: TestClient over the real FastAPI app with an isolated store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

RATE_LIMIT_ENABLED must be set before any api/ import so the shared limiter
is built disabled; tests call verify far more often than the production limit.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any api/ or core/ import so get_settings() sees it.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import DirectoryService
from auth.store import UserStore

# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def directory(store: UserStore) -> DirectoryService:
    return DirectoryService(store)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so routes hit an isolated database
    rather than the file configured by DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.directory = DirectoryService(user_store)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for API integration tests.

    Each test gets its own named in-memory database, so tests can register
    the same logins without colliding.
    """
    db_url = f"sqlite:///file:test_directory_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    user_store.close()
