"""
tests/conftest.py -- Shared test fixtures for Waypoint Identity.

This module provides:
  - store / tokens / mailer / blobs / engine: unit-level fixtures over a private in-memory DB
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient over the real app with isolated services

The collaborator fakes themselves live in tests/fakes.py.

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool and
every pooled connection must see the same database.

DEBUG and BCRYPT_ROUNDS must be set before any core/auth import so
get_settings() auto-generates SECRET_KEY and hashing stays at the minimum cost.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any core/auth import so the cached Settings see them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from accounts.engine import IdentityEngine
from accounts.store import AccountStore
from api.main import app
from auth import passwords
from auth.tokens import TokenService
from tests.fakes import TEST_SECRET, ApiContext, MemoryBlobStore, RecordingMailer

passwords.configure(10)

# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()

@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET)

@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()

@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()

@pytest.fixture
def engine(store, tokens, mailer, blobs) -> Generator[IdentityEngine, None, None]:
    e = IdentityEngine(store, tokens, mailer, blobs, base_url="http://testserver")
    yield e
    e.close()

# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

def _patch_lifespan(store: AccountStore, tokens: TokenService, engine: IdentityEngine):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see an
    isolated database, record outgoing mail, and never touch the filesystem.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        app.state.tokens = tokens
        app.state.engine = engine
        app.state.oauth = None
        yield

    return test_lifespan

@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The database name is derived from the test module so modules never share
    rows. One admin account (admin@example.com / adminpass123) exists up front.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    tokens = TokenService(TEST_SECRET)
    mailer = RecordingMailer()
    blobs = MemoryBlobStore()
    engine = IdentityEngine(store, tokens, mailer, blobs, base_url="http://testserver")
    engine.provision_account("admin@example.com", "adminpass123", "admin", name="Admin")

    app.router.lifespan_context = _patch_lifespan(store, tokens, engine)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, engine=engine, mailer=mailer, blobs=blobs)

    engine.close()
    store.close()
