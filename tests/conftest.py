"""
tests/conftest.py -- Shared test fixtures for TokenGate.

This module provides:
  - FakeClock: a settable clock injected into TokenCodec so expiry can be
    tested without sleeping
  - hasher / codec / store / service: unit-level components with a test
    secret and the minimum bcrypt cost (rounds=4) for speed
  - api_client: TestClient whose lifespan is replaced by one wired to
    isolated test components

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# Set before any core/api import so a stray get_settings() call never sees a
# production posture from the developer's shell.
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import PasswordHasher
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenCodec

TEST_SECRET = "test-signing-secret-0123456789abcdef0123456789"
TEST_LIFETIME = 3600


class FakeClock:
    """Callable clock that starts at the current time and only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-level components
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec(secret=TEST_SECRET, lifetime_seconds=TEST_LIFETIME, clock=clock)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: UserStore, hasher: PasswordHasher, codec: TokenCodec) -> CredentialService:
    return CredentialService(store, hasher, codec)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(service: CredentialService, store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so routes never read
    Settings or touch the on-disk database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.credentials = service
        app.state.user_store = store
        yield

    return test_lifespan


@pytest.fixture
def api_client(hasher: PasswordHasher) -> Generator[tuple[TestClient, CredentialService, FakeClock], None, None]:
    """Yield (client, service, clock) backed by an isolated shared-memory store.

    The clock is shared with the service's codec, so tests can expire tokens
    by advancing it.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = UserStore(db_url=db_url)
    clock = FakeClock()
    service = CredentialService(store, hasher, TokenCodec(TEST_SECRET, TEST_LIFETIME, clock=clock))

    app.router.lifespan_context = _patch_lifespan(service, store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service, clock

    store.close()
