"""
tests/conftest.py -- Shared test fixtures for Storefront.

This module provides:
  - FakeClock: a settable clock injected into AuthService for expiry tests
  - unit fixtures: engine, user_store, session_store, cache, tokens, service
  - api_client: TestClient wired to isolated stores through a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for
the TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures run in one thread and use plain :memory:.

The cache is a fakeredis client, so cache-aside behaviour (TTLs, SCAN
pattern deletes, KEEPTTL) is exercised against real Redis semantics.

The DEBUG env var must be set before any core/ import so get_settings()
auto-generates signing secrets instead of raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any core/auth import.
os.environ.setdefault("DEBUG", "true")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_auth_service
from auth.repository import IdentityRepository
from auth.service import AuthService
from auth.store import SessionStore, UserStore, create_store_engine
from auth.tokens import TokenService
from cache.store import CacheStore
from core.config import get_settings

ACCESS_SECRET = "a" * 48
REFRESH_SECRET = "r" * 48


class FakeClock:
    """Callable clock that tests can move forward explicitly."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_store_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def session_store(engine) -> SessionStore:
    return SessionStore(engine)


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def cache(redis_client) -> CacheStore:
    return CacheStore(redis_client, default_ttl=120)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def identities(user_store, cache) -> IdentityRepository:
    return IdentityRepository(user_store, cache)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(identities, session_store, tokens, clock) -> AuthService:
    return AuthService(identities, session_store, tokens, clock=clock)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, session_store: SessionStore, cache: CacheStore):
    """Return an async context manager that replaces the real lifespan.

    Wires isolated stores and a fakeredis-backed cache into app.state so
    TestClient routes never touch a real database or Redis. The purge_task
    is a long-sleeping coroutine so shutdown can cancel a real Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.settings = settings
        app.state.tokens = TokenService.from_settings(settings)
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.cache = cache
        app.state.auth_service = build_auth_service(
            user_store, session_store, cache, app.state.tokens, settings.code_ttl_seconds
        )
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with fresh, isolated stores.

    Rate limiting is switched off so repeated logins across tests do not
    trip the per-IP limit.
    """
    db_url = f"sqlite:///file:test_api_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    engine = create_store_engine(db_url)
    user_store = UserStore(engine)
    session_store = SessionStore(engine)
    cache = CacheStore(fakeredis.FakeRedis(decode_responses=True))

    app.router.lifespan_context = _patch_lifespan(user_store, session_store, cache)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    limiter.enabled = True
    engine.dispose()

