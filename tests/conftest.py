"""
tests/conftest.py -- Shared test fixtures for CredVault.

This module provides:
  - store-level fixtures (engine, cipher, user_store, activity_store,
    system_store, system_service) on a private in-memory database per test
  - _make_test_engine(): named shared-memory SQLite engine for API tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a super_admin JWT for API integration tests
  - user_factory: creates extra users with a role and category grants and
    returns (user_id, auth headers)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for API tests because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

Environment variables must be set before any app import: core.config reads
them once, and api.limiter builds its limits from them at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: Set these before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ["ENCRYPTION_KEY"] = "0123456789abcdef0123456789abcdef"
os.environ["RATE_LIMIT_MAX"] = "100000"
os.environ["LOGIN_RATE_LIMIT"] = "1000/minute"
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from audit.store import ActivityStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token
from core.cipher import CredentialCipher
from core.config import get_settings
from core.database import create_db_engine
from core.models import SUPER_ADMIN
from notify.email import EmailNotifier
from vault.service import SystemService
from vault.store import SystemStore

TEST_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Store-level fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(get_settings().encryption_key)


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def activity_store(engine: Engine) -> ActivityStore:
    return ActivityStore(engine)


@pytest.fixture
def system_store(engine: Engine, cipher: CredentialCipher) -> SystemStore:
    return SystemStore(engine, cipher)


@pytest.fixture
def system_service(system_store: SystemStore, activity_store: ActivityStore) -> SystemService:
    return SystemService(system_store, activity_store)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


def _make_test_engine(db_suffix: str) -> Engine:
    """Create a named shared-memory SQLite engine for one test module.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   never see each other's rows.
    """
    return create_db_engine(f"sqlite:///file:credvault_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Mirrors api.main.lifespan but on the given test engine.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        cipher = CredentialCipher(settings.encryption_key)
        app.state.engine = engine
        app.state.user_store = UserStore(engine)
        app.state.activity_store = ActivityStore(engine)
        app.state.system_store = SystemStore(engine, cipher)
        app.state.system_service = SystemService(app.state.system_store, app.state.activity_store)
        app.state.email_notifier = EmailNotifier(settings)
        yield

    return test_lifespan


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The user is a super_admin with email "root@example.org" and password
    TEST_PASSWORD, created before the client starts.
    """
    engine = _make_test_engine(f"{request.module.__name__.rsplit('.', 1)[-1]}_{uuid.uuid4().hex[:8]}")
    store = UserStore(engine)
    uid = store.create_user(User(email="root@example.org", role=SUPER_ADMIN, full_name="Root"), TEST_PASSWORD)
    token = create_access_token(user_id=uid, email="root@example.org", role=SUPER_ADMIN, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(engine)

    # Clients in this module share one IP; start from a clean limiter.
    app.state.limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    engine.dispose()


@pytest.fixture
def user_factory(api_client) -> Callable[..., tuple[int, dict[str, str]]]:
    """Return make(role, categories=None, subcategories=None, email=None).

    Each call creates a user directly in the store and returns
    (user_id, headers) where headers carry a Bearer token for that user.
    """
    client, _token, _uid = api_client
    store: UserStore = client.app.state.user_store

    def make(
        role: str,
        categories: Optional[list[str]] = None,
        subcategories: Optional[dict[str, list[str]]] = None,
        email: Optional[str] = None,
    ) -> tuple[int, dict[str, str]]:
        address = email or f"{role}-{uuid.uuid4().hex[:8]}@example.org"
        user_id = store.create_user(
            User(
                email=address,
                role=role,
                full_name=f"Test {role}",
                allowed_categories=categories or [],
                allowed_subcategories=subcategories or {},
            ),
            TEST_PASSWORD,
        )
        token = create_access_token(user_id=user_id, email=address, role=role, expire_seconds=3600)
        return user_id, auth_headers(token)

    return make
