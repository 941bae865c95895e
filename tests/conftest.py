"""
tests/conftest.py -- Shared test fixtures for boxid.

This module provides:
  - settings: debug Settings with generated secrets and bcrypt cost 4
  - store: AccountStore on an isolated named shared-memory SQLite database
  - mailer: RecordingMailer that keeps every verification link it is handed
  - service: AuthService wired to the three above
  - make_client: factory for TestClients over create_app() plus the web router,
    with Settings overrides; client and google_client are the two common cases

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. The
instance lives only while some connection is open, so each store fixture
holds a keeper connection for its lifetime.

Each test gets its own database name: the auth tests mutate accounts, and a
module-scoped store would make them order-dependent.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable, Generator
from contextlib import ExitStack
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.mailer import Mailer
from auth.models import Account
from auth.service import AuthService
from auth.store import AccountStore
from core.config import Settings
from web.routes import router as web_router

# Every TestClient request comes from the same "testclient" address, so the
# per-IP login limit would trip partway through the suite.
limiter.enabled = False


class RecordingMailer(Mailer):
    """Mailer that records (email, verify_url) instead of sending."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_verification(self, email: str, verify_url: str) -> None:
        self.sent.append((email, verify_url))

    def last_token(self, email: str | None = None) -> str:
        """Return the token from the most recent link (optionally for one email)."""
        for sent_to, url in reversed(self.sent):
            if email is None or sent_to == email:
                return parse_qs(urlparse(url).query)["token"][0]
        raise AssertionError(f"no verification mail sent to {email!r}")


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "bcrypt_rounds": 4, "database_url": "sqlite://"}
    values.update(overrides)
    return Settings(**values)


def _memory_db_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    name = f"test_boxid_{uuid.uuid4().hex}"
    keeper = sqlite3.connect(f"file:{name}?mode=memory&cache=shared", uri=True)
    account_store = AccountStore(db_url=_memory_db_url(name))
    yield account_store
    account_store.close()
    keeper.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def service(settings: Settings, store: AccountStore, mailer: RecordingMailer) -> AuthService:
    return AuthService(settings, store, mailer)


@pytest.fixture
def make_account(service: AuthService) -> Callable[..., Account]:
    """Return a factory that registers an account, verified unless told otherwise."""

    def _make(
        email: str = "artist@example.com",
        password: str = "correct-horse",
        verified: bool = True,
        **kwargs,
    ) -> Account:
        kwargs.setdefault("display_name", "Test Artist")
        registration = service.register(email=email, password=password, **kwargs)
        if verified:
            return service.mark_verified(email)
        return registration.account

    return _make


@pytest.fixture
def make_client(store: AccountStore, mailer: RecordingMailer) -> Generator[Callable[..., TestClient], None, None]:
    """Return a factory for started TestClients sharing the test store and mailer.

    Keyword arguments override Settings fields. follow_redirects=False so web
    tests can assert on Location headers.
    """
    stack = ExitStack()

    def _make(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides), store=store, mailer=mailer)
        # asgi.py mounts the web router in production; mirror it here.
        app.include_router(web_router, tags=["Web"])
        return stack.enter_context(TestClient(app, follow_redirects=False, raise_server_exceptions=True))

    with stack:
        yield _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


@pytest.fixture
def google_client(make_client: Callable[..., TestClient]) -> TestClient:
    """Client with the Google provider configured (the registry itself is mocked per test)."""
    return make_client(google_client_id="client-id.apps.example", google_client_secret="client-secret")
