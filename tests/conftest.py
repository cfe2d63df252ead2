"""
tests/conftest.py -- Shared test fixtures for UserDesk unit and integration tests.

This module provides:
  - store: a fresh in-memory UserStore per test
  - add_user: factory fixture that inserts a user with a known password
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - env: TestClient (follow_redirects=False) plus the seeded admin/user/other
    accounts, for API and web route tests

Design: "sqlite:///:memory:" gets a StaticPool engine in UserStore, so every
TestClient worker thread shares the one in-memory database.

Environment variables must be set before any app import: get_settings() is
cached on first call and core.limiter reads it at import time.
"""

from __future__ import annotations

import os
import time
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.models import ROLE_ADMIN, ROLE_USER, AccountStatus, User
from auth.passwords import hash_password
from auth.sessions import MemorySessionStore, SessionAuthenticator
from auth.store import UserStore
from auth.tokens import BearerTokenAuthenticator
from notify.queue import EmailMessage, MailQueue

SECRET_KEY = os.environ["SECRET_KEY"]

ADMIN_PASSWORD = "admin-pass-123"
USER_PASSWORD = "user-pass-123"
OTHER_PASSWORD = "other-pass-123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_user(
    store: UserStore,
    email: str,
    password: str = USER_PASSWORD,
    roles: list[str] | None = None,
    status: AccountStatus = AccountStatus.active,
    first_name: str = "",
    last_name: str = "",
) -> User:
    uid = store.create_user(
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            roles=roles or [ROLE_USER],
            account_status=status,
        )
    )
    return store.get_by_id(uid)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = UserStore("sqlite:///:memory:")
    yield user_store
    user_store.close()


@pytest.fixture
def add_user(store: UserStore):
    """Factory fixture: add_user(email, password=..., roles=..., status=...) -> User."""

    def _add(email: str, **kwargs) -> User:
        return make_user(store, email, **kwargs)

    return _add


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


@dataclass
class AppEnv:
    client: TestClient
    store: UserStore
    admin: User
    user: User
    other: User
    token_auth: BearerTokenAuthenticator
    mailer: RecordingMailer

    def login(self, email: str, password: str):
        """Log the client in through the web form. The cookie lands in the client jar."""
        return self.client.post("/login", data={"email": email, "password": password})

    def login_admin(self):
        return self.login(self.admin.email, ADMIN_PASSWORD)

    def login_user(self):
        return self.login(self.user.email, USER_PASSWORD)

    def bearer(self, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_auth.issue(user.id)}"}

    def wait_for_mail(self, count: int = 1, timeout: float = 2.0) -> list[EmailMessage]:
        """Poll until the mail worker has handed `count` messages to the mailer."""
        deadline = time.monotonic() + timeout
        while len(self.mailer.sent) < count and time.monotonic() < deadline:
            time.sleep(0.01)
        return self.mailer.sent


def _patch_lifespan(
    store: UserStore,
    session_auth: SessionAuthenticator,
    token_auth: BearerTokenAuthenticator,
    mailer: RecordingMailer,
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see an
    isolated test DB. The mail queue is real (its worker needs the TestClient
    event loop); only the mailer records instead of logging.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.session_auth = session_auth
        app.state.token_auth = token_auth
        app.state.mail_queue = MailQueue(mailer)
        app.state.mail_queue.start()
        yield
        await app.state.mail_queue.stop()

    return test_lifespan


@pytest.fixture
def env(store: UserStore) -> Generator[AppEnv, None, None]:
    """Yield an AppEnv around a TestClient with three seeded accounts.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    admin = make_user(store, "admin@example.com", ADMIN_PASSWORD, roles=[ROLE_ADMIN], first_name="Ada")
    user = make_user(store, "user@example.com", USER_PASSWORD, first_name="John", last_name="Doe")
    other = make_user(store, "other@example.com", OTHER_PASSWORD)

    session_auth = SessionAuthenticator(store, MemorySessionStore())
    token_auth = BearerTokenAuthenticator(store, SECRET_KEY)
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(store, session_auth, token_auth, mailer)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppEnv(
            client=client,
            store=store,
            admin=admin,
            user=user,
            other=other,
            token_auth=token_auth,
            mailer=mailer,
        )
