"""
auth/sessions.py -- Server-side sessions and the password login flow.

The browser only ever holds an opaque session id (secrets.token_urlsafe(32),
256 bits). Everything else lives server-side behind the SessionStore
capability, so SessionAuthenticator does not care where sessions are kept:

  MemorySessionStore   -- dict guarded by a lock; default, per-process.
  DatabaseSessionStore -- SQLAlchemy Core table on the user store's engine;
                          survives restarts and is shared by workers.

Login runs bcrypt even for unknown emails (against passwords.DUMMY_HASH) so
response time does not reveal whether an account exists.

resolve() re-checks the account on every request: a user suspended or
deleted after logging in loses the session on their next request.

Layer rule: no imports from api/, web/ or notify/.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from typing import Protocol

from sqlalchemy import Column, Float, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.errors import AccountDisabled, InvalidCredentials
from auth.models import User
from auth.passwords import DUMMY_HASH, verify_password
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("userdesk.auth")

SESSION_COOKIE = "session_id"


class SessionStore(Protocol):
    def get(self, session_id: str) -> dict | None: ...

    def set(self, session_id: str, data: dict, max_age: int) -> None: ...

    def destroy(self, session_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class MemorySessionStore:
    """Process-local session store.

    Expired entries are dropped when read, and every set() sweeps the rest so
    sessions abandoned by their browser do not accumulate.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, tuple[float, dict]] = {}

    def get(self, session_id: str) -> dict | None:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            expires_at, data = entry
            if expires_at <= self._clock():
                del self._sessions[session_id]
                return None
            return dict(data)

    def set(self, session_id: str, data: dict, max_age: int) -> None:
        now = self._clock()
        with self._lock:
            expired = [sid for sid, (expires_at, _data) in self._sessions.items() if expires_at <= now]
            for sid in expired:
                del self._sessions[sid]
            self._sessions[session_id] = (now + max_age, dict(data))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)


_session_metadata = MetaData()

_sessions = Table(
    "sessions",
    _session_metadata,
    Column("id", String(64), primary_key=True),
    Column("data", Text, nullable=False),  # JSON object
    Column("expires_at", Float, nullable=False),  # unix seconds
)


class DatabaseSessionStore:
    """Session store backed by a "sessions" table on an existing engine."""

    def __init__(self, engine: Engine, clock=time.time) -> None:
        self.engine = engine
        self._clock = clock
        _session_metadata.create_all(self.engine)

    def get(self, session_id: str) -> dict | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None:
            return None
        if row.expires_at <= self._clock():
            self.destroy(session_id)
            return None
        return json.loads(row.data)

    def set(self, session_id: str, data: dict, max_age: int) -> None:
        expires_at = self._clock() + max_age
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.execute(_sessions.insert().values(id=session_id, data=json.dumps(data), expires_at=expires_at))
            conn.commit()

    def destroy(self, session_id: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete every expired row. Returns the number of sessions removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Authenticator
# ---------------------------------------------------------------------------


def check_credentials(store: UserStore, email: str, password: str, disclose_account_disabled: bool = False) -> User:
    """Verify email/password and account status. Returns the User or raises.

    Unknown email and wrong password both raise InvalidCredentials after the
    same bcrypt work. An inactive account raises InvalidCredentials too,
    unless disclose_account_disabled is set, in which case AccountDisabled.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, DUMMY_HASH)
        logger.info("Login rejected: unknown email")
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        logger.info("Login rejected: bad password for user %d", user.id)
        raise InvalidCredentials()
    if not user.is_active:
        logger.info("Login rejected: user %d is %s", user.id, user.account_status.value)
        if disclose_account_disabled:
            raise AccountDisabled()
        raise InvalidCredentials()
    return user


class SessionAuthenticator:
    """Establishes and resolves server-side sessions for browser logins."""

    def __init__(
        self,
        store: UserStore,
        sessions: SessionStore,
        max_age: int = 8 * 3600,
        disclose_account_disabled: bool = False,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.max_age = max_age
        self.disclose_account_disabled = disclose_account_disabled

    def login(self, email: str, password: str) -> tuple[str, User]:
        """Verify credentials and open a session. Returns (session_id, user)."""
        user = check_credentials(self.store, email, password, self.disclose_account_disabled)
        session_id = self.open_session(user)
        logger.info("Session opened for user %d", user.id)
        return session_id, user

    def open_session(self, user: User) -> str:
        session_id = secrets.token_urlsafe(32)
        self.sessions.set(session_id, {"user_id": user.id}, self.max_age)
        return session_id

    def resolve(self, session_id: str | None) -> User | None:
        """Return the active user bound to session_id, or None."""
        if not session_id:
            return None
        data = self.sessions.get(session_id)
        if not data or "user_id" not in data:
            return None
        user = self.store.get_by_id(data["user_id"])
        if user is None or not user.is_active:
            self.sessions.destroy(session_id)
            return None
        return user

    def logout(self, session_id: str | None) -> None:
        if session_id:
            self.sessions.destroy(session_id)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str, max_age: int | None = None) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POSTs, which is the CSRF defense
        for the state-changing form posts under /users.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the server-side session lifetime.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=max_age or settings.session_max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
