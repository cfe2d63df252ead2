"""Unit tests for auth/sessions.py -- session stores and the password login flow.

Covers:
- MemorySessionStore / DatabaseSessionStore: set, get, destroy, expiry
- check_credentials(): unknown email, wrong password, disabled accounts
- SessionAuthenticator: login, resolve, logout, re-check of account status
"""

import pytest

from auth.errors import AccountDisabled, InvalidCredentials
from auth.models import AccountStatus
from auth.sessions import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionAuthenticator,
    check_credentials,
)

PASSWORD = "correct-horse-battery"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(params=["memory", "database"])
def clock_and_sessions(request, store):
    clock = FakeClock()
    if request.param == "memory":
        return clock, MemorySessionStore(clock=clock)
    return clock, DatabaseSessionStore(store.engine, clock=clock)


# ---------------------------------------------------------------------------
# Session stores (both backends)
# ---------------------------------------------------------------------------


class TestSessionStores:
    def test_set_then_get(self, clock_and_sessions):
        _clock, sessions = clock_and_sessions
        sessions.set("sid-1", {"user_id": 7}, max_age=60)
        assert sessions.get("sid-1") == {"user_id": 7}

    def test_unknown_id(self, clock_and_sessions):
        _clock, sessions = clock_and_sessions
        assert sessions.get("missing") is None

    def test_destroy(self, clock_and_sessions):
        _clock, sessions = clock_and_sessions
        sessions.set("sid-1", {"user_id": 7}, max_age=60)
        sessions.destroy("sid-1")
        assert sessions.get("sid-1") is None

    def test_destroy_unknown_is_noop(self, clock_and_sessions):
        _clock, sessions = clock_and_sessions
        sessions.destroy("never-existed")

    def test_expired_session_is_gone(self, clock_and_sessions):
        clock, sessions = clock_and_sessions
        sessions.set("sid-1", {"user_id": 7}, max_age=60)
        clock.now += 59
        assert sessions.get("sid-1") == {"user_id": 7}
        clock.now += 1
        assert sessions.get("sid-1") is None

    def test_set_overwrites(self, clock_and_sessions):
        _clock, sessions = clock_and_sessions
        sessions.set("sid-1", {"user_id": 7}, max_age=60)
        sessions.set("sid-1", {"user_id": 8}, max_age=60)
        assert sessions.get("sid-1") == {"user_id": 8}


def test_memory_store_sweeps_abandoned_sessions():
    clock = FakeClock()
    sessions = MemorySessionStore(clock=clock)
    for n in range(50):
        sessions.set(f"sid-{n}", {"user_id": n}, max_age=60)
    assert len(sessions) == 50
    clock.now += 10_000
    sessions.set("fresh", {"user_id": 99}, max_age=60)
    assert len(sessions) == 1
    assert sessions.get("fresh") == {"user_id": 99}


def test_memory_store_sweep_keeps_live_sessions():
    clock = FakeClock()
    sessions = MemorySessionStore(clock=clock)
    sessions.set("short", {"user_id": 1}, max_age=10)
    sessions.set("long", {"user_id": 2}, max_age=1000)
    clock.now += 100
    sessions.set("new", {"user_id": 3}, max_age=60)
    assert len(sessions) == 2
    assert sessions.get("long") == {"user_id": 2}


def test_database_store_purge_expired(store):
    clock = FakeClock()
    sessions = DatabaseSessionStore(store.engine, clock=clock)
    sessions.set("short", {"user_id": 1}, max_age=10)
    sessions.set("long", {"user_id": 2}, max_age=1000)
    clock.now += 100
    assert sessions.purge_expired() == 1
    assert sessions.get("long") == {"user_id": 2}


# ---------------------------------------------------------------------------
# check_credentials
# ---------------------------------------------------------------------------


class TestCheckCredentials:
    def test_valid_credentials(self, store, add_user):
        add_user("alice@example.com", password=PASSWORD)
        user = check_credentials(store, "alice@example.com", PASSWORD)
        assert user.email == "alice@example.com"

    def test_email_is_normalized(self, store, add_user):
        add_user("alice@example.com", password=PASSWORD)
        assert check_credentials(store, "  Alice@Example.COM ", PASSWORD).email == "alice@example.com"

    def test_unknown_email(self, store):
        with pytest.raises(InvalidCredentials):
            check_credentials(store, "nobody@example.com", PASSWORD)

    def test_wrong_password(self, store, add_user):
        add_user("alice@example.com", password=PASSWORD)
        with pytest.raises(InvalidCredentials):
            check_credentials(store, "alice@example.com", "wrong-password")

    @pytest.mark.parametrize("status", [AccountStatus.suspended, AccountStatus.banned])
    def test_disabled_account_is_generic_by_default(self, store, add_user, status):
        add_user("alice@example.com", password=PASSWORD, status=status)
        with pytest.raises(InvalidCredentials):
            check_credentials(store, "alice@example.com", PASSWORD)

    def test_disabled_account_disclosed_when_enabled(self, store, add_user):
        add_user("alice@example.com", password=PASSWORD, status=AccountStatus.suspended)
        with pytest.raises(AccountDisabled):
            check_credentials(store, "alice@example.com", PASSWORD, disclose_account_disabled=True)

    def test_disabled_account_with_wrong_password_is_never_disclosed(self, store, add_user):
        add_user("alice@example.com", password=PASSWORD, status=AccountStatus.suspended)
        with pytest.raises(InvalidCredentials):
            check_credentials(store, "alice@example.com", "wrong-password", disclose_account_disabled=True)


# ---------------------------------------------------------------------------
# SessionAuthenticator
# ---------------------------------------------------------------------------


class TestSessionAuthenticator:
    @pytest.fixture
    def session_auth(self, store):
        return SessionAuthenticator(store, MemorySessionStore(), max_age=3600)

    def test_login_opens_resolvable_session(self, session_auth, add_user):
        alice = add_user("alice@example.com", password=PASSWORD)
        session_id, user = session_auth.login("alice@example.com", PASSWORD)
        assert user.id == alice.id
        assert len(session_id) >= 43  # token_urlsafe(32)
        assert session_auth.resolve(session_id).id == alice.id

    def test_each_login_gets_a_new_session_id(self, session_auth, add_user):
        add_user("alice@example.com", password=PASSWORD)
        first, _ = session_auth.login("alice@example.com", PASSWORD)
        second, _ = session_auth.login("alice@example.com", PASSWORD)
        assert first != second

    def test_failed_login_opens_nothing(self, session_auth, add_user):
        add_user("alice@example.com", password=PASSWORD)
        with pytest.raises(InvalidCredentials):
            session_auth.login("alice@example.com", "nope-nope-nope")

    @pytest.mark.parametrize("session_id", [None, "", "not-a-session"])
    def test_resolve_unknown(self, session_auth, session_id):
        assert session_auth.resolve(session_id) is None

    def test_logout_destroys_session(self, session_auth, add_user):
        add_user("alice@example.com", password=PASSWORD)
        session_id, _ = session_auth.login("alice@example.com", PASSWORD)
        session_auth.logout(session_id)
        assert session_auth.resolve(session_id) is None

    def test_logout_without_session_is_noop(self, session_auth):
        session_auth.logout(None)

    def test_suspension_ends_existing_session(self, store, session_auth, add_user):
        alice = add_user("alice@example.com", password=PASSWORD)
        session_id, _ = session_auth.login("alice@example.com", PASSWORD)
        store.update_user(alice.id, account_status=AccountStatus.suspended)
        assert session_auth.resolve(session_id) is None
        # Reactivating does not bring the destroyed session back.
        store.update_user(alice.id, account_status=AccountStatus.active)
        assert session_auth.resolve(session_id) is None

    def test_deleted_user_loses_session(self, store, session_auth, add_user):
        alice = add_user("alice@example.com", password=PASSWORD)
        session_id, _ = session_auth.login("alice@example.com", PASSWORD)
        store.delete_user(alice.id)
        assert session_auth.resolve(session_id) is None
