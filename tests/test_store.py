"""Unit tests for auth/store.py -- UserStore persistence.

Covers:
- create / get_by_email / get_by_id round trip including roles and status
- email normalization and the UNIQUE constraint
- update_user field whitelist and updated_at stamping
- delete_user, list_users ordering, count_active_admins, ping
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_USER, AccountStatus, User


def test_create_and_fetch(store):
    uid = store.create_user(
        User(
            email="Alice@Example.com",
            password_hash="hash",
            first_name="Alice",
            last_name="Liddell",
            roles=[ROLE_ADMIN],
            account_status=AccountStatus.suspended,
        )
    )
    user = store.get_by_id(uid)
    assert user.email == "alice@example.com"
    assert user.first_name == "Alice"
    assert user.last_name == "Liddell"
    # ROLE_USER is always present, in canonical order
    assert user.roles == [ROLE_USER, ROLE_ADMIN]
    assert user.account_status is AccountStatus.suspended
    assert user.created_at
    assert user.updated_at == user.created_at
    assert store.get_by_email("ALICE@example.com ").id == uid


def test_missing_lookups_return_none(store):
    assert store.get_by_id(42) is None
    assert store.get_by_email("nobody@example.com") is None


def test_duplicate_email_rejected(store, add_user):
    add_user("alice@example.com")
    with pytest.raises(IntegrityError):
        store.create_user(User(email="ALICE@example.com", password_hash="hash"))


def test_unknown_roles_dropped(store):
    uid = store.create_user(User(email="a@example.com", password_hash="h", roles=["ROLE_SUPERUSER"]))
    assert store.get_by_id(uid).roles == [ROLE_USER]


def test_has_users(store, add_user):
    assert store.has_users() is False
    add_user("alice@example.com")
    assert store.has_users() is True


def test_list_users_ordered_by_id(store, add_user):
    first = add_user("zed@example.com")
    second = add_user("amy@example.com")
    assert [u.id for u in store.list_users()] == [first.id, second.id]


def test_count_active_admins(store, add_user):
    add_user("admin1@example.com", roles=[ROLE_ADMIN])
    add_user("admin2@example.com", roles=[ROLE_ADMIN], status=AccountStatus.suspended)
    add_user("user@example.com")
    assert store.count_active_admins() == 1


class TestUpdate:
    def test_update_fields(self, store, add_user):
        alice = add_user("alice@example.com")
        assert store.update_user(
            alice.id,
            email="New@Example.com",
            first_name="Al",
            roles=[ROLE_ADMIN],
            account_status="banned",
        )
        user = store.get_by_id(alice.id)
        assert user.email == "new@example.com"
        assert user.first_name == "Al"
        assert user.is_admin
        assert user.account_status is AccountStatus.banned

    def test_update_stamps_updated_at(self, store, add_user):
        alice = add_user("alice@example.com")
        store.update_user(alice.id, first_name="Al")
        assert store.get_by_id(alice.id).updated_at >= alice.updated_at

    def test_update_missing_user(self, store):
        assert store.update_user(999, first_name="x") is False

    def test_update_unknown_field_rejected(self, store, add_user):
        alice = add_user("alice@example.com")
        with pytest.raises(ValueError):
            store.update_user(alice.id, id=5)

    def test_update_to_taken_email(self, store, add_user):
        add_user("alice@example.com")
        bob = add_user("bob@example.com")
        with pytest.raises(IntegrityError):
            store.update_user(bob.id, email="alice@example.com")

    def test_update_invalid_status(self, store, add_user):
        alice = add_user("alice@example.com")
        with pytest.raises(ValueError):
            store.update_user(alice.id, account_status="deleted")


def test_delete_user(store, add_user):
    alice = add_user("alice@example.com")
    assert store.delete_user(alice.id) is True
    assert store.get_by_id(alice.id) is None
    assert store.delete_user(alice.id) is False


def test_ping(store):
    assert store.ping() is True
