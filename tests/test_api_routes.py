"""
tests/test_api_routes.py -- Integration tests for the JSON API.

Covers:
  - POST /api/login: token + user projection, session cookie, no-store,
    uniform 401 for every failure
  - GET /api/me: bearer token and session cookie paths, 401 envelope
  - POST /api/logout: always 200, session destroyed
  - GET /api/users: admin listing, 403 for users
  - /docs requires authentication
"""

from __future__ import annotations

import base64

import pytest

from auth.models import AccountStatus

GENERIC_LOGIN = {"code": "invalid_credentials", "message": "Invalid credentials."}
GENERIC_TOKEN = {"code": "invalid_token", "message": "Invalid or expired token."}


class TestApiLogin:
    def test_login_returns_token_and_projection(self, env):
        resp = env.client.post("/api/login", json={"email": "user@example.com", "password": "user-pass-123"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"] == {
            "id": env.user.id,
            "email": "user@example.com",
            "firstName": "John",
            "lastName": "Doe",
            "roles": ["ROLE_USER"],
        }
        uid, _ts, digest = base64.b64decode(data["token"]).decode().split(":")
        assert uid == str(env.user.id)
        assert len(digest) == 64
        assert resp.headers["cache-control"] == "no-store"
        assert "session_id" in resp.cookies

    def test_login_response_never_contains_hash(self, env):
        resp = env.client.post("/api/login", json={"email": "user@example.com", "password": "user-pass-123"})
        assert "password" not in resp.text
        assert "$2b$" not in resp.text

    def test_issued_token_authenticates(self, env):
        token = env.client.post(
            "/api/login", json={"email": "user@example.com", "password": "user-pass-123"}
        ).json()["token"]
        env.client.cookies.clear()
        resp = env.client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "user@example.com"

    @pytest.mark.parametrize(
        "email, password",
        [
            ("user@example.com", "wrong-password"),
            ("nobody@example.com", "user-pass-123"),
        ],
    )
    def test_failures_are_indistinguishable(self, env, email, password):
        resp = env.client.post("/api/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json() == {"error": GENERIC_LOGIN}
        assert resp.headers["cache-control"] == "no-store"
        assert "session_id" not in resp.cookies

    def test_suspended_account_gets_generic_failure(self, env):
        env.store.update_user(env.user.id, account_status=AccountStatus.suspended)
        resp = env.client.post("/api/login", json={"email": "user@example.com", "password": "user-pass-123"})
        assert resp.status_code == 401
        assert resp.json() == {"error": GENERIC_LOGIN}

    def test_missing_fields_rejected(self, env):
        resp = env.client.post("/api/login", json={"email": "user@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestApiMe:
    def test_me_with_bearer_token(self, env):
        resp = env.client.get("/api/me", headers=env.bearer(env.admin))
        assert resp.status_code == 200
        assert resp.json()["roles"] == ["ROLE_USER", "ROLE_ADMIN"]

    def test_me_with_session_cookie(self, env):
        env.login_user()
        resp = env.client.get("/api/me")
        assert resp.status_code == 200
        assert resp.json()["id"] == env.user.id

    def test_me_unauthenticated(self, env):
        resp = env.client.get("/api/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    @pytest.mark.parametrize(
        "header",
        ["Bearer", "Bearer not-base64!!", "Bearer " + base64.b64encode(b"1:2").decode()],
    )
    def test_me_bad_token(self, env, header):
        resp = env.client.get("/api/me", headers={"Authorization": header})
        assert resp.status_code == 401
        assert resp.json() == {"error": GENERIC_TOKEN}
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_bad_bearer_wins_over_valid_session(self, env):
        env.login_user()
        resp = env.client.get("/api/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_token_for_suspended_user_is_generic(self, env):
        headers = env.bearer(env.user)
        env.store.update_user(env.user.id, account_status=AccountStatus.suspended)
        resp = env.client.get("/api/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": GENERIC_TOKEN}

    def test_token_for_deleted_user(self, env):
        headers = env.bearer(env.other)
        env.store.delete_user(env.other.id)
        resp = env.client.get("/api/me", headers=headers)
        assert resp.status_code == 401


class TestApiLogout:
    def test_logout_destroys_session(self, env):
        env.login_user()
        assert env.client.get("/api/me").status_code == 200
        resp = env.client.post("/api/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}
        assert env.client.get("/api/me").status_code == 401

    def test_logout_without_session(self, env):
        assert env.client.post("/api/logout").status_code == 200


class TestApiUsers:
    def test_admin_lists_users(self, env):
        resp = env.client.get("/api/users", headers=env.bearer(env.admin))
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["email"] for r in rows] == ["admin@example.com", "user@example.com", "other@example.com"]
        first = rows[0]
        assert set(first) == {
            "id",
            "email",
            "firstName",
            "lastName",
            "roles",
            "accountStatus",
            "isActive",
            "createdAt",
            "updatedAt",
        }
        assert first["accountStatus"] == "active"
        assert first["isActive"] is True

    def test_user_gets_uniform_403(self, env):
        resp = env.client.get("/api/users", headers=env.bearer(env.user))
        assert resp.status_code == 403
        assert resp.json() == {"error": {"code": "forbidden", "message": "Access denied."}}

    def test_unauthenticated_gets_401(self, env):
        assert env.client.get("/api/users").status_code == 401


def test_docs_require_authentication(env):
    assert env.client.get("/docs").status_code == 401
    assert env.client.get("/docs", headers=env.bearer(env.user)).status_code == 200
