"""
api/routes/auth.py -- Login, identity and logout for API clients.

Routes:
  POST /api/login   -- password login; returns a bearer token and sets the session cookie
  GET  /api/me      -- current user (bearer token or session cookie)
  POST /api/logout  -- destroys the session, clears the cookie; always 200

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  check_credentials() runs bcrypt even for unknown emails -- use the
    authenticator, never inline get_by_email() + verify_password().
  Unknown email, wrong password and (unless DISCLOSE_ACCOUNT_DISABLED) a
    disabled account all produce the same 401 body.
  Cache-Control: no-store on login responses -- they carry a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, LoginResponse, MessageResponse, UserProjection
from auth.dependencies import get_current_user
from auth.errors import GENERIC_LOGIN_FAILURE, AuthenticationError, public_failure
from auth.models import User
from auth.sessions import SESSION_COOKIE, SessionAuthenticator, clear_session_cookie, set_session_cookie
from auth.tokens import BearerTokenAuthenticator
from core.limiter import LOGIN_RATE_LIMIT, limiter

logger = logging.getLogger("userdesk.api")

# Auth policy:
# - POST /api/login:   public -- login endpoint must be unauthenticated
# - POST /api/logout:  public -- ending a session needs no prior auth
# - GET  /api/me:      requires auth (get_current_user)
router = APIRouter()


@limiter.limit(LOGIN_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    On success the response carries both credentials: a bearer token in the
    body for API clients and the session cookie for browsers.

    Failures return 401 with the shared error envelope, so "error" is an
    object ({"code": "invalid_credentials", "message": "Invalid credentials."})
    rather than a bare message string.
    """
    session_auth: SessionAuthenticator = request.app.state.session_auth
    token_auth: BearerTokenAuthenticator = request.app.state.token_auth

    try:
        session_id, user = session_auth.login(body.email, body.password)
    except AuthenticationError as exc:
        code, message = public_failure(exc, GENERIC_LOGIN_FAILURE, session_auth.disclose_account_disabled)
        resp = JSONResponse(status_code=401, content={"error": {"code": code, "message": message}})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    logger.info("API login succeeded for user %d", user.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token_auth.issue(user.id),
            user=UserProjection.from_user(user),
        ).model_dump(by_alias=True),
    )
    set_session_cookie(resp, session_id, session_auth.max_age)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/me", response_model=UserProjection, response_model_by_alias=True)
def me(current_user: User = Depends(get_current_user)) -> UserProjection:
    """Return the public projection of the authenticated user."""
    return UserProjection.from_user(current_user)


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Destroy the server-side session and clear the cookie.

    Succeeds whether or not a session existed. Bearer tokens cannot be
    revoked; they simply age out.
    """
    session_auth: SessionAuthenticator = request.app.state.session_auth
    session_auth.logout(request.cookies.get(SESSION_COOKIE))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    return resp
