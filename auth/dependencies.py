"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credential carriers, checked in this order:
  1. Authorization: Bearer <token> header -- API clients. When the header is
     present it is authoritative: an invalid token is a 401 even if the
     request also carries a valid session cookie.
  2. "session_id" cookie -- set by the web and API login flows.

Both converge on a User object after successful verification. The
authenticators live on app.state (wired in api/main.py lifespan).

session_user() resolves the cookie only and returns None when it is not valid.
get_current_user() raises HTTP 401 if unauthenticated. Role checks are not
done here: they belong to auth.gate, called by the operation itself.

Layer rule: no imports from web/ or notify/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import GENERIC_TOKEN_FAILURE, AuthenticationError, public_failure
from auth.models import User
from auth.sessions import SESSION_COOKIE, SessionAuthenticator
from auth.tokens import BearerTokenAuthenticator
from core.config import get_settings

logger = logging.getLogger("userdesk.auth")


def session_user(request: Request) -> User | None:
    """Resolve the session cookie only. Used by the web UI."""
    session_auth: SessionAuthenticator = request.app.state.session_auth
    return session_auth.resolve(request.cookies.get(SESSION_COOKIE))


def _authenticate(request: Request) -> User | None:
    header = request.headers.get("Authorization")
    token_auth: BearerTokenAuthenticator = request.app.state.token_auth
    if token_auth.supports(header):
        return token_auth.verify(header)
    return session_user(request)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    try:
        user = _authenticate(request)
    except AuthenticationError as exc:
        logger.info("Bearer authentication failed on %s: %s", request.url.path, exc.code)
        code, message = public_failure(exc, GENERIC_TOKEN_FAILURE, get_settings().disclose_account_disabled)
        raise HTTPException(
            status_code=401,
            detail={"code": code, "message": message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

