"""
api/main.py -- FastAPI application entry point for UserDesk.

Exposes the auth core over HTTP: JSON login/identity endpoints for API
clients, an admin user listing and a health probe. The HTML pages live in
web/routes.py and are mounted by asgi.py.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from core.limiter

Lifespan handles startup (user store, session store, authenticators, mail
queue) and shutdown (stop mail worker, close DB connection) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthChecks, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.dependencies import get_current_user
from auth.errors import Forbidden, UserNotFound, ValidationFailed
from auth.models import User
from auth.sessions import DatabaseSessionStore, MemorySessionStore, SessionAuthenticator
from auth.store import UserStore
from auth.tokens import BearerTokenAuthenticator
from core.config import get_settings
from core.limiter import limiter
from notify.queue import LogMailer, MailQueue

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userdesk.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.

    Startup order matters:
      1. User store first -- both authenticators and the database session
         backend are built on it.
      2. Session store and authenticators second.
      3. Mail queue last -- its worker task needs the running event loop.
    """
    logger.info("UserDesk API starting up")
    user_store = UserStore(settings.database_url)
    app.state.user_store = user_store

    if settings.session_backend == "database":
        sessions = DatabaseSessionStore(user_store.engine)
        purged = sessions.purge_expired()
        if purged:
            logger.info("Purged %d expired sessions", purged)
    else:
        sessions = MemorySessionStore()
    app.state.session_auth = SessionAuthenticator(
        user_store,
        sessions,
        max_age=settings.session_max_age,
        disclose_account_disabled=settings.disclose_account_disabled,
    )
    app.state.token_auth = BearerTokenAuthenticator(user_store, settings.secret_key)
    logger.info(
        "Auth initialized (session_backend=%s, users=%s)",
        settings.session_backend,
        user_store.has_users(),
    )
    if user_store.count_active_admins() == 0:
        logger.warning("No active admin account. Create one with: python main.py create-user EMAIL PASSWORD --admin")

    app.state.mail_queue = MailQueue(LogMailer())
    app.state.mail_queue.start()
    logger.info("Mail queue started")

    yield

    await app.state.mail_queue.stop()
    user_store.close()
    logger.info("UserDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="UserDesk API",
    description="User registration, session login, bearer tokens and account administration.",
    version="0.1.0",
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by auth-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Only method, path, status, latency and client address are
# recorded -- never headers, cookies or bodies.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="UserDesk API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="UserDesk API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# Web routes catch the auth errors themselves and render HTML, so the auth
# handlers below only ever fire for /api routes.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    client_host = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded on %s from %s", request.url.path, client_host)
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
    """Every authorization denial looks the same from outside."""
    logger.info("Forbidden: %s %s", request.method, request.url.path)
    return _error(403, Forbidden.code, Forbidden.message)


@app.exception_handler(UserNotFound)
async def not_found_handler(request: Request, exc: UserNotFound) -> JSONResponse:
    return _error(404, "not_found", "User not found.")


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    return _error(400, exc.code, exc.message, exc.field)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it -- str(dict) produces a Python repr,
    not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Report database reachability. 200 when healthy, 503 otherwise."""
    user_store: UserStore = request.app.state.user_store
    database_ok = user_store.ping()
    if not database_ok:
        logger.error("Health check failed: database unreachable")
    body = HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        checks=HealthChecks(database=database_ok, app=True),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    return JSONResponse(status_code=200 if database_ok else 503, content=body.model_dump())
