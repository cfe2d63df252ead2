"""
web/routes.py -- Jinja2 template routes for the UserDesk web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, session authenticator, mail queue) but return HTML
instead of JSON, and they only ever authenticate with the session cookie.

Route registration order matters. GET /users/new must be registered before
GET /users/{user_id}; the int converter would reject "new" anyway, but the
explicit order keeps the intent obvious.

Routes:
  GET  /                               -- redirect to the landing page or /login
  GET  /login                          -- login form
  POST /login                          -- handle password login (rate-limited)
  GET  /logout, POST /logout           -- destroy session, redirect /login
  GET  /register                       -- self-registration form
  POST /register                       -- create account, queue welcome email
  GET  /users                          -- user list (admin)
  GET  /users/new, POST /users/new     -- admin user creation
  GET  /users/{id}                     -- profile (self or admin)
  GET  /users/{id}/edit, POST          -- profile edit (self or admin)
  GET  /users/{id}/change-password, POST
  POST /users/{id}/delete              -- admin only
  POST /users/{id}/toggle-status       -- admin only

Authorization is never decided here. Every route passes the session user to
auth.accounts, which calls the gate; this module only turns Forbidden,
UserNotFound and ValidationFailed into pages.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth import accounts
from auth.dependencies import session_user
from auth.errors import (
    GENERIC_LOGIN_FAILURE,
    AuthenticationError,
    Forbidden,
    UserNotFound,
    ValidationFailed,
    public_failure,
)
from auth.gate import Action, authorize
from auth.models import ROLE_ADMIN, ROLE_USER, AccountStatus, User
from auth.sessions import SESSION_COOKIE, SessionAuthenticator, clear_session_cookie, set_session_cookie
from auth.store import UserStore
from core.config import get_settings
from core.limiter import LOGIN_RATE_LIMIT, limiter
from notify.queue import EmailMessage, MailQueue

logger = logging.getLogger("userdesk.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["account_statuses"] = [s.value for s in AccountStatus]
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?notice= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted query strings.
_NOTICES: dict[str, str] = {
    "registered": "Your account has been created. You can now log in.",
}

_WELCOME_SUBJECT = "Welcome to UserDesk"


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirect attacks where an attacker crafts a URL like:
      /login?next=https://attacker.com  or  /login?next=//attacker.com

    Only paths that start with "/" but not "//" or "/\\" are accepted.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return None


def _landing(user: User) -> str:
    """Where a user goes after login: admins to the list, others to their profile."""
    return "/users" if user.is_admin else f"/users/{user.id}"


def _login_redirect(request: Request) -> RedirectResponse:
    path = request.url.path
    return RedirectResponse(f"/login?next={quote(path)}", status_code=302)


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _render_error(request: Request, user: Optional[User], status_code: int, message: str) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "error.html",
        {"current_user": user, "status_code": status_code, "message": message},
        status_code=status_code,
    )


def _error_page(request: Request, user: Optional[User], exc: Exception) -> HTMLResponse:
    """Render the uniform 403 page or the 404 page for a failed operation."""
    if isinstance(exc, UserNotFound):
        status_code, message = 404, "User not found."
    else:
        # Every denial renders the same page; the reason is only logged.
        logger.info("Forbidden: user %s on %s %s", user.id if user else None, request.method, request.url.path)
        status_code, message = 403, Forbidden.message
    return _render_error(request, user, status_code, message)


def _roles_from_form(is_admin: Optional[str]) -> list[str]:
    return [ROLE_USER, ROLE_ADMIN] if is_admin else [ROLE_USER]


# ---------------------------------------------------------------------------
# Login / logout / registration
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> RedirectResponse:
    user = session_user(request)
    if user is None:
        return RedirectResponse("/login", status_code=302)
    return RedirectResponse(_landing(user), status_code=302)


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page."""
    # Redirect already-authenticated users to their landing page
    user = session_user(request)
    if user is not None:
        return RedirectResponse(_landing(user), status_code=302)

    notice = _NOTICES.get(request.query_params.get("notice", ""))
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "current_user": None,
            "notice": notice,
            "next_url": _safe_next(request.query_params.get("next")),
            "email": "",
            "registration_enabled": get_settings().self_registration_enabled,
        },
    )


@limiter.limit(LOGIN_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("", alias="next"),
) -> HTMLResponse:
    """Handle the login form. 303 to the landing page, or 401 with the form."""
    session_auth: SessionAuthenticator = request.app.state.session_auth
    try:
        session_id, user = session_auth.login(email, password)
    except AuthenticationError as exc:
        _code, message = public_failure(exc, GENERIC_LOGIN_FAILURE, session_auth.disclose_account_disabled)
        resp = templates.TemplateResponse(
            request,
            "login.html",
            {
                "current_user": None,
                "error_msg": message,
                "next_url": _safe_next(next_url),
                "email": email,
                "registration_enabled": get_settings().self_registration_enabled,
            },
            status_code=401,
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    target = _safe_next(next_url) or _landing(user)
    resp = RedirectResponse(target, status_code=303)
    set_session_cookie(resp, session_id, session_auth.max_age)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Destroy the session and redirect to the login page."""
    session_auth: SessionAuthenticator = request.app.state.session_auth
    session_auth.logout(request.cookies.get(SESSION_COOKIE))
    resp = RedirectResponse("/login", status_code=303)
    clear_session_cookie(resp)
    return resp


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    if not get_settings().self_registration_enabled:
        return _render_error(request, None, 404, "Page not found.")
    user = session_user(request)
    if user is not None:
        return RedirectResponse(_landing(user), status_code=302)
    return templates.TemplateResponse(request, "register.html", {"current_user": None, "form": {}})


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
) -> HTMLResponse:
    """Create an active ROLE_USER account and queue the welcome email.

    Mail is fire-and-forget: the redirect is returned whether or not the
    message is ever delivered.
    """
    settings = get_settings()
    if not settings.self_registration_enabled:
        return _render_error(request, None, 404, "Page not found.")

    try:
        user = accounts.register(_store(request), email, password, first_name, last_name)
    except ValidationFailed as exc:
        return templates.TemplateResponse(
            request,
            "register.html",
            {
                "current_user": None,
                "error_msg": exc.message,
                "error_field": exc.field,
                "form": {"email": email, "first_name": first_name, "last_name": last_name},
            },
            status_code=400,
        )

    html_body = templates.get_template("emails/welcome.html").render(user=user)
    mail_queue: MailQueue = request.app.state.mail_queue
    mail_queue.enqueue(
        EmailMessage(sender=settings.mail_from, to=user.email, subject=_WELCOME_SUBJECT, html_body=html_body)
    )
    return RedirectResponse("/login?notice=registered", status_code=303)


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


def _render_index(request: Request, user: User, error_msg: Optional[str] = None, status_code: int = 200):
    users = accounts.list_users(_store(request), user)
    return templates.TemplateResponse(
        request,
        "users/index.html",
        {"current_user": user, "users": users, "error_msg": error_msg},
        status_code=status_code,
    )


@router.get("/users", response_class=HTMLResponse)
def users_index(request: Request) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        return _render_index(request, user)
    except Forbidden as exc:
        return _error_page(request, user, exc)


@router.get("/users/new", response_class=HTMLResponse)
def user_new_form(request: Request) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        authorize(user, None, Action.create_user)
    except Forbidden as exc:
        return _error_page(request, user, exc)
    return templates.TemplateResponse(
        request,
        "users/form.html",
        {"current_user": user, "target": None, "form": {"account_status": AccountStatus.active.value}},
    )


@router.post("/users/new", response_class=HTMLResponse)
def user_new_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    is_admin: Optional[str] = Form(None),
    account_status: str = Form(AccountStatus.active.value),
) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        created = accounts.create_user(
            _store(request),
            user,
            email,
            password,
            first_name=first_name,
            last_name=last_name,
            roles=_roles_from_form(is_admin),
            account_status=account_status,
        )
    except Forbidden as exc:
        return _error_page(request, user, exc)
    except ValidationFailed as exc:
        return templates.TemplateResponse(
            request,
            "users/form.html",
            {
                "current_user": user,
                "target": None,
                "error_msg": exc.message,
                "error_field": exc.field,
                "form": {
                    "email": email,
                    "first_name": first_name,
                    "last_name": last_name,
                    "is_admin": bool(is_admin),
                    "account_status": account_status,
                },
            },
            status_code=400,
        )
    return RedirectResponse(f"/users/{created.id}", status_code=303)


@router.get("/users/{user_id}", response_class=HTMLResponse)
def user_show(request: Request, user_id: int) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        target = accounts.get_user(_store(request), user, user_id)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    return templates.TemplateResponse(request, "users/show.html", {"current_user": user, "target": target})


@router.get("/users/{user_id}/edit", response_class=HTMLResponse)
def user_edit_form(request: Request, user_id: int) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        target = accounts.get_user(_store(request), user, user_id)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    form = {
        "email": target.email,
        "first_name": target.first_name,
        "last_name": target.last_name,
        "is_admin": target.is_admin,
        "account_status": target.account_status.value,
    }
    return templates.TemplateResponse(
        request, "users/form.html", {"current_user": user, "target": target, "form": form}
    )


@router.post("/users/{user_id}/edit", response_class=HTMLResponse)
def user_edit_post(
    request: Request,
    user_id: int,
    email: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    is_admin: Optional[str] = Form(None),
    account_status: Optional[str] = Form(None),
) -> HTMLResponse:
    """Save a profile. Role and status fields only take effect for admins."""
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    store = _store(request)
    try:
        updated = accounts.update_profile(
            store,
            user,
            user_id,
            email,
            first_name=first_name,
            last_name=last_name,
            roles=_roles_from_form(is_admin) if user.is_admin else None,
            account_status=account_status if user.is_admin else None,
        )
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    except ValidationFailed as exc:
        return templates.TemplateResponse(
            request,
            "users/form.html",
            {
                "current_user": user,
                "target": store.get_by_id(user_id),
                "error_msg": exc.message,
                "error_field": exc.field,
                "form": {
                    "email": email,
                    "first_name": first_name,
                    "last_name": last_name,
                    "is_admin": bool(is_admin),
                    "account_status": account_status,
                },
            },
            status_code=400,
        )
    return RedirectResponse(f"/users/{updated.id}", status_code=303)


@router.get("/users/{user_id}/change-password", response_class=HTMLResponse)
def change_password_form(request: Request, user_id: int) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        target = accounts.get_user(_store(request), user, user_id)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    return templates.TemplateResponse(
        request,
        "users/change_password.html",
        {"current_user": user, "target": target, "needs_current": target.id == user.id},
    )


@router.post("/users/{user_id}/change-password", response_class=HTMLResponse)
def change_password_post(
    request: Request,
    user_id: int,
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    store = _store(request)
    try:
        accounts.change_password(store, user, user_id, current_password or None, new_password, confirm_password)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    except ValidationFailed as exc:
        return templates.TemplateResponse(
            request,
            "users/change_password.html",
            {
                "current_user": user,
                "target": store.get_by_id(user_id),
                "needs_current": user_id == user.id,
                "error_msg": exc.message,
                "error_field": exc.field,
            },
            status_code=400,
        )
    return RedirectResponse(f"/users/{user_id}", status_code=303)


@router.post("/users/{user_id}/delete", response_class=HTMLResponse)
def user_delete(request: Request, user_id: int) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        accounts.delete_user(_store(request), user, user_id)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    except ValidationFailed as exc:
        return _render_index(request, user, exc.message, status_code=400)
    return RedirectResponse("/users", status_code=303)


@router.post("/users/{user_id}/toggle-status", response_class=HTMLResponse)
def user_toggle_status(request: Request, user_id: int) -> HTMLResponse:
    user = session_user(request)
    if user is None:
        return _login_redirect(request)
    try:
        accounts.toggle_status(_store(request), user, user_id)
    except (Forbidden, UserNotFound) as exc:
        return _error_page(request, user, exc)
    except ValidationFailed as exc:
        return _render_index(request, user, exc.message, status_code=400)
    return RedirectResponse("/users", status_code=303)
