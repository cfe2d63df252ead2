"""
auth/accounts.py -- User account operations shared by the web UI and the API.

Every operation that acts on behalf of a principal goes through
auth.gate.authorize() before touching the store. Missing targets raise
UserNotFound (callers map that to 404) for admins and Forbidden for everyone
else.

register() is the only path without a principal. It ignores any role or
status the client might have sent: new accounts are always
[ROLE_USER] / active.

Layer rule: no imports from api/, web/ or notify/.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from auth.errors import UserNotFound, ValidationFailed
from auth.gate import Action, authorize, check_password_change
from auth.models import ROLE_ADMIN, ROLE_USER, AccountStatus, User, normalize_email
from auth.passwords import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, hash_password
from auth.store import UserStore

logger = logging.getLogger("userdesk.auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_EMAIL_MAX_LEN = 180
_NAME_MAX_LEN = 255


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def validate_email(email: str) -> str:
    email = normalize_email(email or "")
    if not email:
        raise ValidationFailed("Please enter an email address.", field="email")
    if len(email) > _EMAIL_MAX_LEN or not _EMAIL_RE.match(email):
        raise ValidationFailed("Please enter a valid email address.", field="email")
    return email


def validate_password(password: str, field: str = "password") -> str:
    if not password:
        raise ValidationFailed("Please enter a password.", field=field)
    if len(password) < PASSWORD_MIN_LEN:
        raise ValidationFailed(f"The password must contain at least {PASSWORD_MIN_LEN} characters.", field=field)
    if len(password) > PASSWORD_MAX_LEN:
        raise ValidationFailed("The password is too long.", field=field)
    return password


def _clean_name(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if len(value) > _NAME_MAX_LEN:
        raise ValidationFailed("This value is too long.", field=field)
    return value


def _load_target(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return user


def _load_authorized(store: UserStore, principal: User, user_id: int, action: Action) -> User:
    """Load the target and run the gate. A missing target is Forbidden for
    non-admins, so ids of other accounts cannot be probed for existence."""
    target = store.get_by_id(user_id)
    authorize(principal, target, action)
    if target is None:
        raise UserNotFound()
    return target


def _parse_status(value: AccountStatus | str) -> AccountStatus:
    try:
        return AccountStatus(value)
    except ValueError as exc:
        raise ValidationFailed("Unknown account status.", field="account_status") from exc


def _insert(store: UserStore, user: User) -> User:
    try:
        user_id = store.create_user(user)
    except IntegrityError as exc:
        raise ValidationFailed("This email address is already in use.", field="email") from exc
    return _load_target(store, user_id)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def register(
    store: UserStore,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Self-registration. Always creates an active ROLE_USER account."""
    email = validate_email(email)
    validate_password(password)
    if store.get_by_email(email) is not None:
        raise ValidationFailed("This email address is already in use.", field="email")

    user = _insert(
        store,
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=_clean_name(first_name, "first_name"),
            last_name=_clean_name(last_name, "last_name"),
            roles=[ROLE_USER],
            account_status=AccountStatus.active,
        ),
    )
    logger.info("User registered: id=%d email=%s", user.id, user.email)
    return user


def create_user(
    store: UserStore,
    principal: User,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    roles: list[str] | None = None,
    account_status: AccountStatus | str = AccountStatus.active,
) -> User:
    """Admin-initiated creation with explicit roles and status."""
    authorize(principal, None, Action.create_user)
    email = validate_email(email)
    validate_password(password)

    user = _insert(
        store,
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=_clean_name(first_name, "first_name"),
            last_name=_clean_name(last_name, "last_name"),
            roles=list(roles or [ROLE_USER]),
            account_status=_parse_status(account_status),
        ),
    )
    logger.info("User created by admin %d: id=%d email=%s", principal.id, user.id, user.email)
    return user


def get_user(store: UserStore, principal: User, user_id: int) -> User:
    target = _load_authorized(store, principal, user_id, Action.view)
    return target


def list_users(store: UserStore, principal: User) -> list[User]:
    authorize(principal, None, Action.list_all)
    return store.list_users()


def update_profile(
    store: UserStore,
    principal: User,
    user_id: int,
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
    roles: list[str] | None = None,
    account_status: AccountStatus | str | None = None,
) -> User:
    """Edit a profile. roles/account_status are applied for admins only.

    Non-admins editing their own profile may submit role or status fields;
    they are ignored rather than rejected. An admin editing their own profile
    cannot drop ROLE_ADMIN or leave the active status.
    """
    target = _load_authorized(store, principal, user_id, Action.edit)

    fields: dict = {
        "email": validate_email(email),
        "first_name": _clean_name(first_name, "first_name"),
        "last_name": _clean_name(last_name, "last_name"),
    }
    if principal.is_admin:
        if roles is not None:
            fields["roles"] = roles
        if account_status is not None:
            fields["account_status"] = _parse_status(account_status)
        if target.id == principal.id:
            # Same lock-out guard as toggle_status() and delete_user().
            if ROLE_ADMIN not in fields.get("roles", [ROLE_ADMIN]):
                raise ValidationFailed("You cannot remove your own admin role.", field="roles")
            if fields.get("account_status", AccountStatus.active) is not AccountStatus.active:
                raise ValidationFailed("You cannot deactivate your own account.", field="account_status")

    try:
        store.update_user(target.id, **fields)
    except IntegrityError as exc:
        raise ValidationFailed("This email address is already in use.", field="email") from exc
    logger.info("User %d updated by %d", target.id, principal.id)
    return _load_target(store, target.id)


def change_password(
    store: UserStore,
    principal: User,
    user_id: int,
    current_password: str | None,
    new_password: str,
    confirm_password: str,
) -> User:
    target = store.get_by_id(user_id)
    if target is None:
        authorize(principal, None, Action.change_password)
        raise UserNotFound()
    # check_password_change() runs the gate after the confirm-mismatch check.
    check_password_change(principal, target, current_password, new_password, confirm_password)
    validate_password(new_password, field="new_password")

    store.update_user(target.id, password_hash=hash_password(new_password))
    logger.info("Password changed for user %d by %d", target.id, principal.id)
    return _load_target(store, target.id)


def toggle_status(store: UserStore, principal: User, user_id: int) -> User:
    """Flip an account between active and suspended.

    suspended and banned accounts both come back as active.
    """
    target = _load_authorized(store, principal, user_id, Action.toggle_status)
    if target.id == principal.id:
        raise ValidationFailed("You cannot change the status of your own account.")

    new_status = AccountStatus.suspended if target.is_active else AccountStatus.active
    store.update_user(target.id, account_status=new_status)
    logger.info("User %d status set to %s by %d", target.id, new_status.value, principal.id)
    return _load_target(store, target.id)


def delete_user(store: UserStore, principal: User, user_id: int) -> None:
    target = _load_authorized(store, principal, user_id, Action.delete)
    if target.id == principal.id:
        raise ValidationFailed("You cannot delete your own account.")

    store.delete_user(target.id)
    logger.info("User %d (%s) deleted by %d", target.id, target.email, principal.id)
