"""
auth/gate.py -- The single place that decides who may do what to whom.

decide() is a pure function of (principal, target, action): no I/O, no
request, no store. Routes and account operations call authorize(), which
raises Forbidden on deny. Every denial is the same Forbidden -- callers
must not tell the user *why* access was refused.

Rules:
  delete, toggle_status, list_all, create_user -> ROLE_ADMIN only
  view, edit, change_password                  -> self or ROLE_ADMIN

check_password_change() layers the password-form rules on top:
  1. new != confirm is always ValidationFailed, whoever is asking.
  2. The role/ownership rule above.
  3. On the self-service path (principal is the target, admins included)
     the current password must be supplied and must verify. An admin
     resetting someone else's password skips this step.
"""

from __future__ import annotations

from enum import Enum

from auth.errors import Forbidden, ValidationFailed
from auth.models import User
from auth.passwords import verify_password


class Action(str, Enum):
    view = "view"
    edit = "edit"
    change_password = "change_password"
    delete = "delete"
    toggle_status = "toggle_status"
    list_all = "list_all"
    create_user = "create_user"


class Decision(str, Enum):
    allow = "allow"
    forbidden = "forbidden"


_ADMIN_ONLY = {Action.delete, Action.toggle_status, Action.list_all, Action.create_user}
_SELF_OR_ADMIN = {Action.view, Action.edit, Action.change_password}


def decide(principal: User | None, target: User | None, action: Action) -> Decision:
    if principal is None:
        return Decision.forbidden
    if principal.is_admin:
        return Decision.allow
    if action in _ADMIN_ONLY:
        return Decision.forbidden
    if action in _SELF_OR_ADMIN and target is not None and principal.id is not None and principal.id == target.id:
        return Decision.allow
    return Decision.forbidden


def authorize(principal: User | None, target: User | None, action: Action) -> None:
    """Raise Forbidden unless decide() allows the action."""
    if decide(principal, target, action) is not Decision.allow:
        raise Forbidden()


def check_password_change(
    principal: User,
    target: User,
    current_password: str | None,
    new_password: str,
    confirm_password: str,
) -> None:
    """Validate a password change request. Raises ValidationFailed or Forbidden."""
    if new_password != confirm_password:
        raise ValidationFailed("The passwords do not match.", field="confirm_password")

    authorize(principal, target, Action.change_password)

    if principal.id == target.id:
        if not current_password:
            raise ValidationFailed("Please enter your current password.", field="current_password")
        if not verify_password(current_password, target.password_hash):
            raise ValidationFailed("The current password is incorrect.", field="current_password")
