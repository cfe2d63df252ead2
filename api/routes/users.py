"""
api/routes/users.py -- Read-only user listing for admin API clients.

Routes:
  GET /api/users -- every account with status and timestamps (admin only)

The role check is not a dependency here: accounts.list_users() goes through
the authorization gate and raises Forbidden, which api/main.py maps to 403.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import UserListItem
from auth import accounts
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore

router = APIRouter()


@router.get("/users", response_model=list[UserListItem], response_model_by_alias=True)
def list_users(request: Request, current_user: User = Depends(get_current_user)) -> list[UserListItem]:
    """List all user accounts ordered by id. Admin only."""
    user_store: UserStore = request.app.state.user_store
    return [UserListItem.from_user(u) for u in accounts.list_users(user_store, current_user)]
