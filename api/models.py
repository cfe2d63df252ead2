"""
API request and response models for UserDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two,
and password hashes never appear in any model here.

JSON field names follow the public contract (camelCase: firstName,
accountStatus, ...); Python attributes stay snake_case via aliases.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=180)
    # Not stripped by the validator above: whitespace is significant in passwords.
    password: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserProjection(BaseModel):
    """Public view of a user -- the shape returned by /api/login and /api/me."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    email: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    roles: list[str]

    @classmethod
    def from_user(cls, user: User) -> "UserProjection":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            roles=list(user.roles),
        )


class UserListItem(UserProjection):
    """One row in GET /api/users (admin only)."""

    account_status: str = Field(alias="accountStatus")
    is_active: bool = Field(alias="isActive")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_user(cls, user: User) -> "UserListItem":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            roles=list(user.roles),
            account_status=user.account_status.value,
            is_active=user.is_active,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class LoginResponse(BaseModel):
    """Response for POST /api/login: a bearer token and the user it names."""

    model_config = ConfigDict(frozen=True)

    token: str
    user: UserProjection


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthChecks(BaseModel):
    model_config = ConfigDict(frozen=True)

    database: bool
    app: bool


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str
    checks: HealthChecks
    timestamp: str
