"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). The store owns
persistence, the gate owns authorization decisions, routes do the wiring.

Layer rule: no imports from api/, web/, core/ or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

ROLE_USER = "ROLE_USER"
ROLE_ADMIN = "ROLE_ADMIN"
KNOWN_ROLES = (ROLE_USER, ROLE_ADMIN)


class AccountStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    banned = "banned"


def normalize_roles(roles) -> list[str]:
    """Return roles deduplicated in canonical order, always including ROLE_USER.

    Unknown role tags are dropped rather than persisted.
    """
    wanted = set(roles or ()) | {ROLE_USER}
    return [r for r in KNOWN_ROLES if r in wanted]


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class User:
    """A UserDesk account. Doubles as the request principal once authenticated.

    password_hash is a bcrypt hash and never leaves the auth/ layer -- API and
    web projections copy the display fields explicitly.
    """

    email: str
    password_hash: str
    id: int | None = None
    first_name: str = ""
    last_name: str = ""
    roles: list[str] = field(default_factory=lambda: [ROLE_USER])
    account_status: AccountStatus = AccountStatus.active
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.active

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email
