"""
auth/tokens.py -- Stateless bearer tokens for API clients.

Token format:
  base64( "<user_id>:<issued_at>:<hash>" )
  hash = hex(HMAC-SHA256(secret_key, "<user_id>:<issued_at>"))

issued_at is unix seconds. A token is accepted while now - issued_at is at
most TOKEN_TTL_SECONDS (24h, fixed, not configurable per token).

The secret is injected at construction; app startup passes
Settings.secret_key. Nothing about issued tokens is stored server-side.

Known limitations, accepted as-is:
  - No revocation: a leaked token stays valid until it expires. Suspending
    or deleting the account is the only kill switch (checked on every use).
  - No key rotation, audience or scope binding.
  - No replay defense beyond the 24h window.

Verification order (each step raises its own AuthenticationError subclass):
  EmptyToken -> InvalidEncoding -> InvalidStructure -> TokenExpired ->
  InvalidSignature -> UserNotFound -> AccountDisabled

Layer rule: no imports from api/, web/ or notify/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import time

from auth.errors import (
    AccountDisabled,
    EmptyToken,
    InvalidEncoding,
    InvalidSignature,
    InvalidStructure,
    TokenExpired,
    UserNotFound,
)
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("userdesk.auth")

TOKEN_TTL_SECONDS = 24 * 3600

_SCHEME = "bearer "


def strip_bearer(credential: str) -> str:
    """Remove a case-insensitive "Bearer " prefix and surrounding whitespace."""
    credential = credential.strip()
    if credential[: len(_SCHEME)].lower() == _SCHEME:
        credential = credential[len(_SCHEME) :]
    elif credential.lower() == _SCHEME.strip():
        credential = ""
    return credential.strip()


class BearerTokenAuthenticator:
    """Issues and verifies HMAC-signed, time-limited bearer tokens."""

    def __init__(self, store: UserStore, secret_key: str, ttl: int = TOKEN_TTL_SECONDS, clock=time.time) -> None:
        if not secret_key:
            raise ValueError("secret_key must be non-empty")
        self.store = store
        self._key = secret_key.encode("utf-8")
        self.ttl = ttl
        self._clock = clock

    @staticmethod
    def supports(authorization_header: str | None) -> bool:
        """True if the Authorization header uses the bearer scheme."""
        if not authorization_header:
            return False
        header = authorization_header.strip().lower()
        return header == _SCHEME.strip() or header.startswith(_SCHEME)

    def sign(self, user_id: int | str, issued_at: int | str) -> str:
        message = f"{user_id}:{issued_at}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def issue(self, user_id: int, issued_at: int | None = None) -> str:
        """Return a new token for user_id, stamped with issued_at (default: now)."""
        if issued_at is None:
            issued_at = int(self._clock())
        raw = f"{user_id}:{issued_at}:{self.sign(user_id, issued_at)}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def verify(self, credential: str | None, now: float | None = None) -> User:
        """Verify a bearer credential and return the active User it names.

        credential may include the "Bearer " prefix. Raises a subclass of
        AuthenticationError on any failure.
        """
        token = strip_bearer(credential or "")
        if not token:
            raise EmptyToken()

        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, ValueError):
            raise InvalidEncoding()

        parts = decoded.split(":")
        if len(parts) != 3:
            raise InvalidStructure()
        user_id, timestamp, supplied_hash = parts
        try:
            issued_at = int(timestamp)
        except ValueError:
            raise InvalidStructure()

        current = self._clock() if now is None else now
        if current - issued_at > self.ttl:
            raise TokenExpired()

        expected = self.sign(user_id, timestamp)
        if not hmac.compare_digest(expected.encode("utf-8"), supplied_hash.encode("utf-8")):
            logger.warning("Bearer token rejected: signature mismatch")
            raise InvalidSignature()

        user = self._load_user(user_id)
        if user is None:
            raise UserNotFound()
        if not user.is_active:
            logger.info("Bearer token rejected: user %d is %s", user.id, user.account_status.value)
            raise AccountDisabled()
        return user

    def _load_user(self, user_id: str) -> User | None:
        try:
            return self.store.get_by_id(int(user_id))
        except ValueError:
            return None
