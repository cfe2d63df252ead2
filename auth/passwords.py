"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.
Direct usage has no compatibility shim.

bcrypt only reads the first 72 bytes of its input and newer releases refuse
longer input outright, so both hash and verify truncate to 72 bytes. The
length policy (8..4096 chars) is enforced by auth/accounts.py.

The cost factor comes from Settings.bcrypt_rounds (tests lower it to 4).

Layer rule: no imports from api/, web/ or notify/.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 4096

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Callers verify against it when the email does
# not exist so unknown-email and wrong-password take the same time.
DUMMY_HASH: str = hash_password("userdesk_timing_dummy")
