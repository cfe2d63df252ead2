"""
auth/errors.py -- Failure taxonomy for authentication and authorization.

Every failure the auth layer can produce is a subclass of AuthError carrying
a machine-readable code and a human-readable message. Routes translate them
into HTTP responses:

  AuthenticationError  -> 401 (message passed through public_failure())
  Forbidden            -> 403, always the same body
  ValidationFailed     -> re-rendered form (web) or 400 (api)
  UserNotFound raised by account operations on a missing target -> 404

The precise kind is for logs and tests. What callers see is decided by
public_failure() so "unknown email", "wrong password" and (by default)
"disabled account" are indistinguishable from outside.

Layer rule: no imports from api/, web/, core/ or notify/.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Authentication (401)
# ---------------------------------------------------------------------------


class AuthenticationError(AuthError):
    code = "unauthorized"
    message = "Authentication required."


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    message = "Invalid credentials."


class AccountDisabled(AuthenticationError):
    code = "account_disabled"
    message = "Account is disabled."


class EmptyToken(AuthenticationError):
    code = "empty_token"
    message = "Empty token provided."


class InvalidEncoding(AuthenticationError):
    code = "invalid_encoding"
    message = "Invalid token encoding."


class InvalidStructure(AuthenticationError):
    code = "invalid_structure"
    message = "Invalid token structure."


class TokenExpired(AuthenticationError):
    code = "token_expired"
    message = "Token has expired."


class InvalidSignature(AuthenticationError):
    code = "invalid_signature"
    message = "Invalid token signature."


class UserNotFound(AuthenticationError):
    code = "user_not_found"
    message = "User not found."


# ---------------------------------------------------------------------------
# Authorization (403) and validation
# ---------------------------------------------------------------------------


class Forbidden(AuthError):
    code = "forbidden"
    message = "Access denied."


class ValidationFailed(AuthError):
    """Form-level rejection. field names the offending input when there is one."""

    code = "validation_failed"
    message = "Validation failed."

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


# ---------------------------------------------------------------------------
# Public mapping
# ---------------------------------------------------------------------------

GENERIC_LOGIN_FAILURE = (InvalidCredentials.code, InvalidCredentials.message)
GENERIC_TOKEN_FAILURE = ("invalid_token", "Invalid or expired token.")


def public_failure(
    exc: AuthenticationError,
    generic: tuple[str, str],
    disclose_account_disabled: bool = False,
) -> tuple[str, str]:
    """Return the (code, message) a caller is allowed to see for exc.

    Everything collapses to the generic pair for the path (password login or
    bearer token) except AccountDisabled, which is reported as such only when
    disclose_account_disabled is set.
    """
    if isinstance(exc, AccountDisabled) and disclose_account_disabled:
        return exc.code, exc.message
    return generic
