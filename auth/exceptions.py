"""
auth/exceptions.py -- Error kinds raised by the credential core.

Every error carries a stable machine-readable `code`. api/main.py maps each
class to an HTTP status; nothing in auth/ knows about HTTP.

Messages are user-facing. They never include a password, a password hash,
or a token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all credential-core errors."""

    code = "auth_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AuthError):
    """Missing or weak input. The caller's fault."""

    code = "validation_error"


class ConflictError(AuthError):
    """Username already taken."""

    code = "conflict"


class AuthenticationError(AuthError):
    """Bad credentials at login. Same message for unknown user and wrong password."""

    code = "bad_credentials"


class NotFoundError(AuthError):
    """Referenced user does not exist."""

    code = "not_found"


class InvalidTokenError(AuthError):
    """Token signature, structure or subject is not acceptable."""

    code = "invalid_token"


class ExpiredTokenError(InvalidTokenError):
    """Well-formed, correctly signed token whose expiry has passed."""

    code = "token_expired"
