"""
auth/service.py -- Registration, login, token validation and refresh.

CredentialService is a stateless orchestration over three collaborators,
all injected: a UserRepository, a PasswordHasher and a TokenCodec. It holds
no per-request state, so one instance serves the whole process.

Error channels:
  register() / login() raise distinguishable errors (ValidationError,
      ConflictError, AuthenticationError) because callers render different
      messages for each.
  validate_token() collapses every token failure into None. Its caller is an
      access gate and only needs yes/no.
  refresh_token() propagates ExpiredTokenError vs InvalidTokenError so the
      caller can choose between "please log in again" and "token rejected".

Timing equalization [C1]:
  login() always runs one bcrypt verification, against a fixed dummy hash
  when the username does not exist, so response time does not reveal which
  half of the credential was wrong.

Revocation:
  Tokens carry the user's token_epoch. revoke_sessions() bumps it; older
  tokens then fail validate_token() and refresh_token(). Deleting the user
  has the same effect.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from auth.models import AuthResult, Claims, PublicUser, TokenStatus, User
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.store import UserRepository
from auth.tokens import TokenCodec

logger = logging.getLogger("tokengate.auth")

MIN_PASSWORD_LENGTH = 8
MAX_USERNAME_LENGTH = 255
MAX_EMAIL_LENGTH = 255

_BAD_CREDENTIALS = "Invalid username or password"


class CredentialService:
    """Credential core: turns passwords into tokens and tokens into identities.

    Usage:
        service = CredentialService(store, PasswordHasher(rounds=10), TokenCodec(secret))
        user, token = service.register("alice", "longenough1")
        service.validate_token(token)  # PublicUser(username="alice", ...)
    """

    def __init__(self, store: UserRepository, hasher: PasswordHasher, codec: TokenCodec) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self._dummy_hash = hasher.hash("tokengate-timing-dummy")

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, email: str | None = None) -> AuthResult:
        """Create a new identity and return it with a fresh token.

        Raises ValidationError for missing or weak input and ConflictError if
        the username is taken (either at the pre-check or at insert time).
        """
        _require_credentials(username, password)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at most {MAX_USERNAME_LENGTH} characters long")
        if email is not None:
            email = email.strip() or None
        if email is not None and ("@" not in email or len(email) > MAX_EMAIL_LENGTH):
            raise ValidationError("Invalid email address")

        if self.store.get_by_username(username) is not None:
            raise ConflictError("Username already exists")

        user = self.store.create_user(
            User(username=username, hashed_password=self.hasher.hash(password), email=email)
        )
        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return AuthResult(user.to_public(), self.codec.issue(Claims.for_user(user)))

    def login(self, username: str, password: str) -> AuthResult:
        """Check a username/password pair and return the identity with a fresh token.

        Raises AuthenticationError with the same message whether the username
        is unknown or the password is wrong.
        """
        _require_credentials(username, password)

        user = self.store.get_by_username(username)
        if user is None:
            # Equalize timing: do NOT return before running bcrypt [C1]
            self.hasher.verify(password, self._dummy_hash)
            logger.warning("Failed login for unknown username")
            raise AuthenticationError(_BAD_CREDENTIALS)
        if not self.hasher.verify(password, user.hashed_password):
            logger.warning("Failed login for user id=%s", user.id)
            raise AuthenticationError(_BAD_CREDENTIALS)

        if self.hasher.needs_rehash(user.hashed_password) and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES:
            self._upgrade_hash(user, password)

        logger.info("User %s logged in", user.username)
        return AuthResult(user.to_public(), self.codec.issue(Claims.for_user(user)))

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def validate_token(self, token: str) -> PublicUser | None:
        """Return the token's identity, or None if the token is unusable for any reason.

        Never raises for a bad token: forged, malformed, expired, revoked and
        orphaned tokens all return None.
        """
        check = self.codec.inspect(token)
        if check.status is not TokenStatus.VALID:
            logger.debug("Token rejected (%s): %s", check.status.value, check.reason)
            return None
        user = self._resolve_subject(check.claims)
        return user.to_public() if user is not None else None

    def refresh_token(self, token: str) -> str:
        """Issue a new token with the same claims and a new expiry window.

        Raises ExpiredTokenError for an expired token and InvalidTokenError for
        a forged or malformed one, or one whose subject was deleted or revoked.
        """
        claims = self.codec.verify(token)
        if self._resolve_subject(claims) is None:
            logger.info("Refresh refused for %s: subject deleted or sessions revoked", claims.username)
            raise InvalidTokenError("Invalid token")
        return self.codec.issue(claims)

    def revoke_sessions(self, user_id: str) -> int:
        """Invalidate every token issued to user_id so far. Returns the new epoch."""
        epoch = self.store.bump_token_epoch(user_id)
        if epoch is None:
            raise NotFoundError("User not found")
        logger.info("Revoked sessions for user id=%s (epoch=%d)", user_id, epoch)
        return epoch

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_subject(self, claims: Claims) -> User | None:
        user = self.store.get_by_id(claims.subject_id)
        if user is None or claims.epoch < user.token_epoch:
            return None
        return user

    def _upgrade_hash(self, user: User, password: str) -> None:
        new_hash = self.hasher.hash(password)
        self.store.update_password_hash(user.id, new_hash)
        user.hashed_password = new_hash
        logger.info("Upgraded password hash for user id=%s to cost %d", user.id, self.hasher.rounds)


def _require_credentials(username: str, password: str) -> None:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("Username and password are required")
    if not isinstance(password, str) or not password:
        raise ValidationError("Username and password are required")
