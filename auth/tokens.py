"""
auth/tokens.py -- Bearer token signing and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the injected secret and
       carry sub (user id), username, epoch, iat and exp. The secret is passed
       in by the caller (see api/main.py lifespan); this module never reads
       configuration itself, so tests can inject their own secret.

  Anti-downgrade: decode() is called with algorithms=[HS256] only, and the
       header is checked before decoding. A token naming "none" or any other
       algorithm is INVALID, never accepted.

  One primitive, two channels: inspect() returns a tagged TokenCheck
       (valid / expired / invalid) and never raises. verify() raises the
       matching error. CredentialService decides per operation how much of
       the tag to expose to its caller.

  Expiry is evaluated against the codec's clock rather than inside jose, so
       a fake clock in tests drives both issuance and verification. jose
       turns verify_exp back on for any required claim, so exp is not listed
       as required; inspect() checks its presence itself.

  Issuer and audience: every token carries iss and aud, and decode() requires
       both to match. A token signed with the same secret for another
       audience is INVALID.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.exceptions import ExpiredTokenError, InvalidTokenError
from auth.models import Claims, TokenCheck, TokenStatus

logger = logging.getLogger("tokengate.auth")

ALGORITHM = "HS256"

DEFAULT_LIFETIME_SECONDS = 7 * 24 * 60 * 60

DEFAULT_ISSUER = "tokengate"
DEFAULT_AUDIENCE = "tokengate-api"

# exp is checked by inspect() against our clock; everything else that jose
# can check, it checks. Listing exp under require_* would re-enable jose's
# wall-clock expiry check.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_iat": True,
    "verify_sub": True,
    "verify_aud": True,
    "verify_iss": True,
    "require_iat": True,
    "require_sub": True,
    "require_aud": True,
    "require_iss": True,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class TokenCodec:
    """Issue and verify HS256 bearer tokens.

    Usage:
        codec = TokenCodec(secret=settings.jwt_secret, lifetime_seconds=settings.jwt_expires_in)
        token = codec.issue(Claims(subject_id="ab12", username="alice"))
        codec.verify(token)  # Claims(subject_id="ab12", username="alice", epoch=0)
    """

    def __init__(
        self,
        secret: str,
        lifetime_seconds: int = DEFAULT_LIFETIME_SECONDS,
        clock: Callable[[], datetime] | None = None,
        issuer: str = DEFAULT_ISSUER,
        audience: str = DEFAULT_AUDIENCE,
    ) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty signing secret.")
        if lifetime_seconds <= 0:
            raise ValueError("Token lifetime must be positive.")
        if not issuer or not audience:
            raise ValueError("TokenCodec requires an issuer and an audience.")
        self._secret = secret
        self.lifetime_seconds = lifetime_seconds
        self.issuer = issuer
        self.audience = audience
        self._clock = clock or _utcnow

    def issue(self, claims: Claims) -> str:
        """Sign claims into a token that expires lifetime_seconds from now."""
        issued_at = int(self._clock().timestamp())
        payload = {
            "sub": claims.subject_id,
            "username": claims.username,
            "epoch": claims.epoch,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def inspect(self, token: str) -> TokenCheck:
        """Check signature, structure and expiry. Never raises."""
        if not isinstance(token, str) or not token:
            return TokenCheck(TokenStatus.INVALID, reason="empty token")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            return TokenCheck(TokenStatus.INVALID, reason="malformed header")
        if header.get("alg") != ALGORITHM:
            return TokenCheck(TokenStatus.INVALID, reason=f"algorithm not allowed: {header.get('alg')!r}")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options=_DECODE_OPTIONS,
            )
        except JWTError as exc:
            return TokenCheck(TokenStatus.INVALID, reason=str(exc) or "signature verification failed")

        claims = _claims_from_payload(payload)
        if claims is None:
            return TokenCheck(TokenStatus.INVALID, reason="missing or ill-typed claims")
        if not _is_int(payload.get("exp")):
            return TokenCheck(TokenStatus.INVALID, reason="exp is missing or not an integer")
        if payload["exp"] < self._clock().timestamp():
            return TokenCheck(TokenStatus.EXPIRED, claims=claims, reason="token expired")
        return TokenCheck(TokenStatus.VALID, claims=claims)

    def verify(self, token: str) -> Claims:
        """Return the token's claims, or raise ExpiredTokenError / InvalidTokenError."""
        check = self.inspect(token)
        if check.status is TokenStatus.EXPIRED:
            raise ExpiredTokenError("Token has expired")
        if check.status is TokenStatus.INVALID:
            logger.debug("Rejected token: %s", check.reason)
            raise InvalidTokenError("Invalid token")
        return check.claims


def _claims_from_payload(payload: dict) -> Claims | None:
    subject_id = payload.get("sub")
    username = payload.get("username")
    epoch = payload.get("epoch", 0)
    if not isinstance(subject_id, str) or not subject_id:
        return None
    if not isinstance(username, str) or not username:
        return None
    if not _is_int(epoch):
        return None
    return Claims(subject_id=subject_id, username=username, epoch=epoch)
