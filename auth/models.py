"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple


@dataclass
class User:
    """A persisted identity.

    hashed_password is opaque and never leaves auth/ -- use to_public() for
    anything crossing the boundary.

    token_epoch is bumped by CredentialService.revoke_sessions(). Tokens carry
    the epoch they were issued under; a token behind the current epoch is
    rejected.
    """

    username: str
    hashed_password: str
    id: str | None = None
    email: str | None = None
    token_epoch: int = 0
    created_at: str | None = None

    def to_public(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            username=self.username,
            email=self.email,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class PublicUser:
    """User minus credentials. The only identity shape returned to callers."""

    id: str
    username: str
    email: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """The identity assertion embedded in a token."""

    subject_id: str
    username: str
    epoch: int = 0

    @classmethod
    def for_user(cls, user: User) -> Claims:
        return cls(subject_id=user.id, username=user.username, epoch=user.token_epoch)


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenCheck:
    """Tagged result of TokenCodec.inspect().

    claims is set for VALID and EXPIRED (the signature checked out), None for
    INVALID. reason is a short diagnostic for logs; it never contains the token.
    """

    status: TokenStatus
    claims: Claims | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID


class AuthResult(NamedTuple):
    user: PublicUser
    token: str
