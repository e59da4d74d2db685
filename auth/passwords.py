"""
auth/passwords.py -- One-way salted password hashing (bcrypt).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

Cost factor:
  rounds is the only brute-force tunable. Each hash embeds its own salt and
  cost, so changing rounds never breaks verification of existing hashes --
  only new hashes use the new cost. needs_rehash() lets the login path
  upgrade old hashes in place.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes of input; bcrypt>=5 raises instead
# of truncating. The service rejects longer passwords before hashing.
MAX_PASSWORD_BYTES = 72

MIN_ROUNDS = 4
MAX_ROUNDS = 31


class PasswordHasher:
    """Salted bcrypt hashing with a fixed cost.

    Usage:
        hasher = PasswordHasher(rounds=10)
        stored = hasher.hash("correct horse")
        hasher.verify("correct horse", stored)  # True
    """

    def __init__(self, rounds: int = 10) -> None:
        if not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise ValueError(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {rounds}")
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Return a bcrypt hash of the plaintext with a fresh random salt.

        Not deterministic: two calls with the same password return different
        strings, both of which verify.
        """
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Return True if the plaintext matches the stored hash.

        Never raises. A malformed or empty stored hash, a non-string input, or
        an over-long password all return False.
        """
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except Exception:
            return False

    def needs_rehash(self, hashed: str) -> bool:
        """Return True if the stored hash was made with a different cost."""
        return stored_rounds(hashed) != self.rounds


def stored_rounds(hashed: str) -> int | None:
    """Extract the cost from a "$2b$<cost>$<salt+digest>" string, or None."""
    parts = hashed.split("$") if isinstance(hashed, str) else []
    if len(parts) != 4 or not parts[2].isdigit():
        return None
    return int(parts[2])
