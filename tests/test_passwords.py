"""Unit tests for auth/passwords.py -- bcrypt hashing and verification.

Covers:
- hash() is salted: same password, different output, both verify
- verify() rejects other passwords
- verify() never raises on malformed stored hashes
- needs_rehash() tracks the configured cost
"""

from __future__ import annotations

import pytest

from auth.passwords import PasswordHasher, stored_rounds


def test_hash_then_verify(hasher: PasswordHasher) -> None:
    stored = hasher.hash("correct horse battery")
    assert hasher.verify("correct horse battery", stored)


def test_hash_is_salted(hasher: PasswordHasher) -> None:
    """Two hashes of the same password differ but both verify."""
    first = hasher.hash("longenough1")
    second = hasher.hash("longenough1")
    assert first != second
    assert hasher.verify("longenough1", first)
    assert hasher.verify("longenough1", second)


def test_hash_never_contains_plaintext(hasher: PasswordHasher) -> None:
    assert "longenough1" not in hasher.hash("longenough1")


@pytest.mark.parametrize("other", ["longenough2", "LONGENOUGH1", "longenough1 ", ""])
def test_verify_rejects_other_passwords(hasher: PasswordHasher, other: str) -> None:
    stored = hasher.hash("longenough1")
    assert hasher.verify(other, stored) is False


@pytest.mark.parametrize("stored", ["", "not-a-hash", "$2b$04$tooshort", "$argon2id$v=19$m=65536"])
def test_verify_malformed_hash_returns_false(hasher: PasswordHasher, stored: str) -> None:
    assert hasher.verify("longenough1", stored) is False


def test_verify_non_string_hash_returns_false(hasher: PasswordHasher) -> None:
    assert hasher.verify("longenough1", None) is False


def test_hash_embeds_configured_cost(hasher: PasswordHasher) -> None:
    assert stored_rounds(hasher.hash("longenough1")) == 4


def test_old_cost_still_verifies_and_needs_rehash(hasher: PasswordHasher) -> None:
    """Raising the cost must not lock out users whose hash used the old one."""
    old = hasher.hash("longenough1")
    stronger = PasswordHasher(rounds=5)
    assert stronger.verify("longenough1", old)
    assert stronger.needs_rehash(old)
    assert not stronger.needs_rehash(stronger.hash("longenough1"))


def test_needs_rehash_for_unparsable_hash(hasher: PasswordHasher) -> None:
    assert hasher.needs_rehash("garbage")


@pytest.mark.parametrize("rounds", [3, 32])
def test_rounds_out_of_range(rounds: int) -> None:
    with pytest.raises(ValueError):
        PasswordHasher(rounds=rounds)
