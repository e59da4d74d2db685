"""Unit tests for auth/service.py -- CredentialService orchestration.

Covers:
- register(): input validation, duplicate usernames, returned identity has no hash
- login(): identical error for unknown user and wrong password, hash upgrade
- validate_token(): None for garbage / expired / forged / deleted / revoked
- refresh_token(): propagates expiry vs invalid, re-checks the subject
- revoke_sessions(): epoch bump invalidates earlier tokens
"""

from __future__ import annotations

import logging
from dataclasses import asdict, fields
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from auth.exceptions import (
    AuthenticationError,
    ConflictError,
    ExpiredTokenError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from auth.models import Claims, PublicUser, User
from auth.passwords import PasswordHasher, stored_rounds
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenCodec
from conftest import TEST_LIFETIME, TEST_SECRET, FakeClock


@pytest.fixture
def alice(service: CredentialService):
    """alice registered with password "longenough1". Returns (PublicUser, token)."""
    return service.register("alice", "longenough1")


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_returns_public_user_and_token(self, service: CredentialService) -> None:
        user, token = service.register("alice", "longenough1", email="alice@example.com")
        assert isinstance(user, PublicUser)
        assert user.username == "alice"
        assert user.email == "alice@example.com"
        assert user.id
        assert user.created_at
        assert service.codec.verify(token) == Claims(subject_id=user.id, username="alice", epoch=0)

    def test_public_user_has_no_password_hash(self, service: CredentialService) -> None:
        user, _token = service.register("alice", "longenough1")
        names = {f.name for f in fields(user)}
        assert "hashed_password" not in names
        assert not any("$2b$" in str(v) for v in asdict(user).values())

    def test_persists_hashed_password(self, service: CredentialService, store: UserStore) -> None:
        service.register("alice", "longenough1")
        stored = store.get_by_username("alice")
        assert stored.hashed_password != "longenough1"
        assert service.hasher.verify("longenough1", stored.hashed_password)

    def test_short_password(self, service: CredentialService, store: UserStore) -> None:
        with pytest.raises(ValidationError, match="at least 8 characters"):
            service.register("alice", "short")
        assert store.get_by_username("alice") is None

    def test_exactly_eight_characters_is_enough(self, service: CredentialService) -> None:
        user, _ = service.register("alice", "12345678")
        assert user.username == "alice"

    @pytest.mark.parametrize(
        "username,password",
        [("", "longenough1"), ("   ", "longenough1"), ("alice", ""), (None, "longenough1"), ("alice", None)],
    )
    def test_missing_credentials(self, service: CredentialService, username, password) -> None:
        with pytest.raises(ValidationError, match="required"):
            service.register(username, password)

    def test_password_over_bcrypt_limit(self, service: CredentialService) -> None:
        with pytest.raises(ValidationError, match="72 bytes"):
            service.register("alice", "x" * 73)

    def test_invalid_email(self, service: CredentialService) -> None:
        with pytest.raises(ValidationError, match="email"):
            service.register("alice", "longenough1", email="not-an-email")

    def test_blank_email_is_treated_as_absent(self, service: CredentialService) -> None:
        user, _ = service.register("alice", "longenough1", email="  ")
        assert user.email is None

    def test_duplicate_username(self, service: CredentialService) -> None:
        service.register("alice", "longenough1")
        with pytest.raises(ConflictError, match="Username already exists"):
            service.register("alice", "other-pw-12")

    def test_usernames_are_case_sensitive(self, service: CredentialService) -> None:
        first, _ = service.register("alice", "longenough1")
        second, _ = service.register("Alice", "longenough1")
        assert first.id != second.id

    def test_conflict_at_insert_propagates(self, hasher: PasswordHasher, codec: TokenCodec) -> None:
        """A concurrent registration that wins the race surfaces as ConflictError, not a crash."""
        repo = MagicMock()
        repo.get_by_username.return_value = None
        repo.create_user.side_effect = ConflictError("Username already exists")
        with pytest.raises(ConflictError):
            CredentialService(repo, hasher, codec).register("alice", "longenough1")

    def test_password_never_logged(self, service: CredentialService, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="tokengate"):
            service.register("alice", "longenough1")
            with pytest.raises(AuthenticationError):
                service.login("alice", "wrong-pw-99")
        assert "longenough1" not in caplog.text
        assert "wrong-pw-99" not in caplog.text
        assert "$2b$" not in caplog.text


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success(self, service: CredentialService, alice) -> None:
        registered, _ = alice
        user, token = service.login("alice", "longenough1")
        assert user == registered
        assert service.validate_token(token) == registered

    def test_failed_login_does_not_log_typed_username(
        self, service: CredentialService, caplog: pytest.LogCaptureFixture, alice
    ) -> None:
        registered, _ = alice
        with caplog.at_level(logging.DEBUG, logger="tokengate"):
            with pytest.raises(AuthenticationError):
                service.login("hunter2-typed-as-username", "longenough1")
            with pytest.raises(AuthenticationError):
                service.login("alice", "wrong-pw-99")
        assert "hunter2-typed-as-username" not in caplog.text
        assert "Failed login for unknown username" in caplog.text
        assert f"Failed login for user id={registered.id}" in caplog.text

    def test_wrong_password(self, service: CredentialService, alice) -> None:
        with pytest.raises(AuthenticationError):
            service.login("alice", "wrong-pw")

    def test_unknown_user_and_wrong_password_are_indistinguishable(self, service: CredentialService, alice) -> None:
        with pytest.raises(AuthenticationError) as unknown:
            service.login("nobody", "longenough1")
        with pytest.raises(AuthenticationError) as wrong:
            service.login("alice", "wrong-pw")
        assert str(unknown.value) == str(wrong.value) == "Invalid username or password"
        assert type(unknown.value) is type(wrong.value)

    def test_unknown_user_still_runs_bcrypt(self, store: UserStore, codec: TokenCodec) -> None:
        hasher = MagicMock(wraps=PasswordHasher(rounds=4))
        service = CredentialService(store, hasher, codec)
        with pytest.raises(AuthenticationError):
            service.login("nobody", "longenough1")
        hasher.verify.assert_called_once()

    @pytest.mark.parametrize("username,password", [("", "longenough1"), ("alice", "")])
    def test_missing_credentials(self, service: CredentialService, username, password) -> None:
        with pytest.raises(ValidationError):
            service.login(username, password)

    def test_upgrades_hash_made_at_old_cost(self, store: UserStore, codec: TokenCodec) -> None:
        old = CredentialService(store, PasswordHasher(rounds=4), codec)
        old.register("alice", "longenough1")
        new = CredentialService(store, PasswordHasher(rounds=5), codec)
        new.login("alice", "longenough1")
        assert stored_rounds(store.get_by_username("alice").hashed_password) == 5
        # Still verifies with the upgraded hash.
        new.login("alice", "longenough1")


# ---------------------------------------------------------------------------
# validate_token
# ---------------------------------------------------------------------------


class TestValidateToken:
    def test_valid_token(self, service: CredentialService, alice) -> None:
        user, token = alice
        assert service.validate_token(token) == user

    @pytest.mark.parametrize("garbage", ["garbage-string", "", "a.b.c", None])
    def test_garbage_returns_none(self, service: CredentialService, garbage) -> None:
        assert service.validate_token(garbage) is None

    def test_expired_returns_none(self, service: CredentialService, clock: FakeClock, alice) -> None:
        _user, token = alice
        clock.advance(seconds=TEST_LIFETIME + 1)
        assert service.validate_token(token) is None

    def test_forged_returns_none(self, service: CredentialService, alice) -> None:
        _user, token = alice
        header, payload, signature = token.split(".")
        i = len(signature) // 2
        forged_sig = signature[:i] + ("A" if signature[i] != "A" else "B") + signature[i + 1 :]
        assert service.validate_token(".".join([header, payload, forged_sig])) is None

    def test_deleted_user_returns_none(self, service: CredentialService, store: UserStore, alice) -> None:
        user, token = alice
        store.delete_user(user.id)
        assert service.validate_token(token) is None

    def test_claims_for_unknown_subject_return_none(self, service: CredentialService) -> None:
        token = service.codec.issue(Claims(subject_id="does-not-exist", username="ghost"))
        assert service.validate_token(token) is None


# ---------------------------------------------------------------------------
# refresh_token
# ---------------------------------------------------------------------------


class TestRefreshToken:
    def test_new_token_same_claims_later_expiry(self, service: CredentialService, clock: FakeClock, alice) -> None:
        _user, token = alice
        clock.advance(seconds=600)
        refreshed = service.refresh_token(token)
        assert refreshed != token
        assert service.codec.verify(refreshed) == service.codec.verify(token)
        clock.advance(seconds=TEST_LIFETIME - 300)
        assert service.validate_token(token) is None
        assert service.validate_token(refreshed) is not None

    def test_expired_token_propagates_expiry(self, service: CredentialService, clock: FakeClock, alice) -> None:
        _user, token = alice
        clock.advance(seconds=TEST_LIFETIME + 1)
        issue = MagicMock(wraps=service.codec.issue)
        service.codec.issue = issue
        with pytest.raises(ExpiredTokenError):
            service.refresh_token(token)
        issue.assert_not_called()

    def test_expired_token_with_default_clock(
        self, store: UserStore, hasher: PasswordHasher, alice
    ) -> None:
        user, _token = alice
        issued = FakeClock(datetime.now(timezone.utc) - timedelta(seconds=120))
        stale = TokenCodec(TEST_SECRET, 60, clock=issued).issue(Claims(subject_id=user.id, username=user.username))
        wall_clock_service = CredentialService(store, hasher, TokenCodec(TEST_SECRET, 60))
        with pytest.raises(ExpiredTokenError):
            wall_clock_service.refresh_token(stale)
        assert wall_clock_service.validate_token(stale) is None

    def test_forged_token_propagates_invalid(self, service: CredentialService, alice) -> None:
        _user, token = alice
        header, payload, signature = token.split(".")
        i = len(signature) // 2
        forged_sig = signature[:i] + ("A" if signature[i] != "A" else "B") + signature[i + 1 :]
        with pytest.raises(InvalidTokenError) as excinfo:
            service.refresh_token(".".join([header, payload, forged_sig]))
        assert not isinstance(excinfo.value, ExpiredTokenError)

    def test_garbage_propagates_invalid(self, service: CredentialService) -> None:
        with pytest.raises(InvalidTokenError):
            service.refresh_token("garbage-string")

    def test_deleted_user_cannot_refresh(self, service: CredentialService, store: UserStore, alice) -> None:
        user, token = alice
        store.delete_user(user.id)
        with pytest.raises(InvalidTokenError):
            service.refresh_token(token)


# ---------------------------------------------------------------------------
# revoke_sessions
# ---------------------------------------------------------------------------


class TestRevokeSessions:
    def test_revokes_existing_tokens(self, service: CredentialService, alice) -> None:
        user, token = alice
        assert service.revoke_sessions(user.id) == 1
        assert service.validate_token(token) is None
        with pytest.raises(InvalidTokenError):
            service.refresh_token(token)

    def test_new_logins_carry_new_epoch(self, service: CredentialService, alice) -> None:
        user, _token = alice
        service.revoke_sessions(user.id)
        _user, fresh = service.login("alice", "longenough1")
        assert service.codec.verify(fresh).epoch == 1
        assert service.validate_token(fresh) == user

    def test_unknown_user(self, service: CredentialService) -> None:
        with pytest.raises(NotFoundError):
            service.revoke_sessions("does-not-exist")


def test_user_to_public_drops_credentials() -> None:
    user = User(username="alice", hashed_password="$2b$04$abc", id="id1", email=None, token_epoch=3)
    public = user.to_public()
    assert public == PublicUser(id="id1", username="alice")
