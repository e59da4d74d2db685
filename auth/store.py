"""
auth/store.py -- User repository contract and its SQLAlchemy Core implementation.

Pattern: Repository + Data Mapper. UserRepository is the contract the
credential core depends on; UserStore is the SQL-backed repository and
_row_to_user is the mapper. Service code never touches SQL directly.

Uniqueness:
  UNIQUE(username) is the single point of enforcement. CredentialService
  pre-checks with get_by_username(), but two concurrent registrations can
  both pass that check. The loser's INSERT fails on the constraint and
  create_user() raises ConflictError, the same error the pre-check raises.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/tokengate_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.exceptions import ConflictError
from auth.models import User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'tokengate_auth.db'}"


class UserRepository(Protocol):
    """What the credential core needs from persistence.

    create_user() must raise ConflictError for a duplicate username.
    """

    def get_by_username(self, username: str) -> User | None: ...

    def get_by_id(self, user_id: str) -> User | None: ...

    def create_user(self, user: User) -> User: ...

    # Used by hash upgrades on login and by revoke_sessions().
    def update_password_hash(self, user_id: str, hashed_password: str) -> bool: ...

    def bump_token_epoch(self, user_id: str) -> int | None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("email", String(255)),
    Column("token_epoch", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQL-backed UserRepository.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(username="alice", hashed_password=hasher.hash("s3cret-pw")))
        store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> User:
        """Insert a new user and return the persisted record with its new id.

        Raises ConflictError if the username is already taken, including when
        a concurrent request inserted it after the caller's pre-check.
        """
        user_id = uuid.uuid4().hex
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        username=user.username,
                        hashed_password=user.hashed_password,
                        email=user.email,
                        token_epoch=user.token_epoch,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("Username already exists") from exc
        return self.get_by_id(user_id)

    def update_password_hash(self, user_id: str, hashed_password: str) -> bool:
        """Replace a user's stored hash. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password)
            )
            conn.commit()
        return result.rowcount > 0

    def bump_token_epoch(self, user_id: str) -> int | None:
        """Increment token_epoch atomically and return the new value, or None if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(token_epoch=_users.c.token_epoch + 1)
            )
            if result.rowcount == 0:
                conn.rollback()
                return None
            epoch = conn.execute(
                _users.select().with_only_columns(_users.c.token_epoch).where(_users.c.id == user_id)
            ).scalar()
            conn.commit()
        return epoch

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Outstanding tokens stop validating."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        email=row.email,
        token_epoch=row.token_epoch,
        created_at=row.created_at,
    )
