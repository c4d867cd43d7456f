"""
auth/store.py -- SQLAlchemy Core persistence layer for users and their tokens.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and CLI code
never touches SQL directly.

Credential rules enforced here:
  - Every password write goes through set_password(), which always hashes.
    No other method writes password_hash, so adding or removing a token never
    rehashes anything.
  - users.email is UNIQUE. create_user() relies on the constraint instead of
    a check-then-insert, so two concurrent registrations for the same email
    cannot both succeed: the losing INSERT raises IntegrityError, which is
    surfaced as DuplicateUserError.
  - create_user(issue_token=...) writes the user and its first token in one
    transaction; registration never leaves a user without a token.
  - find_by_credentials() raises the same AuthenticationError for an unknown
    email and for a wrong password, and runs bcrypt in both cases [C1].

Token list layout:
  user_tokens holds one row per active token. A user's token list is the rows
  for that user ordered by id, i.e. issue order. token is UNIQUE, so removing
  by exact match deletes at most one row.

Errors:
  Any SQLAlchemyError other than the email constraint violation is re-raised
  as PersistenceError. Callers above this layer never see SQLAlchemy types.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AuthenticationError, DuplicateUserError, PersistenceError, UserNotFoundError
from auth.models import User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.validation import check_password, check_registration, normalize_email

logger = logging.getLogger("userauth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("gender", String(50)),
    Column("created_at", String(32), nullable=False),
)

_user_tokens = Table(
    "user_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("token", Text, nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _persistence_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into PersistenceError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store operation %s failed: %s", operation, exc)
        raise PersistenceError(f"{operation} failed") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and their active tokens.

    Usage:
        store = UserStore("sqlite:///auth.db")
        user = store.create_user("Ann", "a@x.com", "secret")
        same = store.find_by_credentials("a@x.com", "secret")
        store.close()
    """

    def __init__(self, db_url: str, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        self.bcrypt_rounds = bcrypt_rounds
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        with _persistence_errors("create_schema"):
            _metadata.create_all(self.engine)
        # Timing equalization dummy hash [C1]. Computed once so the first
        # failed login is not measurably slower than later ones.
        self._dummy_hash = hash_password("userauth_timing_dummy", self.bcrypt_rounds)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        gender: str | None = None,
        issue_token: Callable[[int], str] | None = None,
    ) -> User:
        """Validate, hash and insert a new user. Returns the stored User.

        When issue_token is given it is called with the new user id and the
        returned token is inserted in the same transaction as the user row,
        so a failed token write leaves no account behind.

        Raises:
            ValidationError:    name empty, email malformed, or password unacceptable.
            DuplicateUserError: the email is already registered.
            PersistenceError:   any other store failure.
        """
        check_registration(name, email, password)
        user = User(name=name.strip(), email=normalize_email(email), gender=gender or None)
        self.set_password(user, password)
        user.created_at = _now_iso()
        token = None
        try:
            with self.engine.connect() as conn:
                try:
                    result = conn.execute(
                        _users.insert().values(
                            name=user.name,
                            email=user.email,
                            password_hash=user.password_hash,
                            gender=user.gender,
                            created_at=user.created_at,
                        )
                    )
                except IntegrityError as exc:
                    logger.info("Registration rejected, email already registered: %s", user.email)
                    raise DuplicateUserError(user.email) from exc
                user_id = result.inserted_primary_key[0]
                if issue_token is not None:
                    token = issue_token(user_id)
                    conn.execute(_user_tokens.insert().values(user_id=user_id, token=token, created_at=_now_iso()))
                conn.commit()
        except SQLAlchemyError as exc:
            logger.error("Store operation create_user failed: %s", exc)
            raise PersistenceError("create_user failed") from exc
        user.id = user_id
        if token is not None:
            user.tokens.append(token)
        logger.info("User created: id=%s email=%s", user.id, user.email)
        return user

    def set_password(self, user: User, plaintext: str) -> None:
        """Hash plaintext onto user.password_hash, always.

        This is the only code path that writes a password. A user that has
        not been inserted yet (id is None) is only updated in memory;
        create_user() persists it with the INSERT.
        """
        check_password(plaintext)
        user.password_hash = hash_password(plaintext, self.bcrypt_rounds)
        if user.id is None:
            return
        with _persistence_errors("set_password"), self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user.id).values(password_hash=user.password_hash))
            conn.commit()

    def change_password(self, user_id: int, plaintext: str) -> User:
        """Replace a stored user's password. Raises UserNotFoundError for an unknown id."""
        user = self.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        self.set_password(user, plaintext)
        logger.info("Password changed for user id=%s", user_id)
        return user

    def find_by_credentials(self, email: str, password: str) -> User:
        """Return the user whose email and password match.

        Raises AuthenticationError when the email is unknown or the password
        is wrong, with no way to tell the two apart. bcrypt runs against a
        dummy hash for unknown emails so timing does not leak either [C1].
        """
        user = self.get_by_email(email)
        if user is None or user.password_hash is None:
            verify_password(password, self._dummy_hash)
            raise AuthenticationError()
        if not verify_password(password, user.password_hash):
            raise AuthenticationError()
        return user

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key, tokens included. Returns None if not found."""
        with _persistence_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._tokens_for(conn, row.id))

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive), tokens included. Returns None if not found."""
        with _persistence_errors("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._tokens_for(conn, row.id))

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def add_token(self, user_id: int, token: str) -> None:
        """Append a token to the user's active list."""
        with _persistence_errors("add_token"), self.engine.connect() as conn:
            conn.execute(_user_tokens.insert().values(user_id=user_id, token=token, created_at=_now_iso()))
            conn.commit()

    def remove_token(self, user_id: int, token: str) -> bool:
        """Delete the entry equal to token. Returns False if it was not there."""
        with _persistence_errors("remove_token"), self.engine.connect() as conn:
            result = conn.execute(
                _user_tokens.delete().where((_user_tokens.c.user_id == user_id) & (_user_tokens.c.token == token))
            )
            conn.commit()
        return result.rowcount > 0

    def has_token(self, user_id: int, token: str) -> bool:
        with _persistence_errors("has_token"), self.engine.connect() as conn:
            row = conn.execute(
                select(_user_tokens.c.id).where((_user_tokens.c.user_id == user_id) & (_user_tokens.c.token == token))
            ).fetchone()
        return row is not None

    def get_tokens(self, user_id: int) -> list[str]:
        """Return the user's active tokens in issue order."""
        with _persistence_errors("get_tokens"), self.engine.connect() as conn:
            return self._tokens_for(conn, user_id)

    @staticmethod
    def _tokens_for(conn, user_id: int) -> list[str]:
        rows = conn.execute(
            select(_user_tokens.c.token).where(_user_tokens.c.user_id == user_id).order_by(_user_tokens.c.id)
        ).fetchall()
        return [r.token for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, tokens: list[str]) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        gender=row.gender,
        tokens=tokens,
        created_at=row.created_at,
    )
