"""
auth/store.py -- SQLAlchemy Core persistence layer for directory users.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. The directory
service and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL. Login filters are
  passed through ColumnOperators.contains(autoescape=True) so '%' and '_'
  typed by a caller match literally instead of acting as wildcards.

Failure model:
  Every SQLAlchemyError is re-raised as StoreUnavailableError, chained to the
  driver exception. A UNIQUE(login) violation is re-raised as
  LoginConflictError so the service can treat a lost check-then-insert race
  as "login taken" rather than as an outage. Callers above this module never
  see sqlalchemy exception types.

DB path: auth/logindirectory.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User
from core.config import get_settings

logger = logging.getLogger("logindirectory.store")

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreUnavailableError(Exception):
    """The store could not complete a query (unreachable, malformed, locked...)."""


class LoginConflictError(StoreUnavailableError):
    """An insert or update collided with the UNIQUE(login) constraint."""


# Ids are stored in a signed 64-bit INTEGER column. Larger ids cannot exist in
# the table, so lookups and mutations treat them as unknown without a query.
MAX_USER_ID = 2**63 - 1


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("login", String(255), nullable=False, unique=True),
    Column("credential_digest", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _storable(user_id: int) -> bool:
    return -MAX_USER_ID - 1 <= user_id <= MAX_USER_ID


def _login_predicate(login_filter: str | None):
    if not login_filter:
        return None
    return _users.c.login.contains(login_filter, autoescape=True)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///directory.db")
        user = store.create("alice", digest)
        store.find_by_login("alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        with self._guard("open store"):
            self.engine: Engine = create_engine(db_url, connect_args=connect_args)
            if db_url.startswith("sqlite"):
                event.listen(self.engine, "connect", _set_wal_mode)
            _metadata.create_all(self.engine)

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise LoginConflictError(f"{action}: {exc}") from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"{action}: {exc}") from exc

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_login(self, login: str) -> User | None:
        """Look up a user by exact login. Returns None if not found."""
        with self._guard("find by login"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.login == login)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        if not _storable(user_id):
            return None
        with self._guard("find by id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_ids(self, user_ids: Iterable[int]) -> list[User]:
        """Return the users whose id is in user_ids. Unknown ids are skipped."""
        wanted = sorted({i for i in user_ids if _storable(i)})
        if not wanted:
            return []
        with self._guard("find by ids"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(wanted)).order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_matching(self, login_filter: str | None = None) -> int:
        """Count users whose login contains login_filter (all users when empty)."""
        query = select(func.count()).select_from(_users)
        predicate = _login_predicate(login_filter)
        if predicate is not None:
            query = query.where(predicate)
        with self._guard("count users"), self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def list_page(self, login_filter: str | None, offset: int, limit: int) -> list[User]:
        """Return one window of matching users ordered by login ascending.

        A non-positive limit yields an empty list without touching the store;
        databases disagree on what LIMIT 0 or a negative LIMIT means.
        """
        if limit <= 0:
            return []
        query = _users.select().order_by(_users.c.login.asc()).offset(max(offset, 0)).limit(limit)
        predicate = _login_predicate(login_filter)
        if predicate is not None:
            query = query.where(predicate)
        with self._guard("list users"), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, login: str, credential_digest: str) -> User:
        """Insert a new user and return it with its assigned id and creation time.

        Raises LoginConflictError if the login is already taken.
        """
        created_at = _now()
        with self._guard("create user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    login=login,
                    credential_digest=credential_digest,
                    created_at=created_at.isoformat(),
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return User(id=user_id, login=login, credential_digest=credential_digest, created_at=created_at)

    def save(self, user: User) -> bool:
        """Insert user with its own id, keeping an existing row untouched.

        Used by the bootstrap command, which seeds an account under a chosen
        id. Returns False (and writes nothing) when that id is already in use.
        Raises LoginConflictError if the login belongs to a different id.
        """
        if user.id is None:
            raise ValueError("save() requires an explicit id")
        if not _storable(user.id):
            raise ValueError(f"id {user.id} is outside the storable range")
        if self.find_by_id(user.id) is not None:
            return False
        created_at = user.created_at or _now()
        try:
            with self._guard("save user"), self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        login=user.login,
                        credential_digest=user.credential_digest,
                        created_at=created_at.isoformat(),
                    )
                )
                conn.commit()
        except LoginConflictError:
            # Another writer took the id between the lookup and the insert.
            if self.find_by_id(user.id) is not None:
                return False
            raise
        return True

    def update_fields(
        self,
        user_id: int,
        *,
        login: str | None = None,
        credential_digest: str | None = None,
    ) -> bool:
        """Update login and/or credential_digest in one statement.

        Returns True if a row was updated, False if user_id was not found.
        Raises LoginConflictError if the new login is already taken.
        """
        fields: dict = {}
        if login is not None:
            fields["login"] = login
        if credential_digest is not None:
            fields["credential_digest"] = credential_digest
        if not fields:
            raise ValueError("update_fields() needs at least one field")
        if not _storable(user_id):
            return False
        with self._guard("update user"), self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete(self, user_id: int) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found."""
        if not _storable(user_id):
            return False
        with self._guard("delete user"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    created_at = datetime.fromisoformat(row.created_at)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return User(
        id=row.id,
        login=row.login,
        credential_digest=row.credential_digest,
        created_at=created_at,
    )
