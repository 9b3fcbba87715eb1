"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper.
UserStore and SessionStore are the repositories; _row_to_user / _row_to_session
are the mappers. The registry and session manager never touch SQL directly.

Both stores are plain objects constructed with a database URL and handed to
the components that use them. Nothing here is a module-level singleton, so
every test can build its own isolated pair.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  UNIQUE(email) and the token_hash primary key are enforced by the database,
  so uniqueness holds even when two requests race. Each method runs one short
  transaction via engine.begin(): it commits as a whole or rolls back as a
  whole, never leaving a partial write behind.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateEmail
from auth.models import Role, Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(255), nullable=False),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.STANDARD.value),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("user_id", String(36), nullable=False, index=True),  # back-reference, no FK
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore the pragma.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_memory_url(db_url: str) -> bool:
    return db_url.startswith("sqlite") and (":memory:" in db_url or "mode=memory" in db_url)


def _make_engine(db_url: str) -> Engine:
    """Build an engine and create the schema.

    In-memory SQLite gets StaticPool: one connection shared by every thread.
    The database lives exactly as long as that connection, so the pool must
    never open a second, blank one or drop the first.
    """
    connect_args: dict = {}
    engine_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    if _is_memory_url(db_url):
        engine_args["poolclass"] = StaticPool
    engine = create_engine(db_url, connect_args=connect_args, **engine_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records, keyed by id and unique by email.

    Usage:
        store = UserStore("sqlite:///turnstile.db")
        store.create_user(user)
        user = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def create_user(self, user: User) -> None:
        """Insert a fully-formed user (id, created_at and hash already set).

        Raises DuplicateEmail if the email is taken. The UNIQUE constraint is
        the only check, so two concurrent inserts with the same email cannot
        both succeed.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        email=user.email,
                        username=user.username,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        hashed_password=user.hashed_password,
                        role=user.role.value,
                        created_at=user.created_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateEmail() from exc

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def has_users(self) -> bool:
        """Return True if at least one user record exists. Used by the health check."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def close(self) -> None:
        self.engine.dispose()


class SessionStore:
    """Repository for active Session rows, keyed by token hash."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def create_session(self, session: Session) -> None:
        """Insert a session row.

        Raises sqlalchemy.exc.IntegrityError if the token hash already exists.
        SessionManager treats that as a token collision and retries with a
        fresh token.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=session.token_hash,
                    user_id=session.user_id,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
            )

    def get_session(self, token_hash: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, token_hash: str) -> bool:
        """Delete a session. Returns True if a row was removed, False if none existed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    def delete_expired(self, now_iso: str) -> int:
        """Delete every session whose expiry is at or before now_iso. Returns the count.

        ISO-8601 UTC strings of the same format sort chronologically, so a
        string comparison is a time comparison here.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now_iso))
        return result.rowcount

    def count_sessions(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sessions).where(_sessions.c.user_id == user_id)
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        token_hash=row.token_hash,
        user_id=row.user_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
