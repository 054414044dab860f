"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and sessions.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
repositories; _row_to_user / _row_to_session are the mappers. Service and
route code never touches SQL directly.

UserStore is the durable system of record for identities. It knows nothing
about caching -- auth/repository.py layers the look-aside cache on top.
SessionStore is read straight from the database on every refresh and logout
check; logout correctness must not depend on a cache.

Security:
  All queries use bound parameters. No f-strings in SQL.
  sessions.token_hash holds HMAC-SHA256 of the refresh token, never the token.

Timestamps are stored as ISO-8601 UTC strings (String(32)) and parsed back
into aware datetimes by the mappers.

Layer rule: no imports from api/, core/, or cache/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("roles", JSON, nullable=False),  # ordered list of Role values
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("verification_code", String(6)),
    Column("verification_code_expiry", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("ip_address", String(45), nullable=False, server_default=""),
    Column("user_agent", Text, nullable=False, server_default=""),
    Column("expire_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Fields callers may pass to UserStore.update_user(). id, email and
# created_at are immutable.
_USER_MUTABLE = frozenset(
    {"name", "hashed_password", "roles", "is_verified", "verification_code", "verification_code_expiry"}
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str, timeout: float = 10.0) -> Engine:
    """Create the process-wide engine and ensure the schema exists.

    timeout bounds how long a call waits for a connection (pool) or, on
    SQLite, for a write lock. Unlike cache errors these propagate.
    """
    connect_args: dict = {}
    kwargs: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout
    else:
        kwargs["pool_timeout"] = timeout
        kwargs["pool_pre_ping"] = True
    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Durable repository for User records.

    Usage:
        store = UserStore(create_store_engine("sqlite:///storefront.db"))
        user = store.create_user(User(name="Ada", email="ada@x.com", hashed_password=h))
        store.get_by_email("ada@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record (id and timestamps filled).

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now()
        user_id = user.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    roles=list(user.roles),
                    is_verified=user.is_verified,
                    verification_code=user.verification_code,
                    verification_code_expiry=_iso(user.verification_code_expiry),
                    created_at=_iso(now),
                    updated_at=_iso(now),
                )
            )
            conn.commit()
        return self.get_by_id(user_id)

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email as stored (lowercased at the API edge)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update mutable fields and return the post-update record.

        Returns None if user_id was not found. Unknown field names raise
        ValueError rather than being silently ignored.
        """
        unknown = set(fields) - _USER_MUTABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "verification_code_expiry" in fields:
            fields["verification_code_expiry"] = _iso(fields["verification_code_expiry"])
        if "roles" in fields:
            fields["roles"] = list(fields["roles"])
        fields["updated_at"] = _iso(_now())
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user and their sessions. Returns False if not found."""
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Durable repository for Session records (one per issued refresh token).

    No caching: logout and revocation must take effect on the next refresh.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_session(self, session: Session) -> Session:
        """Insert a session and return it with id and created_at filled.

        Raises sqlalchemy.exc.IntegrityError if token_hash already exists.
        """
        session_id = session.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=session.user_id,
                    token_hash=session.token_hash,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    expire_at=_iso(session.expire_at),
                    created_at=_iso(_now()),
                )
            )
            conn.commit()
        return self.get_session_by_id(session_id)

    def get_session_by_id(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_by_token(self, token_hash: str) -> Session | None:
        """Look up a session by the HMAC of its refresh token. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_sessions_by_user(self, user_id: str) -> list[Session]:
        """Return all sessions for a user, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def update_session(self, session_id: str, **fields) -> Session | None:
        """Update ip_address, user_agent or expire_at. Returns None if not found."""
        unknown = set(fields) - {"ip_address", "user_agent", "expire_at"}
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)!r}")
        if "expire_at" in fields:
            fields["expire_at"] = _iso(fields["expire_at"])
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_session_by_id(session_id)

    def delete_session_by_id(self, session_id: str, user_id: str | None = None) -> bool:
        """Delete one session. When user_id is given, ownership must match too.

        Returns True if a row was deleted, False if not found or wrong owner.
        """
        condition = _sessions.c.id == session_id
        if user_id is not None:
            condition = condition & (_sessions.c.user_id == user_id)
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(condition))
            conn.commit()
        return result.rowcount > 0

    def delete_sessions_except(self, user_id: str, keep_token_hash: str | None) -> int:
        """Delete every session of user_id except the one with keep_token_hash.

        keep_token_hash=None revokes all of the user's sessions. Returns the
        number of sessions deleted.
        """
        condition = _sessions.c.user_id == user_id
        if keep_token_hash is not None:
            condition = condition & (_sessions.c.token_hash != keep_token_hash)
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(condition))
            conn.commit()
        return result.rowcount

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete sessions whose expire_at has passed. Returns rows removed.

        ISO-8601 UTC strings sort chronologically, so a string comparison
        is a time comparison.
        """
        cutoff = _iso(now or _now())
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expire_at <= cutoff))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        roles=list(row.roles or []),
        is_verified=bool(row.is_verified),
        verification_code=row.verification_code,
        verification_code_expiry=_parse(row.verification_code_expiry),
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        expire_at=_parse(row.expire_at),
        created_at=_parse(row.created_at),
    )
