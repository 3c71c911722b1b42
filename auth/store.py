"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_session / _row_to_verification are the mappers.
The auth engine never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Session tokens are stored as HMAC hashes (see auth/tokens.hash_token); the
  raw token only ever lives in the client's cookie.

  UNIQUE(oauth_provider, oauth_subject) is enforced in code rather than SQL
  because SQLite treats two NULL values as distinct in UNIQUE constraints.

Timestamps are stored as fixed-width ISO 8601 UTC strings so that string
comparison in SQL matches chronological order.

The engine comes from core.database.DatabaseConnector, which owns its
lifecycle -- this store never disposes it.

Layer rule: no imports from api/, mail/, or cache/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import AuthSession, SessionUser, User, Verification

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("phone_number", String(32)),
    Column("two_factor_enabled", Boolean, nullable=False, default=False),
    Column("oauth_provider", String(30)),
    Column("oauth_subject", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_verifications = Table(
    "verifications",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False, unique=True),
    Column("value", Text, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("attempts", Integer, nullable=False, default=0),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, sessions, and verification secrets.

    Usage:
        store = UserStore(db.engine)
        user_id = store.create_user(User(email="a@b.com", name="A", hashed_password=...))
        user = store.get_by_email("a@b.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = uuid.uuid4().hex
        now = to_iso(utcnow())
        with self.engine.begin() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=normalize_email(user.email),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    email_verified=user.email_verified,
                    role=user.role,
                    phone_number=user.phone_number,
                    two_factor_enabled=user.two_factor_enabled,
                    oauth_provider=user.oauth_provider,
                    oauth_subject=user.oauth_subject,
                    created_at=now,
                    updated_at=now,
                )
            )
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_oauth(self, provider: str, subject: str) -> User | None:
        """Look up a user by (oauth_provider, oauth_subject) pair."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.oauth_provider == provider) & (_users.c.oauth_subject == subject))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def link_oauth(self, user_id: str, provider: str, subject: str) -> None:
        """Associate an OAuth identity with an existing user record.

        A provider-verified email also marks the local account verified.
        """
        self.update_user(user_id, oauth_provider=provider, oauth_subject=subject, email_verified=True)

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, hashed_password, email_verified, role,
        phone_number, two_factor_enabled, oauth_provider, oauth_subject.
        Returns True if a row was updated, False if user_id was not found.
        """
        fields["updated_at"] = to_iso(utcnow())
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def mark_email_verified(self, user_id: str) -> bool:
        """Flip email_verified to true. False if it already was, or no such user."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id, _users.c.email_verified.is_(False))
                .values(email_verified=True, updated_at=to_iso(utcnow()))
            )
        return result.rowcount > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        session_id = uuid.uuid4().hex
        now = to_iso(utcnow())
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=to_iso(expires_at),
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=now,
                    updated_at=now,
                )
            )
        return session_id

    def get_session(self, token_hash: str) -> tuple[AuthSession, datetime] | None:
        """Return (session, last_refreshed_at) for a token hash, or None.

        The owning user is joined in; session.user is None when the account
        no longer exists. Expiry is NOT checked here -- the engine decides.
        """
        query = (
            select(_sessions, _users.c.email, _users.c.name, _users.c.email_verified, _users.c.role)
            .select_from(_sessions.outerjoin(_users, _users.c.id == _sessions.c.user_id))
            .where(_sessions.c.token_hash == token_hash)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return _row_to_session(row), from_iso(row.updated_at)

    def refresh_session(self, token_hash: str, expires_at: datetime) -> None:
        """Extend a session's expiry and stamp the refresh time."""
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.update()
                .where(_sessions.c.token_hash == token_hash)
                .values(expires_at=to_iso(expires_at), updated_at=to_iso(utcnow()))
            )

    def delete_session(self, token_hash: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str) -> int:
        """Revoke every session owned by user_id. Returns number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return result.rowcount

    # ------------------------------------------------------------------
    # Verifications
    # ------------------------------------------------------------------

    def put_verification(self, identifier: str, value: str, expires_at: datetime) -> None:
        """Store a verification secret, replacing any existing one with the same identifier."""
        with self.engine.begin() as conn:
            conn.execute(_verifications.delete().where(_verifications.c.identifier == identifier))
            conn.execute(
                _verifications.insert().values(
                    identifier=identifier,
                    value=value,
                    expires_at=to_iso(expires_at),
                    attempts=0,
                )
            )

    def get_verification(self, identifier: str) -> Verification | None:
        """Return a live verification record. Expired records are deleted and reported as absent."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _verifications.select().where(_verifications.c.identifier == identifier)
            ).fetchone()
        if row is None:
            return None
        verification = _row_to_verification(row)
        if verification.expires_at <= utcnow():
            self.delete_verification(identifier)
            return None
        return verification

    def increment_attempts(self, identifier: str) -> int:
        """Record a failed attempt and return the new attempt count."""
        with self.engine.begin() as conn:
            conn.execute(
                _verifications.update()
                .where(_verifications.c.identifier == identifier)
                .values(attempts=_verifications.c.attempts + 1)
            )
            attempts = conn.execute(
                select(_verifications.c.attempts).where(_verifications.c.identifier == identifier)
            ).scalar()
        return attempts or 0

    def delete_verification(self, identifier: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_verifications.delete().where(_verifications.c.identifier == identifier))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete expired sessions and verification records. Returns rows removed."""
        now = to_iso(utcnow())
        with self.engine.begin() as conn:
            sessions = conn.execute(_sessions.delete().where(_sessions.c.expires_at < now)).rowcount
            verifications = conn.execute(
                _verifications.delete().where(_verifications.c.expires_at < now)
            ).rowcount
        return sessions + verifications


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        email_verified=bool(row.email_verified),
        role=row.role,
        phone_number=row.phone_number,
        two_factor_enabled=bool(row.two_factor_enabled),
        oauth_provider=row.oauth_provider,
        oauth_subject=row.oauth_subject,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> AuthSession:
    user = None
    if row.email is not None:
        user = SessionUser(
            id=row.user_id,
            email=row.email,
            name=row.name,
            email_verified=bool(row.email_verified),
            role=row.role,
        )
    return AuthSession(
        id=row.id,
        user_id=row.user_id,
        expires_at=from_iso(row.expires_at),
        user=user,
    )


def _row_to_verification(row) -> Verification:
    return Verification(
        id=row.id,
        identifier=row.identifier,
        value=row.value,
        expires_at=from_iso(row.expires_at),
        attempts=row.attempts,
    )
