"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the auth
engine do the work.

Two views of the caller exist on purpose:
  AuthSession / SessionUser -- what the auth engine resolves from a request.
  Identity                  -- the normalized (id, email, name) projection the
                               rest of the application is allowed to see.

Layer rule: no imports from api/, mail/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account.

    hashed_password is None for OAuth-only users (they have no local password).
    oauth_provider / oauth_subject are None until the user signs in through a
    provider, at which point link_oauth() fills them in.
    """

    email: str
    name: str
    id: str | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    email_verified: bool = False
    role: str = "user"
    phone_number: str | None = None
    two_factor_enabled: bool = False
    oauth_provider: str | None = None  # "github", "google"
    oauth_subject: str | None = None  # provider's stable user ID
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    name: str
    email_verified: bool = False
    role: str = "user"


@dataclass(frozen=True)
class AuthSession:
    """A resolved session. user is None when the owning account is gone."""

    id: str
    user_id: str
    expires_at: datetime
    user: SessionUser | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as seen by route handlers."""

    id: str
    email: str
    name: str

    @classmethod
    def from_session(cls, session: AuthSession) -> "Identity":
        user = session.user
        if user is None:
            raise ValueError("session has no user")
        return cls(id=user.id, email=user.email, name=user.name)


@dataclass(frozen=True)
class RequestContext:
    """Per-request context. identity is None for anonymous requests."""

    identity: Identity | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


@dataclass
class Verification:
    """A short-lived secret: reset token, pending two-factor sign-in, or OTP."""

    identifier: str
    value: str
    expires_at: datetime
    id: int | None = None
    attempts: int = 0
