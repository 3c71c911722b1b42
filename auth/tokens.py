"""
auth/tokens.py -- Password hashing, session tokens, signed links, and OTP codes.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in the engine's sign-in so response time
       does not reveal whether an email is registered.

  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. The
       database stores HMAC-SHA256(AUTH_SECRET, token) so a leaked sessions
       table cannot be replayed, and lookup stays O(1).

  Verification links: python-jose HS256 JWTs carrying the email and a
       "purpose" claim, signed with AUTH_SECRET. Verification returns None on
       any failure -- the engine turns that into a fixed error message.

  OTP codes: secrets.randbelow, zero-padded. Stored hashed like session
       tokens and compared with hmac.compare_digest.

Layer rule: no imports from api/, mail/, or cache/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

_ALGORITHM = "HS256"

SESSION_COOKIE = "session_token"
TWO_FACTOR_COOKIE = "two_factor"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes and bcrypt 4.x rejects longer
    input outright. The policy allows up to 128 characters, so the encoded
    password is truncated to 72 bytes in _bcrypt_input().
    """
    return bcrypt.hashpw(_bcrypt_input(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_bcrypt_input(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def _bcrypt_input(plain: str) -> bytes:
    return plain.encode("utf-8")[:72]


# Computed once at module load so the first sign-in attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("gatekeeper_timing_dummy")


# ---------------------------------------------------------------------------
# Opaque tokens
# ---------------------------------------------------------------------------


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(secret: str, raw: str) -> str:
    """Return HMAC-SHA256(secret, raw) as a hex string."""
    return hmac.new(secret.encode(), raw.encode(), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Signed links (JWT)
# ---------------------------------------------------------------------------


def create_signed_token(secret: str, subject: str, purpose: str, expires_in: timedelta) -> str:
    """Encode a JWT binding subject (an email or user ID) to a single purpose."""
    payload = {
        "sub": subject,
        "purpose": purpose,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_signed_token(secret: str, token: str, purpose: str) -> str | None:
    """Return the subject of a valid token for purpose, or None on any failure."""
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose") != purpose or not payload.get("sub"):
        return None
    return payload["sub"]


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


def generate_otp(digits: int = 6) -> str:
    return str(secrets.randbelow(10**digits)).zfill(digits)


def otp_matches(secret: str, code: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_token(secret, code.strip()), stored_hash)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS in production.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def set_two_factor_cookie(response, token: str, max_age: int, secure: bool) -> None:
    response.set_cookie(
        TWO_FACTOR_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
        path="/",
    )


def clear_two_factor_cookie(response) -> None:
    response.delete_cookie(TWO_FACTOR_COOKIE, path="/")
