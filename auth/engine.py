"""
auth/engine.py -- The authentication engine and the boundary around it.

The rest of the application talks to authentication through exactly two
operations, declared by the AuthEngine protocol:

  get_session(headers) -> AuthSession | None
      Resolve the caller from request headers (session cookie, or an
      Authorization: Bearer header carrying the same token).

  handle(request) -> Response
      Serve one of the engine's own sub-routes. api/routes/auth.py mounts
      this at /api/auth/{path} and does nothing else.

Anything satisfying the protocol can be dropped in (tests use a fake).
LocalAuthEngine is the implementation shipped with the server:

  POST sign-up/email             create account, email a verification link
  POST sign-in/email             password sign-in (or start two-factor)
  POST sign-out                  revoke the current session
  GET  get-session               current session + user, or no data
  GET  verify-email              confirm email from the signed link
  POST send-verification-email   re-send the link
  POST forgot-password           email a reset link
  GET  reset-password/{token}    bounce the link to the frontend
  POST reset-password            set a new password
  POST two-factor/enable|disable toggle email OTP for the signed-in user
  POST two-factor/send-otp       email a one-time code for a pending sign-in
  POST two-factor/verify         finish a pending sign-in with the code
  GET  sign-in/social/{provider} start OAuth
  GET  callback/{provider}       finish OAuth

bcrypt and the SQLAlchemy store block, so they never run on the event loop.
Handlers that need nothing async are plain methods and handle() runs them
in Starlette's threadpool, the same split FastAPI makes between def and
async def routes. Async handlers (JSON bodies, mail, OAuth) push their
blocking steps through run_in_threadpool.

Failures raise core.responses.ApiError with one of the fixed messages from
core.responses; nothing from bcrypt, jose, authlib, or SQLAlchemy reaches
the client.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from dataclasses import replace
from typing import Awaitable, Callable, Mapping, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool
from starlette.requests import cookie_parser

from auth.config import AuthConfig
from auth.models import AuthSession, User
from auth.oauth import OAuthProfile, get_oauth_user_info
from auth.schemas import (
    EmailRequest,
    ForgotPasswordRequest,
    PasswordConfirmRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    VerifyOtpRequest,
)
from auth.store import UserStore, to_iso, utcnow
from auth.tokens import (
    DUMMY_HASH,
    SESSION_COOKIE,
    TWO_FACTOR_COOKIE,
    clear_session_cookie,
    clear_two_factor_cookie,
    create_signed_token,
    decode_signed_token,
    generate_otp,
    generate_token,
    hash_password,
    hash_token,
    otp_matches,
    set_session_cookie,
    set_two_factor_cookie,
    verify_password,
)
from cache.store import SessionCache
from core.responses import (
    EMAIL_NOT_VERIFIED,
    INVALID_CREDENTIALS,
    INVALID_OTP,
    INVALID_TOKEN,
    TOO_MANY_ATTEMPTS,
    UNAUTHORIZED,
    ApiError,
    SuccessResponse,
    field_errors,
)
from mail.sender import MailDeliveryError

logger = logging.getLogger("gatekeeper.auth")

_EMAIL_VERIFICATION = "email-verification"
_RESET_PREFIX = "reset-password:"
_TWO_FACTOR_PREFIX = "2fa:"
_OTP_PREFIX = "2fa-otp:"


class AuthEngine(Protocol):
    async def get_session(self, headers: Mapping[str, str]) -> Optional[AuthSession]: ...

    async def handle(self, request: Request) -> Response: ...


Handler = Callable[..., "Response | Awaitable[Response]"]


class LocalAuthEngine:
    """Email/password, email verification, password reset, email OTP, and OAuth.

    Usage:
        engine = LocalAuthEngine(config, UserStore(db.engine), SessionCache(ttl=300), build_oauth(settings))
        session = await engine.get_session(request.headers)
        response = await engine.handle(request)
    """

    def __init__(
        self,
        config: AuthConfig,
        store: UserStore,
        cache: Optional[SessionCache] = None,
        oauth: Optional[OAuth] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.cache = cache or SessionCache(ttl=int(config.session_cache_ttl.total_seconds()))
        self.oauth = oauth
        self._routes: list[tuple[str, re.Pattern, Handler]] = [
            ("POST", re.compile(r"^sign-up/email$"), self.sign_up_email),
            ("POST", re.compile(r"^sign-in/email$"), self.sign_in_email),
            ("POST", re.compile(r"^sign-out$"), self.sign_out),
            ("GET", re.compile(r"^get-session$"), self.get_session_route),
            ("GET", re.compile(r"^verify-email$"), self.verify_email),
            ("POST", re.compile(r"^send-verification-email$"), self.send_verification_email),
            ("POST", re.compile(r"^forgot-password$"), self.forgot_password),
            ("GET", re.compile(r"^reset-password/(?P<token>[^/]+)$"), self.reset_password_callback),
            ("POST", re.compile(r"^reset-password$"), self.reset_password),
            ("POST", re.compile(r"^two-factor/enable$"), self.enable_two_factor),
            ("POST", re.compile(r"^two-factor/disable$"), self.disable_two_factor),
            ("POST", re.compile(r"^two-factor/send-otp$"), self.send_otp),
            ("POST", re.compile(r"^two-factor/verify$"), self.verify_otp),
            ("GET", re.compile(r"^sign-in/social/(?P<provider>[a-z]+)$"), self.social_sign_in),
            ("GET", re.compile(r"^callback/(?P<provider>[a-z]+)$"), self.social_callback),
        ]

    # ------------------------------------------------------------------
    # Boundary operations
    # ------------------------------------------------------------------

    async def get_session(self, headers: Mapping[str, str]) -> Optional[AuthSession]:
        token = _extract_token(headers)
        if not token:
            return None
        return await run_in_threadpool(self._resolve, token)

    async def handle(self, request: Request) -> Response:
        path = str(request.path_params.get("path", "")).strip("/")
        path_matched = False
        for method, pattern, handler in self._routes:
            match = pattern.match(path)
            if match is None:
                continue
            path_matched = True
            if request.method == method:
                if inspect.iscoroutinefunction(handler):
                    return await handler(request, **match.groupdict())
                return await run_in_threadpool(handler, request, **match.groupdict())
        if path_matched:
            raise ApiError("Method not allowed", 405)
        raise ApiError("Not found", 404)

    def purge_expired(self) -> int:
        return self.store.purge_expired() + self.cache.purge_expired()

    # ------------------------------------------------------------------
    # Email + password
    # ------------------------------------------------------------------

    async def sign_up_email(self, request: Request) -> Response:
        body = await _parse(request, SignUpRequest)
        self._check_password_policy(body.password, "password")
        created = await run_in_threadpool(self._create_password_user, body)
        logger.info("User signed up: %s", created.id)

        if self.config.send_verification_on_sign_up:
            await self._send_verification(created, body.callback_url)

        if self.config.require_email_verification:
            return SuccessResponse(
                message="Account created. Check your email to verify your address.",
                data={"user": _public_user(created)},
            ).to_response()
        return await run_in_threadpool(self._start_session, request, created, "Account created")

    def _create_password_user(self, body: SignUpRequest) -> User:
        if self.store.get_by_email(body.email) is not None:
            raise ApiError("User already exists", 409)
        user = User(
            email=body.email,
            name=body.name,
            hashed_password=hash_password(body.password),
            phone_number=body.phone_number,
        )
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            raise ApiError("User already exists", 409) from exc
        return self.store.get_by_id(user_id)

    async def sign_in_email(self, request: Request) -> Response:
        body = await _parse(request, SignInRequest)
        user = await run_in_threadpool(self._authenticate, body.email, body.password)

        if self.config.require_email_verification and not user.email_verified:
            await self._send_verification(user, None)
            raise ApiError(EMAIL_NOT_VERIFIED, 403)

        if user.two_factor_enabled:
            return await run_in_threadpool(self._start_two_factor, user)
        return await run_in_threadpool(self._start_session, request, user, "Signed in successfully")

    def _authenticate(self, email: str, password: str) -> User:
        user = self.store.get_by_email(email)
        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return early before running bcrypt
            verify_password(password, DUMMY_HASH)
            raise ApiError(INVALID_CREDENTIALS, 401)
        if not verify_password(password, user.hashed_password):
            raise ApiError(INVALID_CREDENTIALS, 401)
        return user

    def _start_two_factor(self, user: User) -> Response:
        pending = generate_token()
        self.store.put_verification(
            _TWO_FACTOR_PREFIX + self._hash(pending),
            user.id,
            utcnow() + self.config.otp_expires_in,
        )
        response = SuccessResponse(
            message="Two-factor authentication required",
            data={"twoFactorRedirect": True},
        ).to_response()
        set_two_factor_cookie(
            response,
            pending,
            max_age=int(self.config.otp_expires_in.total_seconds()),
            secure=self.config.secure_cookies,
        )
        return response

    def sign_out(self, request: Request) -> Response:
        token = _extract_token(request.headers)
        if token:
            token_hash = self._hash(token)
            self.store.delete_session(token_hash)
            self.cache.delete(token_hash)
        response = SuccessResponse(message="Signed out").to_response()
        clear_session_cookie(response)
        return response

    def get_session_route(self, request: Request) -> Response:
        token = _extract_token(request.headers)
        session = self._resolve(token) if token else None
        if session is None or session.user is None:
            return SuccessResponse(message="No active session").to_response()
        user = session.user
        return SuccessResponse(
            message="Active session",
            data={
                "session": {"id": session.id, "userId": session.user_id, "expiresAt": to_iso(session.expires_at)},
                "user": {
                    "id": user.id,
                    "email": user.email,
                    "name": user.name,
                    "emailVerified": user.email_verified,
                    "role": user.role,
                },
            },
        ).to_response()

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verify_email(self, request: Request) -> Response:
        """Confirm the address from a signed link.

        The link stays decodable for its whole lifetime, so only the request
        that actually flips email_verified may sign the user in. Later uses
        redirect (or answer) without a session.
        """
        callback = self._safe_callback(request.query_params.get("callbackURL"))
        email = decode_signed_token(self.config.secret, request.query_params.get("token", ""), _EMAIL_VERIFICATION)
        user = self.store.get_by_email(email) if email else None
        if user is None:
            if callback:
                return RedirectResponse(_with_query(callback, error="INVALID_TOKEN"), status_code=302)
            raise ApiError(INVALID_TOKEN, 400)

        if not self.store.mark_email_verified(user.id):
            if callback:
                return RedirectResponse(callback, status_code=302)
            return SuccessResponse(message="Email already verified").to_response()

        user = replace(user, email_verified=True)
        logger.info("Email verified for user %s", user.id)
        if callback:
            response: Response = RedirectResponse(callback, status_code=302)
        else:
            response = SuccessResponse(message="Email verified", data={"user": _public_user(user)}).to_response()
        if self.config.auto_sign_in_after_verification:
            self._attach_session(request, response, user)
        return response

    async def send_verification_email(self, request: Request) -> Response:
        body = await _parse(request, EmailRequest)
        user = await run_in_threadpool(self.store.get_by_email, body.email)
        if user is not None and not user.email_verified:
            await self._send_verification(user, body.callback_url)
        return SuccessResponse(message="If the account exists, a verification email has been sent").to_response()

    async def _send_verification(self, user: User, callback_url: Optional[str]) -> None:
        token = create_signed_token(
            self.config.secret, user.email, _EMAIL_VERIFICATION, self.config.verification_expires_in
        )
        callback = self._safe_callback(callback_url) or self.config.email_verification_callback
        url = _with_query(self._auth_url("verify-email"), token=token, callbackURL=callback)
        try:
            await self.config.email_hooks.send_verification_email(user.email, user.name, url)
        except MailDeliveryError:
            # Not fatal: send-verification-email re-sends the link.
            logger.error("Verification email to user %s could not be delivered", user.id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, request: Request) -> Response:
        body = await _parse(request, ForgotPasswordRequest)
        user = await run_in_threadpool(self.store.get_by_email, body.email)
        if user is not None:
            url = await run_in_threadpool(self._issue_reset_link, user, body.redirect_to)
            await _deliver(self.config.email_hooks.send_reset_password(user.email, user.name, url))
            logger.info("Password reset requested for user %s", user.id)
        return SuccessResponse(message="If the account exists, a reset link has been sent").to_response()

    def _issue_reset_link(self, user: User, redirect_to: Optional[str]) -> str:
        token = generate_token()
        self.store.put_verification(
            _RESET_PREFIX + self._hash(token),
            user.id,
            utcnow() + self.config.reset_password_expires_in,
        )
        callback = self._safe_callback(redirect_to) or self.config.reset_password_callback
        return _with_query(self._auth_url(f"reset-password/{token}"), callbackURL=callback)

    def reset_password_callback(self, request: Request, token: str) -> Response:
        callback = self._safe_callback(request.query_params.get("callbackURL")) or self.config.reset_password_callback
        if self.store.get_verification(_RESET_PREFIX + self._hash(token)) is None:
            return RedirectResponse(_with_query(callback, error="INVALID_TOKEN"), status_code=302)
        return RedirectResponse(_with_query(callback, token=token), status_code=302)

    async def reset_password(self, request: Request) -> Response:
        body = await _parse(request, ResetPasswordRequest)
        self._check_password_policy(body.new_password, "newPassword")
        await run_in_threadpool(self._reset_password, body.token, body.new_password)
        return SuccessResponse(message="Password reset successfully").to_response()

    def _reset_password(self, token: str, new_password: str) -> None:
        identifier = _RESET_PREFIX + self._hash(token)
        verification = self.store.get_verification(identifier)
        if verification is None:
            raise ApiError(INVALID_TOKEN, 400)

        user_id = verification.value
        self.store.update_user(user_id, hashed_password=hash_password(new_password))
        self.store.delete_verification(identifier)
        self._revoke_all(user_id)
        logger.info("Password reset for user %s", user_id)

    def _check_password_policy(self, password: str, field: str) -> None:
        low, high = self.config.min_password_length, self.config.max_password_length
        if not low <= len(password) <= high:
            raise ApiError(
                "Validation failed",
                400,
                data=[{"field": field, "message": f"Password must be between {low} and {high} characters"}],
            )

    # ------------------------------------------------------------------
    # Two-factor (email OTP)
    # ------------------------------------------------------------------

    async def enable_two_factor(self, request: Request) -> Response:
        user = await self._confirm_password(request)
        await run_in_threadpool(self.store.update_user, user.id, two_factor_enabled=True)
        logger.info("Two-factor enabled for user %s", user.id)
        return SuccessResponse(message="Two-factor authentication enabled").to_response()

    async def disable_two_factor(self, request: Request) -> Response:
        user = await self._confirm_password(request)
        await run_in_threadpool(self.store.update_user, user.id, two_factor_enabled=False)
        logger.info("Two-factor disabled for user %s", user.id)
        return SuccessResponse(message="Two-factor authentication disabled").to_response()

    async def send_otp(self, request: Request) -> Response:
        user, code = await run_in_threadpool(self._issue_otp, request)
        await _deliver(self.config.email_hooks.send_otp(user.email, user.name, code))
        return SuccessResponse(message="Verification code sent").to_response()

    def _issue_otp(self, request: Request) -> tuple[User, str]:
        user = self._pending_two_factor_user(request)
        code = generate_otp(self.config.otp_digits)
        self.store.put_verification(
            _OTP_PREFIX + user.id,
            self._hash(code),
            utcnow() + self.config.otp_expires_in,
        )
        return user, code

    async def verify_otp(self, request: Request) -> Response:
        user = await run_in_threadpool(self._pending_two_factor_user, request)
        body = await _parse(request, VerifyOtpRequest)
        return await run_in_threadpool(self._finish_two_factor, request, user, body.code)

    def _finish_two_factor(self, request: Request, user: User, code: str) -> Response:
        identifier = _OTP_PREFIX + user.id
        otp = self.store.get_verification(identifier)
        if otp is None:
            raise ApiError(INVALID_OTP, 401)
        if otp.attempts >= self.config.otp_allowed_attempts:
            self.store.delete_verification(identifier)
            raise ApiError(TOO_MANY_ATTEMPTS, 401)
        if not otp_matches(self.config.secret, code, otp.value):
            attempts = self.store.increment_attempts(identifier)
            if attempts >= self.config.otp_allowed_attempts:
                self.store.delete_verification(identifier)
                raise ApiError(TOO_MANY_ATTEMPTS, 401)
            raise ApiError(INVALID_OTP, 401)

        self.store.delete_verification(identifier)
        pending = request.cookies.get(TWO_FACTOR_COOKIE, "")
        self.store.delete_verification(_TWO_FACTOR_PREFIX + self._hash(pending))
        response = self._start_session(request, user, "Signed in successfully")
        clear_two_factor_cookie(response)
        return response

    def _pending_two_factor_user(self, request: Request) -> User:
        pending = request.cookies.get(TWO_FACTOR_COOKIE)
        if not pending:
            raise ApiError(UNAUTHORIZED, 401)
        verification = self.store.get_verification(_TWO_FACTOR_PREFIX + self._hash(pending))
        user = self.store.get_by_id(verification.value) if verification is not None else None
        if user is None:
            raise ApiError(UNAUTHORIZED, 401)
        return user

    async def _confirm_password(self, request: Request) -> User:
        session = await self._require_session(request)
        body = await _parse(request, PasswordConfirmRequest)
        return await run_in_threadpool(self._check_password, session.user_id, body.password)

    def _check_password(self, user_id: str, password: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise ApiError(UNAUTHORIZED, 401)
        if user.hashed_password is None or not verify_password(password, user.hashed_password):
            raise ApiError("Invalid password", 400)
        return user

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def social_sign_in(self, request: Request, provider: str) -> Response:
        client = self._oauth_client(provider)
        request.session["oauth_callback"] = (
            self._safe_callback(request.query_params.get("callbackURL")) or self.config.frontend_url
        )
        return await client.authorize_redirect(request, self._auth_url(f"callback/{provider}"))

    async def social_callback(self, request: Request, provider: str) -> Response:
        client = self._oauth_client(provider)
        callback = request.session.pop("oauth_callback", None) or self.config.frontend_url
        try:
            token = await client.authorize_access_token(request)
            profile = await get_oauth_user_info(client, provider, token)
        except (OAuthError, ValueError, httpx.HTTPError) as exc:
            logger.warning("OAuth callback failed for %s: %s", provider, exc)
            return RedirectResponse(_with_query(callback, error="OAUTH_FAILED"), status_code=302)

        response = RedirectResponse(callback, status_code=302)
        await run_in_threadpool(self._sign_in_oauth_user, request, response, provider, profile)
        return response

    def _sign_in_oauth_user(
        self, request: Request, response: Response, provider: str, profile: OAuthProfile
    ) -> None:
        user = self.store.get_by_oauth(provider, profile.subject)
        if user is None:
            user = self.store.get_by_email(profile.email)
            if user is not None:
                self.store.link_oauth(user.id, provider, profile.subject)
            else:
                user_id = self.store.create_user(
                    User(
                        email=profile.email,
                        name=profile.name,
                        email_verified=True,
                        oauth_provider=provider,
                        oauth_subject=profile.subject,
                    )
                )
                logger.info("User signed up via %s: %s", provider, user_id)
            user = self.store.get_by_oauth(provider, profile.subject)
        self._attach_session(request, response, user)

    def _oauth_client(self, provider: str):
        client = self.oauth.create_client(provider) if self.oauth is not None else None
        if client is None:
            raise ApiError("Unknown OAuth provider", 404)
        return client

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _resolve(self, token: str) -> Optional[AuthSession]:
        """Token -> live session, via the read cache when possible.

        A cache hit is only served while the session itself is unexpired, so
        the cache can never revive an expired session.
        """
        token_hash = self._hash(token)
        now = utcnow()

        cached = self.cache.get(token_hash)
        if cached is not None:
            if cached.expires_at > now:
                return cached
            self.cache.delete(token_hash)

        found = self.store.get_session(token_hash)
        if found is None:
            return None
        session, refreshed_at = found
        if session.expires_at <= now:
            self.store.delete_session(token_hash)
            return None
        if session.user is None:
            return session

        if now - refreshed_at >= self.config.session_update_age:
            expires_at = now + self.config.session_expires_in
            self.store.refresh_session(token_hash, expires_at)
            session = replace(session, expires_at=expires_at)

        self.cache.set(token_hash, session)
        return session

    async def _require_session(self, request: Request) -> AuthSession:
        session = await self.get_session(request.headers)
        if session is None or session.user is None:
            raise ApiError(UNAUTHORIZED, 401)
        return session

    def _start_session(self, request: Request, user: User, message: str) -> Response:
        token, expires_at = self._create_session(request, user)
        response = SuccessResponse(
            message=message,
            data={"token": token, "expiresAt": to_iso(expires_at), "user": _public_user(user)},
        ).to_response()
        self._set_cookie(response, token)
        return response

    def _attach_session(self, request: Request, response: Response, user: User) -> None:
        token, _ = self._create_session(request, user)
        self._set_cookie(response, token)

    def _create_session(self, request: Request, user: User):
        token = generate_token()
        expires_at = utcnow() + self.config.session_expires_in
        self.store.create_session(
            user.id,
            self._hash(token),
            expires_at,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        return token, expires_at

    def _set_cookie(self, response: Response, token: str) -> None:
        set_session_cookie(
            response,
            token,
            max_age=int(self.config.session_expires_in.total_seconds()),
            secure=self.config.secure_cookies,
        )

    def _revoke_all(self, user_id: str) -> None:
        self.store.delete_user_sessions(user_id)
        self.cache.delete_where(lambda session: session.user_id == user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _hash(self, raw: str) -> str:
        return hash_token(self.config.secret, raw)

    def _auth_url(self, sub_path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/api/auth/{sub_path}"

    def _safe_callback(self, url: Optional[str]) -> Optional[str]:
        """Accept only relative paths or URLs on the frontend / auth origins.

        Prevents open redirects through callbackURL / redirectTo.
        """
        if not url:
            return None
        if url.startswith("/") and not url.startswith("//"):
            return url
        for origin in (self.config.frontend_url, self.config.base_url):
            if _same_origin(url, origin):
                return url
        logger.warning("Rejected untrusted callback URL")
        return None


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Session token from the cookie, else from Authorization: Bearer."""
    lowered = {key.lower(): value for key, value in headers.items()}
    cookie_header = lowered.get("cookie")
    if cookie_header:
        token = cookie_parser(cookie_header).get(SESSION_COOKIE)
        if token:
            return token
    auth_header = lowered.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


async def _deliver(sending: Awaitable[None]) -> None:
    try:
        await sending
    except MailDeliveryError as exc:
        raise ApiError("Email could not be sent, please try again later", 500) from exc


async def _parse(request: Request, model: type[BaseModel]):
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiError("Malformed JSON body", 400) from exc
    if not isinstance(payload, dict):
        raise ApiError("Request body must be a JSON object", 400)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ApiError("Validation failed", 400, data=field_errors(exc.errors())) from exc


def _public_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "emailVerified": user.email_verified,
        "role": user.role,
        "phoneNumber": user.phone_number,
        "twoFactorEnabled": user.two_factor_enabled,
        "createdAt": user.created_at,
    }


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _same_origin(url: str, origin: str) -> bool:
    a, b = urlsplit(url), urlsplit(origin)
    return bool(a.scheme and a.netloc) and (a.scheme, a.netloc) == (b.scheme, b.netloc)
