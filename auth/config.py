"""
auth/config.py -- Declarative configuration for the auth engine.

AuthConfig holds the policy knobs (password bounds, session lifetime,
refresh cadence, cache window, OTP shape) and the EmailHooks the engine
calls when it needs to send a verification link, a reset link, or a
one-time code. The hooks render the mail/templates and hand the result to
the MailSender -- the engine itself knows nothing about SMTP or HTML.

Callback links:
  verification -> FRONTEND_URL/email-verification
  reset        -> FRONTEND_URL/reset-password
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Awaitable, Callable

from core.config import Settings
from mail.sender import MailSender, render

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

# (email, name, url_or_code) -> None
EmailHook = Callable[[str, str, str], Awaitable[None]]


async def _noop_hook(email: str, name: str, value: str) -> None:
    return None


@dataclass(frozen=True)
class EmailHooks:
    send_verification_email: EmailHook = _noop_hook
    send_reset_password: EmailHook = _noop_hook
    send_otp: EmailHook = _noop_hook


@dataclass(frozen=True)
class AuthConfig:
    secret: str
    base_url: str
    frontend_url: str
    secure_cookies: bool = False

    min_password_length: int = MIN_PASSWORD_LENGTH
    max_password_length: int = MAX_PASSWORD_LENGTH
    require_email_verification: bool = True
    send_verification_on_sign_up: bool = True
    auto_sign_in_after_verification: bool = True

    session_expires_in: timedelta = timedelta(days=7)
    session_update_age: timedelta = timedelta(days=1)
    session_cache_ttl: timedelta = timedelta(minutes=5)

    verification_expires_in: timedelta = timedelta(hours=1)
    reset_password_expires_in: timedelta = timedelta(hours=1)

    otp_digits: int = 6
    otp_expires_in: timedelta = timedelta(minutes=10)
    otp_allowed_attempts: int = 5

    email_hooks: EmailHooks = field(default_factory=EmailHooks)

    @property
    def email_verification_callback(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/email-verification"

    @property
    def reset_password_callback(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/reset-password"


def build_email_hooks(sender: MailSender, otp_minutes: int = 10, reset_minutes: int = 60) -> EmailHooks:
    """Wire the three auth email callbacks to a MailSender."""

    async def send_verification_email(email: str, name: str, url: str) -> None:
        await sender.send(
            email,
            "Verify your email",
            f"Click here to verify your email: {url}",
            render("verify_email.html", name=name, url=url),
        )

    async def send_reset_password(email: str, name: str, url: str) -> None:
        await sender.send(
            email,
            "Reset your password",
            f"Click the link to reset your password: {url}",
            render("reset_password.html", name=name, url=url, expires_minutes=reset_minutes),
        )

    async def send_otp(email: str, name: str, otp: str) -> None:
        await sender.send(
            email,
            "Your Two-Factor Authentication Code",
            f"Your verification code is: {otp}",
            render("two_factor_otp.html", name=name, otp=otp, expires_minutes=otp_minutes),
        )

    return EmailHooks(
        send_verification_email=send_verification_email,
        send_reset_password=send_reset_password,
        send_otp=send_otp,
    )


def build_auth_config(settings: Settings, sender: MailSender) -> AuthConfig:
    config = AuthConfig(
        secret=settings.auth_secret,
        base_url=settings.auth_base_url,
        frontend_url=settings.frontend_url,
        secure_cookies=settings.is_production,
    )
    hooks = build_email_hooks(
        sender,
        otp_minutes=int(config.otp_expires_in.total_seconds() // 60),
        reset_minutes=int(config.reset_password_expires_in.total_seconds() // 60),
    )
    return replace(config, email_hooks=hooks)
