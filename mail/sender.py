"""
mail/sender.py -- Transactional email over SMTP.

MailSender wraps aiosmtplib so sending suspends the event loop instead of
blocking it. Templates live in mail/templates/ and are rendered with Jinja2
(autoescaped -- user names end up inside HTML).

Development mode: when SMTP_USER / SMTP_PASS are not configured, send()
logs the message (including the plain-text body, so verification links and
codes are visible locally) and returns without opening a connection.

Transport:
  SMTP_SECURE=true  -> implicit TLS (usually port 465)
  SMTP_SECURE=false -> plain connect, STARTTLS when the server offers it (587)

Layer rule: no imports from api/, auth/, or cache/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("gatekeeper.mail")

_TEMPLATE_DIR = Path(__file__).parent / "templates"
_SMTP_TIMEOUT = 10

_templates = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


class MailDeliveryError(RuntimeError):
    """Raised when the SMTP server rejects or cannot take the message."""


@dataclass(frozen=True)
class OutgoingMail:
    to: str
    subject: str
    text: str
    html: str


def render(template_name: str, **context) -> str:
    """Render one of the bundled email templates."""
    return _templates.get_template(template_name).render(**context)


class MailSender:
    """Send transactional email using the SMTP settings.

    Usage:
        sender = MailSender(settings)
        await sender.send("a@b.com", "Subject", "plain text", "<p>html</p>")
    """

    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.secure = settings.smtp_secure
        self.username = settings.smtp_user
        self.password = settings.smtp_pass
        self.sender = settings.smtp_sender
        self.configured = settings.smtp_configured

    def build_message(self, mail: OutgoingMail) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = mail.to
        message["Subject"] = mail.subject
        message.set_content(mail.text)
        message.add_alternative(mail.html, subtype="html")
        return message

    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        mail = OutgoingMail(to=to, subject=subject, text=text, html=html)
        if not self.configured:
            logger.info("SMTP not configured -- dev mode. To: %s | Subject: %s\n%s", to, subject, text)
            return
        await self._deliver(mail)

    async def _deliver(self, mail: OutgoingMail) -> None:
        message = self.build_message(mail)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.secure,
                timeout=_SMTP_TIMEOUT,
            )
        except aiosmtplib.SMTPException as exc:
            logger.error("Failed to send email to %s: %s", mail.to, exc)
            raise MailDeliveryError(str(exc)) from exc
        logger.info("Email sent to %s (%s)", mail.to, mail.subject)
