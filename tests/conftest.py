"""
tests/conftest.py -- Shared test fixtures for Gatekeeper integration tests.

This module provides:
  - make_settings(): Settings over a fresh named shared-memory SQLite DB
  - RecordingMailSender: captures outgoing mail instead of sending it
  - AuthFlow: drives sign-up / verification / sign-in through the HTTP API
  - client / app / auth_flow fixtures: one isolated app per test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A uuid
in the name keeps every test's database separate.

Settings are built with _env_file=None so a developer's .env never leaks
into the tests.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core.config import Settings
from mail.sender import MailDeliveryError, OutgoingMail

PASSWORD = "correct-horse-battery"
SECRET = "s" * 40


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": f"sqlite:///file:gatekeeper_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        "auth_secret": SECRET,
        "environment": "test",
        "allowed_origins": "http://localhost:3000",
        "auth_base_url": "http://testserver",
        "frontend_url": "http://localhost:3000",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class RecordingMailSender:
    """Stands in for MailSender. fail=True simulates an SMTP outage."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.outbox: list[OutgoingMail] = []

    async def send(self, to: str, subject: str, text: str, html: str) -> None:
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.outbox.append(OutgoingMail(to=to, subject=subject, text=text, html=html))


class AuthFlow:
    """Drive the auth sub-routes the way a browser client would."""

    def __init__(self, client: TestClient, mail: RecordingMailSender) -> None:
        self.client = client
        self.mail = mail

    def sign_up(self, email: str = "alice@example.com", password: str = PASSWORD, name: str = "Alice", **extra):
        body = {"email": email, "password": password, "name": name, **extra}
        return self.client.post("/api/auth/sign-up/email", json=body)

    def sign_in(self, email: str = "alice@example.com", password: str = PASSWORD):
        return self.client.post("/api/auth/sign-in/email", json={"email": email, "password": password})

    def sign_out(self):
        resp = self.client.post("/api/auth/sign-out")
        self.client.cookies.clear()
        return resp

    def last_link(self) -> str:
        match = re.search(r"https?://\S+", self.mail.outbox[-1].text)
        assert match, "no link in the last email"
        return match.group(0)

    def last_code(self) -> str:
        match = re.search(r"(\d{6})\s*$", self.mail.outbox[-1].text)
        assert match, "no code in the last email"
        return match.group(1)

    def register(self, email: str = "alice@example.com", password: str = PASSWORD, name: str = "Alice"):
        """Sign up and follow the verification link. Leaves the client signed in."""
        assert self.sign_up(email, password, name).status_code == 200
        resp = self.client.get(self.last_link())
        assert resp.status_code == 302
        return resp


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def mail() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def app(settings, mail):
    return create_app(settings, mail_sender=mail)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an isolated database.

    follow_redirects=False: verification, reset and OAuth flows are asserted
    on their Location headers.
    """
    with TestClient(app, follow_redirects=False) as c:
        yield c


@pytest.fixture
def auth_flow(client, mail) -> AuthFlow:
    return AuthFlow(client, mail)
