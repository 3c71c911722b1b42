"""
tests/test_auth_flow.py -- End-to-end tests for the local auth engine.

Every flow runs through the real ASGI stack with a recording mail sender, so
links and one-time codes are read out of the captured emails exactly as a
user would click or type them.

Coverage:
  - Sign-up: password policy enforced before any record exists, 409 on
    duplicates, verification email sent, mail failures tolerated
  - Sign-in: fixed failure messages, unverified accounts re-sent a link
  - Sessions: cookie and Bearer, sign-out, expiry honoured with and without
    a warm cache, silent refresh
  - Email verification and password reset links, open-redirect protection
  - Two-factor email OTP including the attempt ceiling
  - Sub-route dispatch: 404 / 405 in the envelope shape
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from api.main import create_app
from auth.store import utcnow
from auth.tokens import SESSION_COOKIE, TWO_FACTOR_COOKIE, hash_token
from conftest import PASSWORD, SECRET, AuthFlow, RecordingMailSender

# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


class TestSignUp:
    def test_short_password_rejected_before_any_record(self, client, auth_flow):
        resp = auth_flow.sign_up(email="a@b.com", name="A", password="x")
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert any(err["field"] == "password" for err in body["data"])
        assert client.app.state.user_store.count_users() == 0

    def test_overlong_password_rejected(self, client, auth_flow):
        resp = auth_flow.sign_up(password="p" * 129)
        assert resp.status_code == 400
        assert client.app.state.user_store.count_users() == 0

    def test_password_kept_exactly_as_sent(self, client, auth_flow):
        padded = "abcdefg "
        auth_flow.register(email="  alice@example.com ", password=padded)
        auth_flow.sign_out()
        assert auth_flow.sign_in(password=padded).status_code == 200
        client.cookies.clear()
        assert auth_flow.sign_in(password="abcdefg").status_code == 401

    def test_password_bounds_come_from_auth_config(self, client, auth_flow):
        engine = client.app.state.auth_engine
        engine.config = replace(engine.config, min_password_length=12)
        resp = auth_flow.sign_up(password="eleven-char")
        assert resp.status_code == 400
        assert resp.json()["data"] == [
            {"field": "password", "message": "Password must be between 12 and 128 characters"}
        ]
        assert client.app.state.user_store.count_users() == 0
        assert auth_flow.sign_up(password="twelve-chars").status_code == 200

    def test_sign_up_sends_verification_and_no_session(self, client, auth_flow, mail):
        resp = auth_flow.sign_up(phoneNumber="+15550100")
        assert resp.status_code == 200
        user = resp.json()["data"]["user"]
        assert user["email"] == "alice@example.com"
        assert user["emailVerified"] is False
        assert user["phoneNumber"] == "+15550100"
        assert "hashed_password" not in user
        assert SESSION_COOKIE not in client.cookies
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == "alice@example.com"
        assert "/api/auth/verify-email?token=" in mail.outbox[0].text

    def test_duplicate_email_is_409(self, auth_flow):
        assert auth_flow.sign_up().status_code == 200
        resp = auth_flow.sign_up(email="ALICE@example.com")
        assert resp.status_code == 409
        assert resp.json()["message"] == "User already exists"

    def test_malformed_json_is_400(self, client):
        resp = client.post(
            "/api/auth/sign-up/email",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_mail_outage_does_not_block_sign_up(self, settings):
        app = create_app(settings, mail_sender=RecordingMailSender(fail=True))
        with TestClient(app) as client:
            resp = AuthFlow(client, RecordingMailSender()).sign_up()
            assert resp.status_code == 200
            assert client.app.state.user_store.count_users() == 1

    def test_mail_outage_fails_forgot_password(self, settings):
        app = create_app(settings, mail_sender=RecordingMailSender(fail=True))
        with TestClient(app) as client:
            AuthFlow(client, RecordingMailSender()).sign_up()
            resp = client.post("/api/auth/forgot-password", json={"email": "alice@example.com"})
            assert resp.status_code == 500
            assert resp.json()["success"] is False

    def test_untrusted_callback_url_is_replaced(self, auth_flow, mail):
        auth_flow.sign_up(callbackURL="https://evil.example.com/steal")
        link = auth_flow.last_link()
        callback = parse_qs(urlparse(link).query)["callbackURL"][0]
        assert callback == "http://localhost:3000/email-verification"
        assert "evil.example.com" not in mail.outbox[-1].html


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class TestEmailVerification:
    def test_link_verifies_and_signs_in(self, client, auth_flow):
        auth_flow.sign_up()
        resp = client.get(auth_flow.last_link())
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://localhost:3000/email-verification"
        assert SESSION_COOKIE in client.cookies

        me = client.get("/api/me")
        assert me.status_code == 200
        assert client.app.state.user_store.get_by_email("alice@example.com").email_verified is True

    def test_reused_link_does_not_sign_in_again(self, client, auth_flow):
        auth_flow.register()
        link = auth_flow.last_link()
        auth_flow.sign_out()

        resp = client.get(link)
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://localhost:3000/email-verification"
        assert "set-cookie" not in resp.headers
        assert SESSION_COOKIE not in client.cookies

        bare = link.split("&callbackURL=")[0]
        resp = client.get(bare)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Email already verified"
        assert "data" not in resp.json()
        assert "set-cookie" not in resp.headers

    def test_bad_token_without_callback_is_400(self, client):
        resp = client.get("/api/auth/verify-email", params={"token": "garbage"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid or expired token"

    def test_bad_token_with_callback_redirects_with_error(self, client):
        resp = client.get(
            "/api/auth/verify-email",
            params={"token": "garbage", "callbackURL": "http://localhost:3000/email-verification"},
        )
        assert resp.status_code == 302
        assert resp.headers["location"].endswith("?error=INVALID_TOKEN")

    def test_resend_is_always_200(self, client, auth_flow, mail):
        auth_flow.sign_up()
        sent = len(mail.outbox)
        assert client.post("/api/auth/send-verification-email", json={"email": "alice@example.com"}).status_code == 200
        assert len(mail.outbox) == sent + 1
        resp = client.post("/api/auth/send-verification-email", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert len(mail.outbox) == sent + 1


# ---------------------------------------------------------------------------
# Sign-in / sessions
# ---------------------------------------------------------------------------


class TestSignIn:
    def test_unverified_user_gets_403_and_new_link(self, auth_flow, mail):
        auth_flow.sign_up()
        sent = len(mail.outbox)
        resp = auth_flow.sign_in()
        assert resp.status_code == 403
        assert resp.json()["message"] == "Email not verified"
        assert len(mail.outbox) == sent + 1

    def test_wrong_password_and_unknown_user_share_a_message(self, auth_flow):
        auth_flow.register()
        auth_flow.sign_out()
        wrong = auth_flow.sign_in(password="not-the-password")
        unknown = auth_flow.sign_in(email="nobody@example.com")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["message"] == unknown.json()["message"] == "Invalid email or password"

    def test_sign_in_sets_cookie_and_returns_token(self, client, auth_flow):
        auth_flow.register()
        auth_flow.sign_out()
        resp = auth_flow.sign_in()
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["token"]
        assert data["user"]["emailVerified"] is True
        assert client.cookies[SESSION_COOKIE] == data["token"]

    def test_bearer_token_is_accepted(self, client, auth_flow):
        auth_flow.register()
        token = auth_flow.sign_in().json()["data"]["token"]
        client.cookies.clear()
        resp = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == "alice@example.com"

    def test_get_session(self, client, auth_flow):
        anonymous = client.get("/api/auth/get-session")
        assert anonymous.status_code == 200
        assert "data" not in anonymous.json()

        auth_flow.register()
        data = client.get("/api/auth/get-session").json()["data"]
        assert data["user"]["email"] == "alice@example.com"
        assert data["session"]["expiresAt"]

    def test_sign_out_revokes_session(self, client, auth_flow):
        auth_flow.register()
        token = client.cookies[SESSION_COOKIE]
        assert client.get("/api/me").status_code == 200
        assert client.post("/api/auth/sign-out").status_code == 200
        client.cookies.set(SESSION_COOKIE, token)
        assert client.get("/api/me").status_code == 401


class TestSessionExpiry:
    def _signed_in_token(self, client, auth_flow) -> str:
        auth_flow.register()
        token = auth_flow.sign_in().json()["data"]["token"]
        client.cookies.clear()
        client.cookies.set(SESSION_COOKIE, token)
        return token

    def test_expired_session_is_401_on_every_request(self, client, auth_flow):
        token = self._signed_in_token(client, auth_flow)
        client.app.state.user_store.refresh_session(hash_token(SECRET, token), utcnow() - timedelta(minutes=1))

        assert client.get("/api/me").status_code == 401
        assert client.get("/api/me").status_code == 401

    def test_cached_session_still_honours_expiry(self, client, auth_flow):
        token = self._signed_in_token(client, auth_flow)
        assert client.get("/api/me").status_code == 200  # warms the cache

        token_hash = hash_token(SECRET, token)
        engine = client.app.state.auth_engine
        past = utcnow() - timedelta(seconds=1)
        engine.cache.set(token_hash, replace(engine.cache.get(token_hash), expires_at=past))
        client.app.state.user_store.refresh_session(token_hash, past)

        assert client.get("/api/me").status_code == 401
        assert client.get("/api/me").status_code == 401

    def test_session_refreshed_after_update_age(self, client, auth_flow):
        token = self._signed_in_token(client, auth_flow)
        engine = client.app.state.auth_engine
        engine.config = replace(engine.config, session_update_age=timedelta(0))
        store = client.app.state.user_store
        token_hash = hash_token(SECRET, token)

        before, _ = store.get_session(token_hash)
        assert client.get("/api/me").status_code == 200
        after, _ = store.get_session(token_hash)
        assert after.expires_at > before.expires_at


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def _request_reset(self, client, auth_flow) -> str:
        resp = client.post("/api/auth/forgot-password", json={"email": "alice@example.com"})
        assert resp.status_code == 200
        bounce = client.get(auth_flow.last_link())
        assert bounce.status_code == 302
        location = urlparse(bounce.headers["location"])
        assert location.netloc == "localhost:3000"
        assert location.path == "/reset-password"
        return parse_qs(location.query)["token"][0]

    def test_full_reset_revokes_old_sessions(self, client, auth_flow):
        auth_flow.register()
        old_token = client.cookies[SESSION_COOKIE]
        assert client.get("/api/me").status_code == 200

        token = self._request_reset(client, auth_flow)
        resp = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brand-new-secret"})
        assert resp.status_code == 200

        client.cookies.clear()
        client.cookies.set(SESSION_COOKIE, old_token)
        assert client.get("/api/me").status_code == 401

        client.cookies.clear()
        assert auth_flow.sign_in(password=PASSWORD).status_code == 401
        assert auth_flow.sign_in(password="brand-new-secret").status_code == 200

    def test_reset_token_is_single_use(self, client, auth_flow):
        auth_flow.register()
        token = self._request_reset(client, auth_flow)
        body = {"token": token, "newPassword": "brand-new-secret"}
        assert client.post("/api/auth/reset-password", json=body).status_code == 200
        again = client.post("/api/auth/reset-password", json=body)
        assert again.status_code == 400
        assert again.json()["message"] == "Invalid or expired token"

    def test_reset_enforces_password_policy(self, client, auth_flow):
        auth_flow.register()
        token = self._request_reset(client, auth_flow)
        resp = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "short"})
        assert resp.status_code == 400

    def test_unknown_email_is_still_200(self, client, mail):
        resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert mail.outbox == []

    def test_bad_link_redirects_with_error(self, client):
        resp = client.get("/api/auth/reset-password/not-a-real-token")
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://localhost:3000/reset-password?error=INVALID_TOKEN"


# ---------------------------------------------------------------------------
# Two-factor
# ---------------------------------------------------------------------------


class TestTwoFactor:
    def _enable_and_start(self, client, auth_flow) -> None:
        auth_flow.register()
        resp = client.post("/api/auth/two-factor/enable", json={"password": PASSWORD})
        assert resp.status_code == 200
        auth_flow.sign_out()

        resp = auth_flow.sign_in()
        assert resp.status_code == 200
        assert resp.json()["data"] == {"twoFactorRedirect": True}
        assert TWO_FACTOR_COOKIE in client.cookies
        assert SESSION_COOKIE not in client.cookies

    def test_otp_sign_in(self, client, auth_flow):
        self._enable_and_start(client, auth_flow)
        assert client.post("/api/auth/two-factor/send-otp").status_code == 200
        code = auth_flow.last_code()

        resp = client.post("/api/auth/two-factor/verify", json={"code": code})
        assert resp.status_code == 200
        assert SESSION_COOKIE in client.cookies
        assert client.get("/api/me").status_code == 200

    def test_attempt_ceiling(self, client, auth_flow):
        self._enable_and_start(client, auth_flow)
        client.post("/api/auth/two-factor/send-otp")
        code = auth_flow.last_code()
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(4):
            resp = client.post("/api/auth/two-factor/verify", json={"code": wrong})
            assert resp.status_code == 401
            assert resp.json()["message"] == "Invalid or expired code"
        resp = client.post("/api/auth/two-factor/verify", json={"code": wrong})
        assert resp.json()["message"] == "Too many attempts, please request a new code"

        # The real code is gone too.
        assert client.post("/api/auth/two-factor/verify", json={"code": code}).status_code == 401

    def test_send_otp_requires_pending_sign_in(self, client):
        resp = client.post("/api/auth/two-factor/send-otp")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Unauthorized access"

    def test_enable_requires_correct_password(self, client, auth_flow):
        auth_flow.register()
        resp = client.post("/api/auth/two-factor/enable", json={"password": "wrong-password"})
        assert resp.status_code == 400
        assert client.app.state.user_store.get_by_email("alice@example.com").two_factor_enabled is False

    def test_disable(self, client, auth_flow):
        auth_flow.register()
        client.post("/api/auth/two-factor/enable", json={"password": PASSWORD})
        assert client.post("/api/auth/two-factor/disable", json={"password": PASSWORD}).status_code == 200
        auth_flow.sign_out()
        assert "token" in auth_flow.sign_in().json()["data"]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_unknown_sub_route_is_404(self, client):
        resp = client.post("/api/auth/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_wrong_method_is_405(self, client):
        resp = client.get("/api/auth/sign-in/email")
        assert resp.status_code == 405

    def test_body_must_be_an_object(self, client):
        resp = client.post("/api/auth/sign-in/email", json=["alice@example.com"])
        assert resp.status_code == 400
