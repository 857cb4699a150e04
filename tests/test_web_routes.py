"""
tests/test_web_routes.py -- Tests for the server-rendered account pages.

The web client does not follow redirects, so every 302/303 is asserted on
its Location header directly.
"""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from tests.conftest import DEFAULT_PASSWORD, add_member, bearer, seed_business


def _email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def _web_login(client: TestClient, email: str, next_url: str = "/"):
    return client.post("/login", data={"email": email, "password": DEFAULT_PASSWORD, "from": next_url})


class TestPagesRender:
    @pytest.mark.parametrize(
        ("path", "params"),
        [
            ("/login", {}),
            ("/verify-login", {"email": "a@example.com"}),
            ("/forgot-password", {}),
            ("/reset-password", {"token": "abc"}),
            ("/accept-invitation", {"token": "abc", "email": "a@example.com"}),
        ],
    )
    def test_form_pages_render(self, web_client: TestClient, path: str, params: dict) -> None:
        resp = web_client.get(path, params=params)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "<form" in resp.text


class TestAuthRedirect:
    def test_home_redirects_to_login(self, web_client: TestClient) -> None:
        resp = web_client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?from=%2F"

    def test_login_form_renders(self, web_client: TestClient) -> None:
        resp = web_client.get("/login", params={"from": "/"})
        assert resp.status_code == 200
        assert 'name="from"' in resp.text

    def test_login_form_redirects_when_signed_in(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("signedin"))
        _web_login(web_client, user.email)
        resp = web_client.get("/login")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_known_notice_is_shown(self, web_client: TestClient) -> None:
        resp = web_client.get("/login", params={"notice": "logged_out"})
        assert "You have been signed out." in resp.text

    def test_unknown_notice_is_ignored(self, web_client: TestClient) -> None:
        resp = web_client.get("/login", params={"notice": "<script>alert(1)</script>"})
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text


class TestLogin:
    def test_success_sets_cookie_and_redirects_home(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("web"))
        resp = _web_login(web_client, user.email)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert resp.headers["cache-control"] == "no-store"
        assert "exa-session" in web_client.cookies
        web_client.app.state.mailer.send_login_alert.assert_called_once()

    @pytest.mark.parametrize(
        ("next_url", "expected"),
        [("/accept-invitation", "/accept-invitation"), ("//evil.com", "/"), ("https://evil.com", "/")],
    )
    def test_redirect_target_is_relative_only(self, web_client: TestClient, next_url: str, expected: str) -> None:
        user = seed_business(web_client, _email("next"))
        resp = _web_login(web_client, user.email, next_url)
        assert resp.headers["location"] == expected

    def test_bad_credentials_rerender_with_401(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("wrong"))
        resp = web_client.post("/login", data={"email": user.email, "password": "Wr0ngPassword"})
        assert resp.status_code == 401
        assert "Invalid credentials" in resp.text
        assert "exa-session" not in web_client.cookies

    def test_unverified_user_sees_message(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("unverified"), verified=False)
        resp = _web_login(web_client, user.email)
        assert resp.status_code == 400
        assert "Email not verified" in resp.text


class TestHome:
    def test_shows_name_and_balances(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("home"))
        _web_login(web_client, user.email)
        resp = web_client.get("/")
        assert resp.status_code == 200
        assert f"Welcome, {user.name}" in resp.text
        assert "50.00" in resp.text

    def test_member_sees_home_too(self, web_client: TestClient) -> None:
        owner = seed_business(web_client, _email("boss"))
        member = add_member(web_client, owner.business_id, _email("staff"))
        _web_login(web_client, member.email)
        assert web_client.get("/").status_code == 200


class TestLogout:
    @pytest.mark.parametrize("method", ["get", "post"])
    def test_logout_clears_cookie(self, web_client: TestClient, method: str) -> None:
        user = seed_business(web_client, _email("bye"))
        _web_login(web_client, user.email)
        resp = getattr(web_client, method)("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?notice=logged_out"
        assert "exa-session" not in web_client.cookies
        assert web_client.get("/").status_code == 302


class TestVerifyEmail:
    def test_valid_token(self, web_client: TestClient) -> None:
        email = _email("verifyweb")
        web_client.post(
            "/api/v1/auth/signup",
            json={"name": "Kofi", "email": email, "password": DEFAULT_PASSWORD, "businessName": f"Web {email}"},
        )
        token = web_client.app.state.mailer.send_verification.call_args.args[2]
        resp = web_client.get("/verify-email", params={"token": token})
        assert resp.status_code == 200
        assert "Email verified" in resp.text
        assert web_client.app.state.user_store.get_by_email(email).is_verified

    def test_invalid_token(self, web_client: TestClient) -> None:
        resp = web_client.get("/verify-email", params={"token": "nope"})
        assert resp.status_code == 404
        assert "Verification failed" in resp.text

    def test_missing_token_is_400(self, web_client: TestClient) -> None:
        assert web_client.get("/verify-email").status_code == 400


class TestResetPassword:
    def _token(self, client: TestClient, email: str) -> str:
        resp = client.post("/forgot-password", data={"email": email})
        assert resp.status_code == 200
        assert "Password recovery email sent" in resp.text
        return client.app.state.mailer.send_password_reset.call_args.args[2]

    def test_form_needs_token(self, web_client: TestClient) -> None:
        assert web_client.get("/reset-password").status_code == 400
        assert web_client.get("/reset-password", params={"token": "abc"}).status_code == 200

    def test_mismatch_is_400(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("mismatch"))
        token = self._token(web_client, user.email)
        resp = web_client.post(
            "/reset-password", data={"token": token, "password": "N3wPassword", "confirm_password": "Other1Pass"}
        )
        assert resp.status_code == 400
        assert "Passwords do not match." in resp.text

    def test_success_redirects_to_login(self, web_client: TestClient) -> None:
        user = seed_business(web_client, _email("resetweb"))
        token = self._token(web_client, user.email)
        resp = web_client.post(
            "/reset-password", data={"token": token, "password": "N3wPassword", "confirm_password": "N3wPassword"}
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/login?notice=password_reset"
        login = web_client.post("/login", data={"email": user.email, "password": "N3wPassword"})
        assert login.status_code == 302


class TestAcceptInvitation:
    def _invite(self, client: TestClient, owner, email: str) -> str:
        resp = client.post(
            "/api/v1/business/team/invite", json={"email": email, "role": "member"}, headers=bearer(owner.id)
        )
        assert resp.status_code == 201
        return client.app.state.mailer.send_invitation.call_args.args[4]

    def test_incomplete_link_is_400(self, web_client: TestClient) -> None:
        resp = web_client.get("/accept-invitation", params={"token": "abc"})
        assert resp.status_code == 400
        assert "Invitation link is incomplete." in resp.text

    def test_new_user_form_then_accept(self, web_client: TestClient) -> None:
        owner = seed_business(web_client, _email("inviter"))
        email = _email("joiner")
        token = self._invite(web_client, owner, email)

        form = web_client.get("/accept-invitation", params={"token": token, "email": email})
        assert form.status_code == 200
        assert 'name="password"' in form.text

        resp = web_client.post(
            "/accept-invitation", data={"token": token, "email": email, "name": "Joiner", "password": "Str0ngPass"}
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/login?notice=invitation_accepted"
        assert web_client.app.state.user_store.get_by_email(email).business_id == owner.business_id

    def test_existing_user_form_has_no_password(self, web_client: TestClient) -> None:
        owner = seed_business(web_client, _email("inviter2"))
        existing = seed_business(web_client, _email("existing"))
        token = self._invite(web_client, owner, existing.email)
        form = web_client.get("/accept-invitation", params={"token": token, "email": existing.email})
        assert 'name="password"' not in form.text

    def test_bad_token_rerenders(self, web_client: TestClient) -> None:
        resp = web_client.post(
            "/accept-invitation",
            data={"token": "0" * 64, "email": _email("ghost"), "name": "G", "password": "Str0ngPass"},
        )
        assert resp.status_code == 404
