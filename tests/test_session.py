"""
tests/test_session.py -- Unit tests for auth/session.py.

Covers:
  - create_session sets a 7-day, httponly, lax exa-session cookie
  - the signed payload round-trips as {userId, expiresAt}
  - read_session classifies missing, tampered, and expired tokens
  - get_session returns None for every non-VALID state
  - delete_session clears the session and legacy cookies
  - the Secure flag is set on create and delete when NODE_ENV=production
"""

from __future__ import annotations

import base64
import json
import time

import pytest

from fastapi import Request, Response
from jose import jwt

from auth.models import SessionState
from auth.session import create_session, decode_session_token, delete_session, get_session, read_session
from auth.tokens import sign_token
from core.config import get_settings

SEVEN_DAYS = 7 * 24 * 60 * 60


def _request_with_cookie(token: str | None) -> Request:
    headers = []
    if token is not None:
        headers.append((b"cookie", f"exa-session={token}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def _set_cookie_headers(response: Response) -> list[str]:
    return response.headers.getlist("set-cookie")


class TestCreateSession:
    def test_sets_session_cookie_with_expected_flags(self) -> None:
        resp = Response()
        create_session(resp, "u1")
        cookie = _set_cookie_headers(resp)[0]
        assert cookie.startswith("exa-session=")
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie
        assert "Path=/" in cookie
        assert f"Max-Age={SEVEN_DAYS}" in cookie
        # Not production in tests, so no Secure flag.
        assert "; Secure" not in cookie

    def test_returns_the_cookie_token(self) -> None:
        resp = Response()
        token = create_session(resp, "u1")
        assert f"exa-session={token}" in _set_cookie_headers(resp)[0]

    def test_payload_round_trips(self) -> None:
        before = int(time.time() * 1000)
        token = create_session(Response(), "u1")
        payload = get_session(_request_with_cookie(token))
        assert payload is not None
        assert payload.user_id == "u1"
        # expiresAt lands seven days out (allow a little clock slack).
        assert before + SEVEN_DAYS * 1000 <= payload.expires_at <= before + SEVEN_DAYS * 1000 + 5000
        assert payload.to_claims() == {"userId": "u1", "expiresAt": payload.expires_at}

    def test_exp_claim_matches_expires_at(self) -> None:
        token = create_session(Response(), "u1")
        claims = jwt.get_unverified_claims(token)
        assert abs(claims["exp"] * 1000 - claims["expiresAt"]) < 2000


class TestReadSession:
    def test_no_cookie(self) -> None:
        result = read_session(_request_with_cookie(None))
        assert result.state is SessionState.NO_TOKEN
        assert result.payload is None

    def test_garbage_token_is_invalid(self) -> None:
        assert read_session(_request_with_cookie("not-a-jwt")).state is SessionState.INVALID

    def test_tampered_token_is_invalid(self) -> None:
        token = create_session(Response(), "u1")
        header, _payload, signature = token.split(".")
        claims = {"userId": "admin", "expiresAt": int(time.time() * 1000) + 60_000}
        swapped = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
        result = read_session(_request_with_cookie(f"{header}.{swapped}.{signature}"))
        assert result.state is SessionState.INVALID

    def test_token_signed_with_other_key_is_invalid(self) -> None:
        claims = {"userId": "u1", "expiresAt": int(time.time() * 1000) + 60_000}
        forged = jwt.encode(claims, "x" * 40, algorithm="HS256")
        assert read_session(_request_with_cookie(forged)).state is SessionState.INVALID

    def test_expired_jwt(self) -> None:
        token = sign_token({"userId": "u1", "expiresAt": int(time.time() * 1000) - 1000}, expires_in=-10)
        assert read_session(_request_with_cookie(token)).state is SessionState.EXPIRED

    def test_expires_at_in_the_past_is_expired(self) -> None:
        # exp still valid but the session's own expiresAt has passed.
        token = sign_token({"userId": "u1", "expiresAt": int(time.time() * 1000) - 1000}, expires_in=60)
        assert decode_session_token(token).state is SessionState.EXPIRED

    def test_missing_claims_is_invalid(self) -> None:
        token = sign_token({"sub": "u1"}, expires_in=60)
        assert decode_session_token(token).state is SessionState.INVALID

    def test_get_session_is_none_for_tampered_and_expired(self) -> None:
        expired = sign_token({"userId": "u1", "expiresAt": 0}, expires_in=60)
        assert get_session(_request_with_cookie("abc.def.ghi")) is None
        assert get_session(_request_with_cookie(expired)) is None


class TestDeleteSession:
    def test_clears_session_and_legacy_cookies(self) -> None:
        resp = Response()
        delete_session(resp)
        headers = _set_cookie_headers(resp)
        names = {h.split("=", 1)[0] for h in headers}
        assert names == {get_settings().session_cookie_name, "accessToken", "refreshToken", "token"}
        assert all("Max-Age=0" in h for h in headers)


@pytest.fixture
def production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(get_settings(), "node_env", "production")


class TestProductionCookies:
    def test_create_marks_cookie_secure(self, production) -> None:
        resp = Response()
        create_session(resp, "u1")
        cookie = _set_cookie_headers(resp)[0]
        assert cookie.startswith("exa-session=")
        assert "; Secure" in cookie
        assert "HttpOnly" in cookie

    def test_delete_marks_session_cookie_secure(self, production) -> None:
        resp = Response()
        delete_session(resp)
        session_cookie = next(h for h in _set_cookie_headers(resp) if h.startswith("exa-session="))
        assert "; Secure" in session_cookie
        assert "Max-Age=0" in session_cookie
