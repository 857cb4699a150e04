"""
auth/session.py -- Stateless cookie sessions.

A session is the pair {userId, expiresAt} signed into a JWT and stored in
the exa-session cookie. Nothing is kept server-side; a session is trusted
only if the signature verifies under SESSION_SECRET and expiresAt has not
passed. Several concurrent sessions per user are allowed.

The token's exp claim equals expiresAt, so the JWT layer and the cookie
expire at the same instant.

Cookie flags:
  httponly=True   JS cannot read the cookie (XSS mitigation).
  samesite="lax"  Not sent on cross-site POST (CSRF mitigation).
  secure          Only over HTTPS when NODE_ENV=production.
  path="/"        Shared by the web pages and the API.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request, Response

from auth.models import SessionPayload, SessionResult, SessionState
from auth.tokens import TokenExpiredError, TokenInvalidError, sign_token, verify_token
from core.config import get_settings

logger = logging.getLogger("exa.session")

_settings = get_settings()

# Cookie names issued by earlier releases; cleared on logout so stale
# credentials do not linger in the browser.
_LEGACY_COOKIES = ("accessToken", "refreshToken", "token")


def sign_session(user_id: str) -> str:
    """Return a session token for user_id expiring session_ttl_seconds from now."""
    ttl = _settings.session_ttl_seconds
    expires_at = int(time.time() * 1000) + ttl * 1000
    payload = SessionPayload(user_id=user_id, expires_at=expires_at)
    return sign_token(payload.to_claims(), expires_in=ttl)


def set_session_cookie(response: Response, token: str) -> None:
    ttl = _settings.session_ttl_seconds
    response.set_cookie(
        _settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=_settings.is_production,
        samesite="lax",
        path="/",
        max_age=ttl,
        expires=ttl,
    )


def create_session(response: Response, user_id: str) -> str:
    """Sign a new session for user_id and attach it as the exa-session cookie.

    Returns the token so API clients can also send it as a Bearer token.
    """
    token = sign_session(user_id)
    set_session_cookie(response, token)
    return token


def decode_session_token(token: str | None) -> SessionResult:
    """Classify a raw token string. Shared by cookie and Bearer readers."""
    if not token:
        return SessionResult(SessionState.NO_TOKEN)
    try:
        claims = verify_token(token)
    except TokenExpiredError:
        return SessionResult(SessionState.EXPIRED)
    except TokenInvalidError:
        logger.info("Rejected session token with invalid signature or format")
        return SessionResult(SessionState.INVALID)

    user_id = claims.get("userId")
    expires_at = claims.get("expiresAt")
    if not isinstance(user_id, str) or not isinstance(expires_at, int):
        return SessionResult(SessionState.INVALID)
    if expires_at <= int(time.time() * 1000):
        return SessionResult(SessionState.EXPIRED)
    return SessionResult(SessionState.VALID, SessionPayload(user_id=user_id, expires_at=expires_at))


def read_session(request: Request) -> SessionResult:
    """Read and classify the exa-session cookie on the incoming request."""
    return decode_session_token(request.cookies.get(_settings.session_cookie_name))


def get_session(request: Request) -> SessionPayload | None:
    """Return the session payload when valid, None for every other outcome."""
    result = read_session(request)
    return result.payload if result.state is SessionState.VALID else None


def delete_session(response: Response) -> None:
    """Expire the session cookie and any legacy auth cookies."""
    response.delete_cookie(
        _settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=_settings.is_production,
        samesite="lax",
    )
    for name in _LEGACY_COOKIES:
        response.delete_cookie(name, path="/")
