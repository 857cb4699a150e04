"""
auth/tokens.py -- JWT, password hashing, and one-time credential utilities.

Security design decisions:
  JWT: python-jose with HS256. sign_token() always stamps iat and exp; the
       default lifetime is Settings.token_expire_seconds (24 h). Callers that
       need a different lifetime (the 7-day session) pass expires_in so the
       exp claim matches the cookie. verify_token() raises a typed error so
       callers can tell "expired" from "tampered" without string matching.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  API key secrets: bcrypt as well. Secrets are random (96 bits) but are
       verified rarely and never looked up by value, so bcrypt's cost is
       acceptable and a leaked DB gives nothing usable.

  One-time tokens (email verification, password reset, invitations, login
       OTP codes): stored as HMAC-SHA256(SESSION_SECRET, raw). Deterministic,
       so lookup is O(1); keyed, so a DB dump alone cannot forge or replay
       them.

  SESSION_SECRET: sourced from core.config.get_settings(). Short keys
       (<32 chars) are rejected at startup [M6].

Layer rule: no imports from api/, web/, business/, credits/, or mail/.
Import from core/ is allowed -- core/ is the kernel and has no reverse
dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("exa.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """Signature is valid but the exp claim has passed."""


class TokenInvalidError(TokenError):
    """Malformed, tampered, or signed with another key or algorithm."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps password
    length at 128 characters via the Pydantic field.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("exa_timing_dummy")


def check_password_strength(password: str) -> str | None:
    """Return a user-facing complaint about a weak password, or None if acceptable."""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if not any(c.isupper() for c in password):
        return "Password must contain at least one uppercase letter"
    if not any(c.islower() for c in password):
        return "Password must contain at least one lowercase letter"
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one number"
    return None


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def sign_token(payload: dict, expires_in: int | None = None) -> str:
    """Encode payload as a compact HS256 JWT with iat and exp claims.

    Args:
        payload:    Claims to embed. Not mutated.
        expires_in: Lifetime in seconds. None uses Settings.token_expire_seconds.
    """
    duration = expires_in if expires_in is not None else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    claims = dict(payload)
    claims["iat"] = now
    claims["exp"] = now + timedelta(seconds=duration)
    return jwt.encode(claims, _settings.session_secret, algorithm=_ALGORITHM)


def verify_token(token: str) -> dict:
    """Verify signature, algorithm, and expiry; return the claims.

    Raises:
        TokenExpiredError: the exp claim has passed.
        TokenInvalidError: anything else (bad signature, garbage, alg swap).
    """
    try:
        return jwt.decode(token, _settings.session_secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("token expired") from exc
    except JWTError as exc:
        raise TokenInvalidError("token invalid") from exc


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User when the password matches, None otherwise. Verification
    and is_active are checked by the caller so it can answer with a specific
    message.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# API key generation
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Public key identifier: exa_ followed by 16 hex characters."""
    return f"exa_{secrets.token_hex(8)}"


def generate_api_secret(regenerate: bool = False) -> str:
    """Plaintext secret shown once to the caller.

    Fresh keys get 24 hex chars; regenerated secrets get 64.
    """
    return secrets.token_hex(32 if regenerate else 12)


# ---------------------------------------------------------------------------
# One-time tokens
# ---------------------------------------------------------------------------


def generate_url_token() -> str:
    """Random token for links in email (verification, reset, invitation)."""
    return secrets.token_hex(32)


def generate_otp() -> str:
    """Six-digit login code, zero padded."""
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_token(raw: str) -> str:
    """Return HMAC-SHA256(SESSION_SECRET, raw) as a hex string."""
    return hmac.new(
        _settings.session_secret.encode(),
        raw.encode(),
        hashlib.sha256,
    ).hexdigest()
