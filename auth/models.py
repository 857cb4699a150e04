"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores map rows onto
these; routes and dependencies read them. Business and credit entities live
in business/models.py and credits/models.py.

Layer rule: no imports from api/, web/, business/, credits/, or mail/.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

ROLES = ("owner", "admin", "member")
ADMIN_ROLES = frozenset({"owner", "admin"})


@dataclass
class User:
    """An account holder. Every user belongs to at most one business.

    email is unique and always stored lower-case; it doubles as the login
    identifier. email_verified_at stays None until the verification link is
    consumed, and login is refused until then.
    """

    name: str
    email: str
    password_hash: str
    role: str = "member"  # "owner", "admin", "member"
    id: str | None = None
    phone: str | None = None
    business_id: str | None = None
    email_verified_at: str | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class SessionPayload:
    """The claims carried by the exa-session token.

    expires_at is epoch milliseconds, serialised as "expiresAt" so browser
    code reading /session sees the same shape it always has.
    """

    user_id: str
    expires_at: int

    def to_claims(self) -> dict:
        return {"userId": self.user_id, "expiresAt": self.expires_at}


class SessionState(str, enum.Enum):
    NO_TOKEN = "no_token"
    INVALID = "invalid"
    EXPIRED = "expired"
    VALID = "valid"


@dataclass(frozen=True)
class SessionResult:
    """Outcome of reading the session cookie. payload is set only when VALID."""

    state: SessionState
    payload: SessionPayload | None = None


class AuthState(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AuthResult:
    """Single authorization verdict consumed by both the API and the web pages."""

    state: AuthState
    user: User | None = None


class TokenPurpose(str, enum.Enum):
    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"
    LOGIN_OTP = "login_otp"


@dataclass
class AuthToken:
    """A one-time credential. Only the HMAC of the raw value is kept."""

    purpose: str
    identifier: str
    token_hash: str
    expires_at: str
    id: str | None = None
    attempts: int = 0
    created_at: str | None = None


@dataclass
class ApiKey:
    """A long-lived credential for server-to-server clients of a business.

    key is the public identifier (exa_ + 16 hex chars) and is safe to list.
    hashed_secret is a bcrypt hash of a secret that is shown exactly once, at
    creation or regeneration, and can never be read back.
    """

    business_id: str
    name: str
    key: str
    hashed_secret: str
    permissions: list[str] = field(default_factory=list)
    id: str | None = None
    expires_at: str | None = None
    created_at: str | None = None
    last_used_at: str | None = None
    is_active: bool = True
