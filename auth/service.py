"""
auth/service.py -- Account flows: signup, login, OTP, verification, reset,
and invitation acceptance.

Each function does the validation and persistence of one flow and raises a
core.errors.AppError subclass on failure; the route turns that into a status
code and a {message} body. Raw one-time tokens are returned to the caller so
the route can hand them to the mailer; only their HMAC is ever stored.

Sending email is not done here. Routes schedule it as a background task so a
slow or failing SMTP server never changes the outcome of a flow.

Layer rule: no imports from api/, web/, or mail/. business/ and credits/
stores are accepted as arguments because signup and invitation acceptance
write across those tables.
"""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.models import AuthToken, TokenPurpose, User
from auth.tokens import (
    authenticate_user,
    check_password_strength,
    generate_otp,
    generate_url_token,
    hash_password,
    hash_token,
)
from business.models import Business, InvitationStatus
from core.config import get_settings
from core.db import iso_after, now_iso
from core.errors import BadRequestError, ConflictError, NotFoundError, UnauthenticatedError

if TYPE_CHECKING:
    from auth.store import UserStore
    from business.store import BusinessStore
    from credits.store import CreditStore

logger = logging.getLogger("exa.auth")

_settings = get_settings()


def _expired(expires_at: str) -> bool:
    return expires_at < now_iso()


def _issue(users: UserStore, purpose: TokenPurpose, identifier: str, raw: str, ttl_seconds: int) -> str:
    users.issue_token(purpose.value, identifier, hash_token(raw), iso_after(seconds=ttl_seconds))
    return raw


def _consume(users: UserStore, token: AuthToken) -> None:
    users.delete_token(token.id)


# ---------------------------------------------------------------------------
# Signup and email verification
# ---------------------------------------------------------------------------


def signup(
    users: UserStore,
    businesses: BusinessStore,
    credits: CreditStore,
    *,
    name: str,
    email: str,
    password: str,
    business_name: str,
    phone: str | None = None,
) -> tuple[User, str]:
    """Create a business, its owner, and the welcome credits in one transaction.

    Returns the new owner and the raw email verification token.
    """
    complaint = check_password_strength(password)
    if complaint:
        raise BadRequestError(complaint)
    if users.email_exists(email):
        raise ConflictError("User already exists with this email")
    if businesses.name_exists(business_name):
        raise ConflictError("Business name is already taken")

    owner = User(
        name=name.strip(),
        email=email.strip().lower(),
        phone=phone,
        password_hash=hash_password(password),
        role="owner",
    )
    try:
        with users.engine.begin() as conn:
            business_id = businesses.create_business(
                Business(name=business_name.strip(), email=owner.email, phone=phone), conn
            )
            owner.business_id = business_id
            owner.id = users.create_user(owner, conn)
            credits.grant_welcome_credits(business_id, conn)
    except IntegrityError as exc:
        # Lost a race with a concurrent signup for the same email or business name.
        raise ConflictError("User or business already exists") from exc

    logger.info("Signup: business %s created with owner %s", business_id, owner.id)
    token = _issue(
        users, TokenPurpose.VERIFY_EMAIL, owner.email, generate_url_token(), _settings.verification_token_ttl_seconds
    )
    return owner, token


def verify_email(users: UserStore, token: str) -> User:
    """Consume a verification token and mark its user verified."""
    stored = users.get_token_by_hash(TokenPurpose.VERIFY_EMAIL.value, hash_token(token))
    if stored is None:
        raise NotFoundError("Invalid verification token")
    if _expired(stored.expires_at):
        _consume(users, stored)
        raise BadRequestError("Verification token has expired")
    user = users.get_by_email(stored.identifier)
    _consume(users, stored)
    if user is None:
        raise NotFoundError("User not found")
    if not user.is_verified:
        users.mark_verified(user.id)
        user = users.get_by_id(user.id)
    logger.info("Email verified for user %s", user.id)
    return user


def resend_verification(users: UserStore, email: str) -> tuple[User, str]:
    user = users.get_by_email(email)
    if user is None:
        raise NotFoundError("User not found")
    if user.is_verified:
        raise BadRequestError("User already verified")
    token = _issue(
        users, TokenPurpose.VERIFY_EMAIL, user.email, generate_url_token(), _settings.verification_token_ttl_seconds
    )
    return user, token


# ---------------------------------------------------------------------------
# Login and OTP
# ---------------------------------------------------------------------------


def login(users: UserStore, email: str, password: str) -> User:
    """Check credentials and account state. Does not create the session."""
    user = authenticate_user(users, email.strip().lower(), password)
    if user is None:
        raise UnauthenticatedError("Invalid credentials")
    if not user.is_verified:
        raise BadRequestError("Email not verified")
    if not user.is_active:
        raise BadRequestError("Account is deactivated")
    return user


def issue_login_otp(users: UserStore, user: User) -> str:
    """Store a fresh 6-digit code for user, replacing any earlier one."""
    return _issue(users, TokenPurpose.LOGIN_OTP, user.email, generate_otp(), _settings.otp_ttl_seconds)


def verify_login_otp(users: UserStore, email: str, code: str) -> User:
    """Exchange a login code for its user.

    A code survives otp_max_attempts wrong guesses; after that, or once it
    expires, it is deleted and the user must log in again.
    """
    stored = users.get_token_for(TokenPurpose.LOGIN_OTP.value, email)
    if stored is None:
        raise UnauthenticatedError("Invalid or expired code")
    if _expired(stored.expires_at) or stored.attempts >= _settings.otp_max_attempts:
        _consume(users, stored)
        raise UnauthenticatedError("Invalid or expired code")
    if not hmac.compare_digest(stored.token_hash, hash_token(code.strip())):
        users.increment_token_attempts(stored.id)
        raise UnauthenticatedError("Invalid or expired code")
    _consume(users, stored)

    user = users.get_by_email(email)
    if user is None or not user.is_active:
        raise UnauthenticatedError("Invalid or expired code")
    return user


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def forgot_password(users: UserStore, email: str) -> tuple[User, str]:
    user = users.get_by_email(email)
    if user is None:
        raise NotFoundError("User not found")
    token = _issue(
        users, TokenPurpose.RESET_PASSWORD, user.email, generate_url_token(), _settings.reset_token_ttl_seconds
    )
    return user, token


def reset_password(users: UserStore, token: str, new_password: str) -> User:
    complaint = check_password_strength(new_password)
    if complaint:
        raise BadRequestError(complaint)
    stored = users.get_token_by_hash(TokenPurpose.RESET_PASSWORD.value, hash_token(token))
    if stored is None:
        raise NotFoundError("Invalid or expired token")
    if _expired(stored.expires_at):
        _consume(users, stored)
        raise UnauthenticatedError("Token expired")
    user = users.get_by_email(stored.identifier)
    if user is None:
        _consume(users, stored)
        raise NotFoundError("User not found")
    users.update_user(user.id, password_hash=hash_password(new_password))
    _consume(users, stored)
    logger.info("Password reset for user %s", user.id)
    return user


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


def accept_invitation(
    users: UserStore,
    businesses: BusinessStore,
    *,
    token: str,
    email: str,
    name: str | None = None,
    password: str | None = None,
) -> User:
    """Join the inviting business.

    An existing account moves into the business with the invited role. A new
    email needs name and password and is created already verified, since
    the invitation link proved ownership of the address.
    """
    invitation = businesses.get_pending_by_token(hash_token(token), email)
    if invitation is None:
        raise NotFoundError("Invalid or expired invitation")
    if _expired(invitation.expires_at):
        businesses.update_invitation(invitation.id, status=InvitationStatus.EXPIRED.value)
        raise BadRequestError("Invitation has expired")

    existing = users.get_by_email(email)
    if existing is None:
        if not name or not password:
            raise BadRequestError("Name and password are required for new users")
        complaint = check_password_strength(password)
        if complaint:
            raise BadRequestError(complaint)

    with users.engine.begin() as conn:
        if existing is not None:
            users.update_user(existing.id, conn, business_id=invitation.business_id, role=invitation.role)
            user_id = existing.id
        else:
            user_id = users.create_user(
                User(
                    name=name.strip(),
                    email=email,
                    password_hash=hash_password(password),
                    role=invitation.role,
                    business_id=invitation.business_id,
                    email_verified_at=now_iso(),
                ),
                conn,
            )
        businesses.update_invitation(invitation.id, conn, status=InvitationStatus.ACCEPTED.value)

    logger.info("Invitation %s accepted by user %s", invitation.id, user_id)
    return users.get_by_id(user_id)
