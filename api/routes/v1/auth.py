"""
api/routes/v1/auth.py -- Account authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup               -- business + owner + welcome credits; 201
  POST /api/v1/auth/verify-email         -- consume verification token
  POST /api/v1/auth/resend-verification  -- new verification link
  POST /api/v1/auth/login                -- password login; sets exa-session (or 202 + OTP)
  POST /api/v1/auth/verify-login         -- exchange emailed OTP for a session
  POST /api/v1/auth/logout               -- clears session cookies; 200
  POST /api/v1/auth/forgot-password      -- email a reset link
  POST /api/v1/auth/reset-password       -- set a new password from a reset token
  GET  /api/v1/auth/verify               -- 200 if the bearer/cookie token is valid

Response shape: {message} or {message, user} on success, {message} on error.
Domain failures from auth/service.py arrive as AppError and are answered
here rather than by the global handler, which uses the {success, message}
envelope of the business-scoped routers.

Security:
  [H2] login, verify-login, signup, and forgot-password are rate-limited per IP.
  [C1] login goes through authenticate_user() for timing equalization.
  [M5] Cache-Control: no-store on every response that carries a session.
  Email is delivered in BackgroundTasks after the response is built.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    EmailRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    TokenRequest,
    UserView,
    VerifyLoginRequest,
)
from auth import service
from auth.dependencies import resolve_auth
from auth.models import AuthState, User
from auth.session import delete_session, set_session_cookie, sign_session
from core.config import get_settings
from core.errors import AppError

logger = logging.getLogger("exa.api.auth")

_settings = get_settings()

# Auth policy: every route here is public; /auth/verify inspects the caller's
# token itself and answers 401 rather than depending on require_user.
router = APIRouter()


def _message(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, **extra})


def _fail(exc: AppError) -> JSONResponse:
    return _message(exc.status_code, exc.message)


def _session_response(request: Request, user: User, background: BackgroundTasks, message: str) -> JSONResponse:
    """Create the session cookie for user and queue the login alert."""
    token = sign_session(user.id)
    resp = _message(200, message, user=UserView.of(user).model_dump(by_alias=True), token=token)
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    request.app.state.user_store.update_last_login(user.id)
    client_ip = request.client.host if request.client else None
    background.add_task(request.app.state.mailer.send_login_alert, user.email, user.name, client_ip)
    logger.info("Login: user %s", user.id)
    return resp


# ---------------------------------------------------------------------------
# Signup and verification
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signup", status_code=201)
def signup(request: Request, body: SignupRequest, background: BackgroundTasks) -> JSONResponse:
    """Create a business with its owner account and welcome credits."""
    state = request.app.state
    try:
        owner, token = service.signup(
            state.user_store,
            state.business_store,
            state.credit_store,
            name=body.name,
            email=body.email,
            password=body.password,
            business_name=body.business_name,
            phone=body.phone,
        )
    except AppError as exc:
        return _fail(exc)
    background.add_task(state.mailer.send_verification, owner.email, owner.name, token)
    return _message(
        201,
        "User created successfully with welcome credits! Please check your email to verify your account.",
        user=UserView.of(owner).model_dump(by_alias=True),
    )


@router.post("/auth/verify-email")
def verify_email(request: Request, body: TokenRequest, background: BackgroundTasks) -> JSONResponse:
    state = request.app.state
    try:
        user = service.verify_email(state.user_store, body.token)
    except AppError as exc:
        return _fail(exc)
    balances = state.credit_store.get_all_balances(user.business_id) if user.business_id else {}
    background.add_task(state.mailer.send_welcome, user.email, user.name, balances)
    return _message(200, "Email verified successfully! Welcome credits have been activated.")


@limiter.limit("5/minute")  # [H2]
@router.post("/auth/resend-verification")
def resend_verification(request: Request, body: EmailRequest, background: BackgroundTasks) -> JSONResponse:
    state = request.app.state
    try:
        user, token = service.resend_verification(state.user_store, body.email)
    except AppError as exc:
        return _fail(exc)
    background.add_task(state.mailer.send_verification, user.email, user.name, token)
    return _message(200, "Verification email sent")


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] brute-force mitigation
@router.post("/auth/login")
def login(request: Request, body: LoginRequest, background: BackgroundTasks) -> JSONResponse:
    """Authenticate with email and password.

    With LOGIN_OTP_ENABLED a 6-digit code is emailed and the response is 202
    with no cookie; the client finishes at /auth/verify-login. Otherwise the
    session is created immediately.
    """
    state = request.app.state
    try:
        user = service.login(state.user_store, body.email, body.password)
    except AppError as exc:
        resp = _fail(exc)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    if _settings.login_otp_enabled:
        code = service.issue_login_otp(state.user_store, user)
        background.add_task(state.mailer.send_login_otp, user.email, user.name, code)
        return _message(202, "Verification code sent to your email", email=user.email)

    return _session_response(request, user, background, "Login successful")


@limiter.limit(_settings.login_rate_limit)  # [H2] code guessing is capped per token too
@router.post("/auth/verify-login")
def verify_login(request: Request, body: VerifyLoginRequest, background: BackgroundTasks) -> JSONResponse:
    try:
        user = service.verify_login_otp(request.app.state.user_store, body.email, body.code)
    except AppError as exc:
        return _fail(exc)
    return _session_response(request, user, background, "Login successful")


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the session cookie and the legacy auth cookies."""
    resp = _message(200, "Logged out successfully")
    delete_session(resp)
    return resp


@router.get("/auth/verify")
def verify(request: Request) -> JSONResponse:
    """Report whether the caller's bearer or cookie token is currently valid."""
    result = resolve_auth(request)
    if result.state is not AuthState.AUTHENTICATED:
        return _message(401, "Invalid or expired token")
    return _message(200, "Token is valid", user=UserView.of(result.user).model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")  # [H2]
@router.post("/auth/forgot-password")
def forgot_password(request: Request, body: EmailRequest, background: BackgroundTasks) -> JSONResponse:
    state = request.app.state
    try:
        user, token = service.forgot_password(state.user_store, body.email)
    except AppError as exc:
        return _fail(exc)
    background.add_task(state.mailer.send_password_reset, user.email, user.name, token)
    return _message(200, "Password recovery email sent")


@router.post("/auth/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest, background: BackgroundTasks) -> JSONResponse:
    state = request.app.state
    try:
        user = service.reset_password(state.user_store, body.token, body.password)
    except AppError as exc:
        return _fail(exc)
    background.add_task(state.mailer.send_password_changed, user.email, user.name)
    return _message(200, "Password reset successful")
