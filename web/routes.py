"""
web/routes.py -- Jinja2 template routes for the Exa account pages.

These routes serve server-rendered HTML. They share app.state with the API
routes (same stores, same mailer) and go through the same auth/service.py
flows, but answer with pages and redirects instead of JSON.

Routes:
  GET  /                    -- account home (auth required)
  GET  /login               -- login form
  POST /login               -- password login; session cookie or OTP step
  GET  /verify-login        -- OTP code form
  POST /verify-login        -- exchange the code for a session
  GET  /forgot-password     -- request a reset link
  POST /forgot-password     -- email the reset link
  GET  /reset-password      -- new-password form for ?token=
  POST /reset-password      -- set the password, redirect to /login
  GET  /verify-email        -- consume ?token= and show the outcome
  GET  /accept-invitation   -- invitation form for ?token=&email=
  POST /accept-invitation   -- join the business, redirect to /login
  GET  /logout, POST /logout -- clear session cookies, redirect /login
  GET  /session             -- JSON session probe for browser code (CORS)

Auth: protected pages call _require_auth(), which maps resolve_auth() to a
302 to /login?from=<path> (unauthenticated) or / (forbidden). The same
AuthResult drives the 401/403 answers of the API.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Form, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.cors import with_cors
from api.limiter import limiter
from auth import service
from auth.dependencies import get_user, resolve_auth
from auth.models import AuthState, SessionState, User
from auth.session import create_session, delete_session, read_session
from core.config import get_settings
from core.errors import AppError

logger = logging.getLogger("exa.web")

_settings = get_settings()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose get_user as a Jinja2 global so base.html can render the signed-in
# user's name without every handler passing it in the context.
templates.env.globals["get_user"] = get_user
router = APIRouter()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?notice= query params on /login [M3].
# The raw query param is NEVER passed to templates -- only the message from
# this dict is.
_NOTICES: dict[str, str] = {
    "logged_out": "You have been signed out.",
    "password_reset": "Your password has been reset. Please sign in.",
    "invitation_accepted": "Invitation accepted. Please sign in.",
    "session_expired": "Your session has expired. Please sign in again.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs (https://attacker.com) and protocol-relative ones
    (//attacker.com), which would both send the browser off-site.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


def _require_auth(request: Request, admin: bool = False) -> Optional[RedirectResponse]:
    """Map resolve_auth() onto the web surface.

    Returns a RedirectResponse when the caller may not see the page, None if
    OK; the authenticated user is left on request.state.user. Call at the
    top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    result = resolve_auth(request, admin=admin)
    if result.state is AuthState.UNAUTHENTICATED:
        return RedirectResponse(f"/login?{urlencode({'from': request.url.path})}", status_code=302)
    if result.state is AuthState.FORBIDDEN:
        return RedirectResponse("/", status_code=302)
    request.state.user = result.user
    return None


def _render(request: Request, template: str, status_code: int = 200, **context) -> HTMLResponse:
    return templates.TemplateResponse(request, template, context, status_code=status_code)


def _start_session(
    request: Request, user: User, next_url: Optional[str], background: BackgroundTasks
) -> RedirectResponse:
    resp = RedirectResponse(_safe_next(next_url), status_code=302)  # [C2]
    create_session(resp, user.id)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    request.app.state.user_store.update_last_login(user.id)
    client_ip = request.client.host if request.client else None
    background.add_task(request.app.state.mailer.send_login_alert, user.email, user.name, client_ip)
    logger.info("Web login: user %s", user.id)
    return resp


# ---------------------------------------------------------------------------
# Home
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    """Account overview: business, credit balances, API key count."""
    if redirect := _require_auth(request):
        return redirect
    user: User = request.state.user
    state = request.app.state
    business = state.business_store.get_business(user.business_id) if user.business_id else None
    balances = state.credit_store.get_all_balances(user.business_id) if business else {}
    key_count = state.user_store.count_api_keys(user.business_id) if business else 0
    return _render(request, "home.html", user=user, business=business, balances=balances, key_count=key_count)


# ---------------------------------------------------------------------------
# Login / OTP / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    # Redirect already-authenticated users to /
    if get_user(request) is not None:
        return RedirectResponse("/", status_code=302)
    notice = _NOTICES.get(request.query_params.get("notice", ""))  # [M3]
    return _render(request, "login.html", notice=notice, next_url=_safe_next(request.query_params.get("from")))


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    background: BackgroundTasks,
    email: str = Form(...),
    password: str = Form(...),
    next_url: str = Form("/", alias="from"),
) -> Response:
    """Handle the login form. With LOGIN_OTP_ENABLED the user continues at /verify-login."""
    user_store = request.app.state.user_store
    try:
        user = service.login(user_store, email, password)  # [C1] timing equalization
    except AppError as exc:
        return _render(request, "login.html", exc.status_code, error_msg=exc.message, email=email, next_url=next_url)

    if _settings.login_otp_enabled:
        code = service.issue_login_otp(user_store, user)
        background.add_task(request.app.state.mailer.send_login_otp, user.email, user.name, code)
        query = urlencode({"email": user.email, "from": _safe_next(next_url)})
        return RedirectResponse(f"/verify-login?{query}", status_code=303)

    return _start_session(request, user, next_url, background)


@router.get("/verify-login", response_class=HTMLResponse)
def verify_login_form(request: Request, email: str = "") -> HTMLResponse:
    return _render(request, "verify_login.html", email=email, next_url=_safe_next(request.query_params.get("from")))


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/verify-login", response_class=HTMLResponse)
def verify_login_post(
    request: Request,
    background: BackgroundTasks,
    email: str = Form(...),
    code: str = Form(...),
    next_url: str = Form("/", alias="from"),
) -> Response:
    try:
        user = service.verify_login_otp(request.app.state.user_store, email, code.strip())
    except AppError as exc:
        return _render(
            request, "verify_login.html", exc.status_code, error_msg=exc.message, email=email, next_url=next_url
        )
    return _start_session(request, user, next_url, background)


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie (and legacy cookies) and go back to the login page."""
    resp = RedirectResponse("/login?notice=logged_out", status_code=302)
    delete_session(resp)
    return resp


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_form(request: Request) -> HTMLResponse:
    return _render(request, "forgot_password.html")


@limiter.limit("5/minute")  # [H2]
@router.post("/forgot-password", response_class=HTMLResponse)
def forgot_password_post(request: Request, background: BackgroundTasks, email: str = Form(...)) -> HTMLResponse:
    try:
        user, token = service.forgot_password(request.app.state.user_store, email)
    except AppError as exc:
        return _render(request, "forgot_password.html", exc.status_code, error_msg=exc.message, email=email)
    background.add_task(request.app.state.mailer.send_password_reset, user.email, user.name, token)
    return _render(request, "forgot_password.html", notice="Password recovery email sent. Check your inbox.")


@router.get("/reset-password", response_class=HTMLResponse)
def reset_password_form(request: Request, token: str = "") -> HTMLResponse:
    if not token:
        return _render(request, "reset_password.html", 400, error_msg="Reset link is missing its token.")
    return _render(request, "reset_password.html", token=token)


@router.post("/reset-password", response_class=HTMLResponse)
def reset_password_post(
    request: Request,
    background: BackgroundTasks,
    token: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
) -> Response:
    if password != confirm_password:
        return _render(request, "reset_password.html", 400, error_msg="Passwords do not match.", token=token)
    try:
        user = service.reset_password(request.app.state.user_store, token, password)
    except AppError as exc:
        return _render(request, "reset_password.html", exc.status_code, error_msg=exc.message, token=token)
    background.add_task(request.app.state.mailer.send_password_changed, user.email, user.name)
    return RedirectResponse("/login?notice=password_reset", status_code=303)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.get("/verify-email", response_class=HTMLResponse)
def verify_email(request: Request, background: BackgroundTasks, token: str = "") -> HTMLResponse:
    """Consume the emailed token on page load and report the outcome."""
    if not token:
        return _render(request, "verify_email.html", 400, error_msg="Verification link is missing its token.")
    state = request.app.state
    try:
        user = service.verify_email(state.user_store, token)
    except AppError as exc:
        return _render(request, "verify_email.html", exc.status_code, error_msg=exc.message)
    balances = state.credit_store.get_all_balances(user.business_id) if user.business_id else {}
    background.add_task(state.mailer.send_welcome, user.email, user.name, balances)
    return _render(request, "verify_email.html", verified_user=user)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.get("/accept-invitation", response_class=HTMLResponse)
def accept_invitation_form(request: Request, token: str = "", email: str = "") -> HTMLResponse:
    """Name and password fields are shown only when the email has no account yet."""
    if not token or not email:
        return _render(request, "accept_invitation.html", 400, error_msg="Invitation link is incomplete.")
    is_new = request.app.state.user_store.get_by_email(email) is None
    return _render(request, "accept_invitation.html", token=token, email=email, is_new=is_new)


@limiter.limit("10/minute")  # [H2]
@router.post("/accept-invitation", response_class=HTMLResponse)
def accept_invitation_post(
    request: Request,
    token: str = Form(...),
    email: str = Form(...),
    name: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
) -> Response:
    user_store = request.app.state.user_store
    try:
        service.accept_invitation(
            user_store, request.app.state.business_store, token=token, email=email, name=name, password=password
        )
    except AppError as exc:
        is_new = user_store.get_by_email(email) is None
        return _render(
            request,
            "accept_invitation.html",
            exc.status_code,
            error_msg=exc.message,
            token=token,
            email=email,
            is_new=is_new,
        )
    return RedirectResponse("/login?notice=invitation_accepted", status_code=303)


# ---------------------------------------------------------------------------
# Session probe
#
# Browser code on the dashboard origin polls this to learn whether the
# exa-session cookie is still good. It is wrapped with with_cors() so only
# allow-listed origins can read the answer.
# ---------------------------------------------------------------------------


async def session_probe(request: Request) -> JSONResponse:
    """Return {userId, expiresAt} for a valid session, 401 {} otherwise."""
    result = read_session(request)
    if result.state is not SessionState.VALID:
        return JSONResponse(status_code=401, content={})
    resp = JSONResponse(content=result.payload.to_claims())
    resp.headers["Cache-Control"] = "no-store"
    return resp


async def session_preflight(request: Request) -> Response:
    return Response(status_code=204)


router.add_api_route("/session", with_cors(session_probe, _settings.cors_allowed_origins), methods=["GET"])
router.add_api_route("/session", with_cors(session_preflight, _settings.cors_allowed_origins), methods=["OPTIONS"])
