"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credential carriers are accepted, in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. exa-session cookie -- set by the web login flow.

Both carry the same signed session token, so both converge on a User via
the session payload's userId.

resolve_auth() is the single authorization verdict (AUTHENTICATED,
UNAUTHENTICATED, or FORBIDDEN). Every surface consumes it: the API turns it
into 401/403 JSON through require_user() / require_admin(); the web pages
turn it into a redirect (see web/routes.py).

get_user() is the soft variant (returns None on failure).
authenticate_token() is the strict variant used by the business-scoped
routers (API keys, business, credits); it also exposes the user on
request.state.user.

Layer rule: no imports from web/, business/, credits/, or mail/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AuthResult, AuthState, SessionState, User
from auth.session import decode_session_token, read_session
from core.config import get_settings

_settings = get_settings()


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def _load_active_user(request: Request, user_id: str) -> User | None:
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_user(request: Request) -> User | None:
    """Return the User behind the session cookie, or None.

    None covers every failure: no cookie, bad signature, expired session,
    user deleted after the session was issued, or account deactivated.
    """
    result = read_session(request)
    if result.state is not SessionState.VALID:
        return None
    return _load_active_user(request, result.payload.user_id)


def resolve_auth(request: Request, admin: bool = False) -> AuthResult:
    """Classify the request as AUTHENTICATED, UNAUTHENTICATED, or FORBIDDEN.

    Owners count as admins.
    """
    token = _bearer_token(request) or request.cookies.get(_settings.session_cookie_name)
    result = decode_session_token(token)
    if result.state is not SessionState.VALID:
        return AuthResult(AuthState.UNAUTHENTICATED)
    user = _load_active_user(request, result.payload.user_id)
    if user is None:
        return AuthResult(AuthState.UNAUTHENTICATED)
    if admin and not user.is_admin:
        return AuthResult(AuthState.FORBIDDEN, user)
    return AuthResult(AuthState.AUTHENTICATED, user)


def require_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(require_user)): ...
    """
    result = resolve_auth(request)
    if result.state is not AuthState.AUTHENTICATED:
        raise HTTPException(status_code=401, detail={"success": False, "message": "Authentication required"})
    return result.user


def require_admin(request: Request) -> User:
    """Require an owner or admin. Raises HTTP 401 if unauthenticated, HTTP 403 otherwise."""
    result = resolve_auth(request, admin=True)
    if result.state is AuthState.UNAUTHENTICATED:
        raise HTTPException(status_code=401, detail={"success": False, "message": "Authentication required"})
    if result.state is AuthState.FORBIDDEN:
        raise HTTPException(
            status_code=403,
            detail={"success": False, "message": "You do not have permission to perform this action"},
        )
    return result.user


def authenticate_token(request: Request) -> User:
    """Strict token check for business-scoped routes.

    Sets request.state.user (including business_id) so downstream helpers
    can read the caller without re-resolving. Users without a business are
    rejected because every resource behind this dependency is tenant-scoped.
    """
    result = resolve_auth(request)
    if result.state is not AuthState.AUTHENTICATED:
        raise HTTPException(status_code=401, detail={"success": False, "message": "Invalid or expired token"})
    if not result.user.business_id:
        raise HTTPException(
            status_code=403, detail={"success": False, "message": "No business associated with this account"}
        )
    request.state.user = result.user
    return result.user
