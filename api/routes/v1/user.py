"""
api/routes/v1/user.py -- The signed-in user's own account.

Routes:
  GET    /api/v1/user/me  -- {user: {id, name, email}}
  PUT    /api/v1/user/me  -- update name / email / phone
  DELETE /api/v1/user/me  -- delete the account and clear the session

These routes read the exa-session cookie directly (get_session) rather than
going through require_user, because each outcome has its own message:
  no valid session            -> 401 {"message": "Unauthorized"}
  session for a deleted user  -> 404 {"message": "User not found"}

DELETE never touches the store when the session is missing.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import UserUpdate, UserView
from auth.session import delete_session, get_session
from auth.store import UserStore

logger = logging.getLogger("exa.api.user")

router = APIRouter()


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"message": "Unauthorized"})


@router.get("/user/me")
def get_me(request: Request) -> JSONResponse:
    session = get_session(request)
    if session is None:
        return _unauthorized()
    user = request.app.state.user_store.get_by_id(session.user_id)
    if user is None:
        return JSONResponse(status_code=404, content={"message": "User not found"})
    return JSONResponse(content={"user": UserView.of(user).model_dump(by_alias=True)})


@router.put("/user/me")
def update_me(request: Request, body: UserUpdate) -> JSONResponse:
    session = get_session(request)
    if session is None:
        return _unauthorized()
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(session.user_id)
    if user is None:
        return JSONResponse(status_code=404, content={"message": "User not found"})

    updates = body.model_dump(exclude_none=True)
    if not updates:
        return JSONResponse(status_code=400, content={"message": "No fields to update"})
    if "email" in updates and user_store.email_exists(updates["email"], exclude_user_id=user.id):
        return JSONResponse(status_code=409, content={"message": "Email is already in use"})

    user_store.update_user(user.id, **updates)
    updated = user_store.get_by_id(user.id)
    return JSONResponse(
        content={"message": "Profile updated successfully", "user": UserView.of(updated).model_dump(by_alias=True)}
    )


@router.delete("/user/me")
def delete_me(request: Request) -> JSONResponse:
    """Delete the caller's account and end the session."""
    session = get_session(request)
    if session is None:
        return _unauthorized()
    try:
        request.app.state.user_store.delete_user(session.user_id)
    except SQLAlchemyError:
        logger.exception("Failed to delete user %s", session.user_id)
        return JSONResponse(status_code=500, content={"message": "Something went wrong"})

    logger.info("Account deleted: user %s", session.user_id)
    resp = JSONResponse(content={"message": "Account deleted successfully"})
    delete_session(resp)
    return resp
