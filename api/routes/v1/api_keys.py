"""
api/routes/v1/api_keys.py -- Business API key management.

Routes:
  GET    /api/v1/api-key             -- list the business's keys (no secrets)
  POST   /api/v1/api-key             -- create; secret shown once (201)
  PUT    /api/v1/api-key/{id}        -- rename / toggle / regenerate secret
  DELETE /api/v1/api-key/{id}        -- delete
  GET    /api/v1/api-key/{id}/secret -- always 400: secrets are write-once

All routes depend on authenticate_token and are scoped to the caller's
business_id.

Security:
  [H3] At most max_api_keys_per_business keys per business.
  Secrets are bcrypt-hashed before storage and returned only in the
  create / regenerate response.
  IDOR guard: every store call passes business_id; the store's WHERE clause
  requires it to match, so a key id from another business reads as 404.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import ApiKeyCreate, ApiKeyUpdate, ApiKeyView, ApiKeyWithSecretView
from auth.dependencies import authenticate_token
from auth.models import ApiKey, User
from auth.store import UserStore
from auth.tokens import generate_api_key, generate_api_secret, hash_password
from core.config import get_settings
from core.db import iso_after
from core.errors import BadRequestError, ImmutableSecretError, NotFoundError

logger = logging.getLogger("exa.api.api_keys")

_settings = get_settings()

DEFAULT_PERMISSIONS = ["sms.send", "sms.read", "contacts.read"]

router = APIRouter(dependencies=[Depends(authenticate_token)])


@router.get("/api-key")
def list_api_keys(request: Request, user: User = Depends(authenticate_token)) -> dict:
    """Newest first. Only the public key identifier is ever listed."""
    user_store: UserStore = request.app.state.user_store
    keys = user_store.list_api_keys(user.business_id)
    return {
        "success": True,
        "message": "API keys retrieved successfully",
        "data": [ApiKeyView.of(k) for k in keys],
    }


@router.post("/api-key", status_code=201)
def create_api_key(request: Request, body: ApiKeyCreate, user: User = Depends(authenticate_token)) -> dict:
    """Generate a key + secret pair. The plaintext secret is returned ONCE."""
    user_store: UserStore = request.app.state.user_store

    if user_store.count_api_keys(user.business_id) >= _settings.max_api_keys_per_business:  # [H3]
        raise BadRequestError(
            f"Maximum of {_settings.max_api_keys_per_business} API keys per business. Delete an existing key first."
        )

    secret = generate_api_secret()
    api_key = ApiKey(
        business_id=user.business_id,
        name=body.name,
        key=generate_api_key(),
        hashed_secret=hash_password(secret),
        permissions=body.permissions or list(DEFAULT_PERMISSIONS),
        expires_at=iso_after(days=_settings.api_key_ttl_days),
    )
    key_id = user_store.create_api_key(api_key)
    created = user_store.get_api_key(key_id, user.business_id)
    logger.info("API key %s created for business %s", key_id, user.business_id)
    return {
        "success": True,
        "message": "API key created successfully",
        "data": ApiKeyWithSecretView(**ApiKeyView.of(created).model_dump(), secret=secret),
    }


@router.put("/api-key/{key_id}")
def update_api_key(
    request: Request, key_id: str, body: ApiKeyUpdate, user: User = Depends(authenticate_token)
) -> dict:
    """Rename, enable/disable, or regenerate the secret of a key."""
    user_store: UserStore = request.app.state.user_store
    if user_store.get_api_key(key_id, user.business_id) is None:
        raise NotFoundError("API key not found")

    updates: dict = {}
    if body.name is not None:
        updates["name"] = body.name
    if body.is_active is not None:
        updates["is_active"] = body.is_active
    new_secret: str | None = None
    if body.regenerate_secret:
        new_secret = generate_api_secret(regenerate=True)
        updates["hashed_secret"] = hash_password(new_secret)

    user_store.update_api_key(key_id, user.business_id, **updates)
    view = ApiKeyView.of(user_store.get_api_key(key_id, user.business_id))
    if new_secret is not None:
        logger.info("API key %s secret regenerated", key_id)
        view = ApiKeyWithSecretView(**view.model_dump(), secret=new_secret)
    return {"success": True, "message": "API key updated successfully", "data": view}


@router.delete("/api-key/{key_id}")
def delete_api_key(request: Request, key_id: str, user: User = Depends(authenticate_token)) -> dict:
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_api_key(key_id, user.business_id):
        raise NotFoundError("API key not found")
    logger.info("API key %s deleted from business %s", key_id, user.business_id)
    return {"success": True, "message": "API key deleted successfully"}


@router.get("/api-key/{key_id}/secret")
def get_api_key_secret(key_id: str) -> dict:
    """Secrets are never retrievable after creation, whatever the id."""
    raise ImmutableSecretError("Cannot retrieve secret after creation. Please regenerate if lost.")
