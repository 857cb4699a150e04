"""
api/routes/v1/business.py -- Business profile, team, and invitation endpoints.

Routes:
  GET    /api/v1/business/profile                   -- profile (absolute logo/certificate URLs)
  PUT    /api/v1/business/profile                   -- update profile (admin); 409 on duplicate name
  GET    /api/v1/business/team?search=              -- members + pending invitations
  POST   /api/v1/business/team/invite               -- invite by email (admin); 201
  PUT    /api/v1/business/team/{member_id}          -- change a member's role (admin)
  DELETE /api/v1/business/team/{member_id}          -- remove a member (admin)
  DELETE /api/v1/business/invitations/{id}          -- cancel a pending invitation (admin)
  POST   /api/v1/business/invitations/{id}/resend   -- new token + expiry, email again (admin)
  POST   /api/v1/business/invitations/accept        -- public; join via emailed token

Rules for team changes:
  - Nobody changes or removes themselves.
  - Only owners may remove an owner.
  - The target must belong to the caller's business (404 otherwise).

Response envelope: {success, message, data?}. Failures are raised as
core.errors.AppError and rendered by the handler in api/main.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from api.limiter import limiter
from api.models import (
    AcceptInvitationRequest,
    BusinessUpdate,
    BusinessView,
    InvitationView,
    InviteRequest,
    MemberRoleUpdate,
    TeamMemberView,
    UserView,
)
from auth import service
from auth.dependencies import authenticate_token
from auth.models import ROLES, User
from auth.store import UserStore
from auth.tokens import generate_url_token, hash_token
from business.models import Invitation, InvitationStatus
from business.store import BusinessStore
from core.config import get_settings
from core.db import iso_after
from core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError

logger = logging.getLogger("exa.api.business")

_settings = get_settings()

# Roles an admin may hand out; ownership is never granted by invitation.
_ASSIGNABLE_ROLES = tuple(r for r in ROLES if r != "owner")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_business_admin(user: User) -> None:
    if not user.is_admin:
        raise ForbiddenError("You do not have permission to manage this business")


def _load_business(request: Request, user: User):
    business = request.app.state.business_store.get_business(user.business_id)
    if business is None:
        raise NotFoundError("Business not found")
    return business


def _load_member(user_store: UserStore, member_id: str, business_id: str) -> User:
    member = user_store.get_by_id(member_id)
    if member is None:
        raise NotFoundError("Team member not found")
    if member.business_id != business_id:
        raise NotFoundError("Team member not found in your business")
    return member


def _queue_invitation_email(
    request: Request, background: BackgroundTasks, business_name: str, inviter: User, invitation: Invitation, token: str
) -> None:
    background.add_task(
        request.app.state.mailer.send_invitation,
        invitation.email,
        business_name,
        inviter.name,
        invitation.role,
        token,
        invitation.expires_at,
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/business/profile")
def get_profile(request: Request, user: User = Depends(authenticate_token)) -> dict:
    business = _load_business(request, user)
    return {
        "success": True,
        "message": "Business profile retrieved successfully",
        "data": BusinessView.of(business, _settings.app_url),
    }


@router.put("/business/profile")
def update_profile(request: Request, body: BusinessUpdate, user: User = Depends(authenticate_token)) -> dict:
    _require_business_admin(user)
    business_store: BusinessStore = request.app.state.business_store
    _load_business(request, user)

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise BadRequestError("No fields to update")
    if "name" in updates and business_store.name_exists(updates["name"], exclude_id=user.business_id):
        raise ConflictError("Business name is already taken")

    business_store.update_business(user.business_id, **updates)
    logger.info("Business %s profile updated by %s", user.business_id, user.id)
    return {
        "success": True,
        "message": "Business profile updated successfully",
        "data": BusinessView.of(_load_business(request, user), _settings.app_url),
    }


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@router.get("/business/team")
def get_team(request: Request, search: str | None = None, user: User = Depends(authenticate_token)) -> dict:
    members = request.app.state.user_store.list_by_business(user.business_id, search)
    invitations = request.app.state.business_store.list_pending_invitations(user.business_id)
    return {
        "success": True,
        "message": "Team members retrieved successfully",
        "data": {
            "teamMembers": [TeamMemberView.of(m) for m in members],
            "invitations": [InvitationView.of(i) for i in invitations],
        },
    }


@router.post("/business/team/invite", status_code=201)
def invite_member(
    request: Request, body: InviteRequest, background: BackgroundTasks, user: User = Depends(authenticate_token)
) -> dict:
    _require_business_admin(user)
    if body.role not in _ASSIGNABLE_ROLES:
        raise BadRequestError("Invalid role")
    business = _load_business(request, user)
    user_store: UserStore = request.app.state.user_store
    business_store: BusinessStore = request.app.state.business_store

    existing = user_store.get_by_email(body.email)
    if existing is not None and existing.business_id == user.business_id:
        raise BadRequestError("User already exists in this business")
    if business_store.find_pending_invitation(user.business_id, body.email) is not None:
        raise BadRequestError("Pending invitation already exists for this email")

    token = generate_url_token()
    invitation = Invitation(
        business_id=user.business_id,
        email=body.email.lower(),
        role=body.role,
        token_hash=hash_token(token),
        invited_by_id=user.id,
        expires_at=iso_after(days=_settings.invitation_ttl_days),
    )
    invitation.id = business_store.create_invitation(invitation)
    _queue_invitation_email(request, background, business.name, user, invitation, token)
    logger.info("Invitation %s sent to %s for business %s", invitation.id, invitation.email, user.business_id)
    return {
        "success": True,
        "message": "Invitation sent successfully",
        "data": InvitationView.of(business_store.get_invitation(invitation.id, user.business_id)),
    }


@router.put("/business/team/{member_id}")
def update_member(
    request: Request, member_id: str, body: MemberRoleUpdate, user: User = Depends(authenticate_token)
) -> dict:
    _require_business_admin(user)
    if member_id == user.id:
        raise BadRequestError("Cannot update your own role")
    if body.role not in ROLES:
        raise BadRequestError("Invalid role")
    user_store: UserStore = request.app.state.user_store
    member = _load_member(user_store, member_id, user.business_id)
    if (member.role == "owner" or body.role == "owner") and user.role != "owner":
        raise ForbiddenError("Only owners can change ownership")

    user_store.update_user(member.id, role=body.role)
    logger.info("Member %s role set to %s by %s", member.id, body.role, user.id)
    return {
        "success": True,
        "message": "Team member updated successfully",
        "data": TeamMemberView.of(user_store.get_by_id(member.id)),
    }


@router.delete("/business/team/{member_id}")
def remove_member(request: Request, member_id: str, user: User = Depends(authenticate_token)) -> dict:
    if not user.is_admin:
        raise ForbiddenError("You do not have permission to remove team members")
    if member_id == user.id:
        raise BadRequestError("Cannot remove yourself from the team")
    user_store: UserStore = request.app.state.user_store
    member = _load_member(user_store, member_id, user.business_id)
    if member.role == "owner" and user.role != "owner":
        raise ForbiddenError("Only owners can remove other owners")

    user_store.delete_user(member.id)
    logger.info("Member %s removed from business %s by %s", member.id, user.business_id, user.id)
    return {"success": True, "message": "Team member removed successfully"}


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.delete("/business/invitations/{invitation_id}")
def cancel_invitation(request: Request, invitation_id: str, user: User = Depends(authenticate_token)) -> dict:
    _require_business_admin(user)
    business_store: BusinessStore = request.app.state.business_store
    invitation = business_store.get_invitation(invitation_id, user.business_id)
    if invitation is None or invitation.status != InvitationStatus.PENDING.value:
        raise NotFoundError("Invitation not found")
    business_store.update_invitation(invitation.id, status=InvitationStatus.CANCELED.value)
    return {"success": True, "message": "Invitation canceled successfully"}


@router.post("/business/invitations/{invitation_id}/resend")
def resend_invitation(
    request: Request, invitation_id: str, background: BackgroundTasks, user: User = Depends(authenticate_token)
) -> dict:
    """Issue a fresh token with a new expiry; the old link stops working."""
    _require_business_admin(user)
    business = _load_business(request, user)
    business_store: BusinessStore = request.app.state.business_store
    invitation = business_store.get_invitation(invitation_id, user.business_id)
    if invitation is None or invitation.status != InvitationStatus.PENDING.value:
        raise NotFoundError("Invitation not found")

    token = generate_url_token()
    invitation.token_hash = hash_token(token)
    invitation.expires_at = iso_after(days=_settings.invitation_ttl_days)
    business_store.update_invitation(invitation.id, token_hash=invitation.token_hash, expires_at=invitation.expires_at)
    _queue_invitation_email(request, background, business.name, user, invitation, token)
    return {"success": True, "message": "Invitation resent successfully"}


@limiter.limit("10/minute")
@router.post("/business/invitations/accept")
def accept_invitation(request: Request, body: AcceptInvitationRequest) -> dict:
    """Public: the emailed token and address identify the invitation."""
    user = service.accept_invitation(
        request.app.state.user_store,
        request.app.state.business_store,
        token=body.token,
        email=body.email,
        name=body.name,
        password=body.password,
    )
    return {
        "success": True,
        "message": "Invitation accepted successfully",
        "data": {"user": UserView.of(user), "role": user.role},
    }
