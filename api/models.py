"""
API request and response models for the Exa REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
business/models.py, and credits/models.py, which own the internal domain
representation. Route handlers map between the two.

Wire format is camelCase (businessName, isActive, regenerateSecret, ...) to
match the browser clients. Request models accept either the camelCase alias
or the Python field name; view models serialize by alias, which is what
FastAPI's encoder does by default.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import ApiKey, User
from business.models import Business, Invitation
from credits.models import AccountType

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_REQUEST_CONFIG = ConfigDict(str_strip_whitespace=True, populate_by_name=True, alias_generator=to_camel)
_VIEW_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    model_config = _REQUEST_CONFIG

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    business_name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)


class LoginRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class VerifyLoginRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    email: str = Field(min_length=1, max_length=255)
    code: str = Field(pattern=r"^\d{6}$")


class EmailRequest(BaseModel):
    """Body for resend-verification and forgot-password."""

    model_config = _REQUEST_CONFIG

    email: str = Field(min_length=1, max_length=255)


class TokenRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    token: str = Field(min_length=1, max_length=256)


class ResetPasswordRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    token: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=128)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/user/me. Only supplied fields change."""

    model_config = _REQUEST_CONFIG

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)


# ---------------------------------------------------------------------------
# API key request models
# ---------------------------------------------------------------------------


class ApiKeyCreate(BaseModel):
    """Request body for POST /api/v1/api-key."""

    model_config = _REQUEST_CONFIG

    name: str = Field(min_length=1, max_length=100)
    permissions: Optional[list[str]] = Field(default=None, max_length=20)


class ApiKeyUpdate(BaseModel):
    """Request body for PUT /api/v1/api-key/{id}."""

    model_config = _REQUEST_CONFIG

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_active: Optional[bool] = None
    regenerate_secret: bool = False


# ---------------------------------------------------------------------------
# Business request models
# ---------------------------------------------------------------------------


class BusinessUpdate(BaseModel):
    """Request body for PUT /api/v1/business/profile. Only supplied fields change."""

    model_config = _REQUEST_CONFIG

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)
    business_type: Optional[str] = Field(default=None, max_length=100)
    business_sector: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[str] = Field(default=None, max_length=255)
    logo: Optional[str] = Field(default=None, max_length=500)
    business_certificate: Optional[str] = Field(default=None, max_length=500)


class InviteRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    role: str = Field(min_length=1, max_length=20)


class MemberRoleUpdate(BaseModel):
    model_config = _REQUEST_CONFIG

    role: str = Field(min_length=1, max_length=20)


class AcceptInvitationRequest(BaseModel):
    """Request body for POST /api/v1/business/invitations/accept.

    name and password are only required when the email has no account yet.
    """

    model_config = _REQUEST_CONFIG

    token: str = Field(min_length=1, max_length=256)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)


# ---------------------------------------------------------------------------
# Credit request models
# ---------------------------------------------------------------------------


class PurchaseRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    amount: float = Field(gt=0, le=1_000_000)
    payment_method: str = Field(min_length=1, max_length=32)
    account_type: AccountType = AccountType.SMS


class TransferRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    from_account_type: AccountType
    to_account_type: AccountType
    amount: float = Field(gt=0, le=1_000_000)
    description: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# View models (response payloads)
# ---------------------------------------------------------------------------


class UserView(BaseModel):
    """Public shape of a user. Never includes the password hash."""

    model_config = _VIEW_CONFIG

    id: str
    name: str
    email: str

    @classmethod
    def of(cls, user: User) -> "UserView":
        return cls(id=user.id, name=user.name, email=user.email)


class TeamMemberView(BaseModel):
    model_config = _VIEW_CONFIG

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def of(cls, user: User) -> "TeamMemberView":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class InvitationView(BaseModel):
    model_config = _VIEW_CONFIG

    id: str
    email: str
    role: str
    status: str
    invited_by_id: str
    expires_at: str
    created_at: Optional[str] = None

    @classmethod
    def of(cls, invitation: Invitation) -> "InvitationView":
        return cls(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            status=invitation.status,
            invited_by_id=invitation.invited_by_id,
            expires_at=invitation.expires_at,
            created_at=invitation.created_at,
        )


class BusinessView(BaseModel):
    """Business profile. logo and businessCertificate are absolute URLs."""

    model_config = _VIEW_CONFIG

    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    business_type: Optional[str] = None
    business_sector: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    business_certificate: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def of(cls, business: Business, app_url: str) -> "BusinessView":
        base = app_url.rstrip("/")
        return cls(
            id=business.id,
            name=business.name,
            phone=business.phone,
            email=business.email,
            address=business.address,
            business_type=business.business_type,
            business_sector=business.business_sector,
            description=business.description,
            website=business.website,
            logo=f"{base}{business.logo}" if business.logo else None,
            business_certificate=f"{base}{business.business_certificate}" if business.business_certificate else None,
            is_active=business.is_active,
            created_at=business.created_at,
            updated_at=business.updated_at,
        )


class ApiKeyView(BaseModel):
    """An API key as listed. The secret is never part of this model."""

    model_config = _VIEW_CONFIG

    id: str
    name: str
    key: str
    permissions: list[str] = Field(default_factory=list)
    is_active: bool
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
    last_used_at: Optional[str] = None

    @classmethod
    def of(cls, api_key: ApiKey) -> "ApiKeyView":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key=api_key.key,
            permissions=api_key.permissions,
            is_active=api_key.is_active,
            expires_at=api_key.expires_at,
            created_at=api_key.created_at,
            last_used_at=api_key.last_used_at,
        )


class ApiKeyWithSecretView(ApiKeyView):
    """Returned exactly once: on creation and on secret regeneration."""

    secret: str


class Pagination(BaseModel):
    model_config = _VIEW_CONFIG

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)


class HealthResponse(BaseModel):
    """Response body for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
