"""
business/models.py -- Domain dataclasses for businesses and invitations.

Layer rule: no imports from api/, web/, auth/, credits/, or mail/.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

# Fields a business admin may edit through PUT /business/profile.
EDITABLE_PROFILE_FIELDS = (
    "name",
    "phone",
    "email",
    "address",
    "business_type",
    "business_sector",
    "description",
    "website",
    "logo",
    "business_certificate",
)


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELED = "canceled"
    EXPIRED = "expired"


@dataclass
class Business:
    """A tenant. Users, API keys, and credit accounts hang off business.id.

    logo and business_certificate hold upload paths relative to APP_URL;
    the API returns them as absolute URLs.
    """

    name: str
    id: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    business_type: str | None = None
    business_sector: str | None = None
    description: str | None = None
    website: str | None = None
    logo: str | None = None
    business_certificate: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Invitation:
    """A pending offer to join a business with a given role.

    Only the HMAC of the invitation token is stored; the raw token travels in
    the emailed link and is never persisted.
    """

    business_id: str
    email: str
    role: str
    token_hash: str
    invited_by_id: str
    expires_at: str
    id: str | None = None
    status: str = InvitationStatus.PENDING.value
    created_at: str | None = None
    updated_at: str | None = None
