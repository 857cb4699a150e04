"""
business/store.py -- SQLAlchemy Core persistence for businesses and invitations.

Pattern: Repository + Data Mapper, same as auth/store.py and credits/store.py.
Every invitation query is scoped by business_id except the token lookup used
by the public accept endpoint, which matches on (token_hash, email, pending).

Layer rule: no imports from api/, web/, auth/, credits/, or mail/.
"""

from __future__ import annotations

from sqlalchemy.engine import Connection, Engine

from business.models import Business, Invitation, InvitationStatus
from core.db import businesses as _businesses
from core.db import invitations as _invitations
from core.db import new_id, now_iso, transaction


class BusinessStore:
    """Repository for Business and Invitation entities.

    Usage:
        store = BusinessStore(engine)
        business_id = store.create_business(Business(name="Acme Ltd"))
        store.update_business(business_id, website="https://acme.example")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    def create_business(self, business: Business, conn: Connection | None = None) -> str:
        """Insert a business and return its id. IntegrityError on a duplicate name."""
        business_id = business.id or new_id()
        now = now_iso()
        with transaction(self.engine, conn) as c:
            c.execute(
                _businesses.insert().values(
                    id=business_id,
                    name=business.name,
                    phone=business.phone,
                    email=business.email,
                    address=business.address,
                    business_type=business.business_type,
                    business_sector=business.business_sector,
                    description=business.description,
                    website=business.website,
                    logo=business.logo,
                    business_certificate=business.business_certificate,
                    is_active=1 if business.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
        return business_id

    def get_business(self, business_id: str) -> Business | None:
        with self.engine.connect() as conn:
            row = conn.execute(_businesses.select().where(_businesses.c.id == business_id)).fetchone()
        return _row_to_business(row) if row is not None else None

    def name_exists(self, name: str, exclude_id: str | None = None) -> bool:
        query = _businesses.select().where(_businesses.c.name == name.strip())
        if exclude_id is not None:
            query = query.where(_businesses.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def update_business(self, business_id: str, **fields) -> bool:
        if not fields:
            return False
        fields["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_businesses.update().where(_businesses.c.id == business_id).values(**fields))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(self, invitation: Invitation) -> str:
        invitation_id = new_id()
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _invitations.insert().values(
                    id=invitation_id,
                    business_id=invitation.business_id,
                    email=invitation.email.strip().lower(),
                    role=invitation.role,
                    token_hash=invitation.token_hash,
                    status=invitation.status,
                    invited_by_id=invitation.invited_by_id,
                    expires_at=invitation.expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
        return invitation_id

    def get_invitation(self, invitation_id: str, business_id: str) -> Invitation | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _invitations.select().where(
                    (_invitations.c.id == invitation_id) & (_invitations.c.business_id == business_id)
                )
            ).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def find_pending_invitation(self, business_id: str, email: str) -> Invitation | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _invitations.select().where(
                    (_invitations.c.business_id == business_id)
                    & (_invitations.c.email == email.strip().lower())
                    & (_invitations.c.status == InvitationStatus.PENDING.value)
                )
            ).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def get_pending_by_token(self, token_hash: str, email: str) -> Invitation | None:
        """Public lookup for the accept flow. Expiry is checked by the caller."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _invitations.select().where(
                    (_invitations.c.token_hash == token_hash)
                    & (_invitations.c.email == email.strip().lower())
                    & (_invitations.c.status == InvitationStatus.PENDING.value)
                )
            ).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def list_pending_invitations(self, business_id: str) -> list[Invitation]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _invitations.select()
                .where(
                    (_invitations.c.business_id == business_id)
                    & (_invitations.c.status == InvitationStatus.PENDING.value)
                )
                .order_by(_invitations.c.created_at.desc())
            ).fetchall()
        return [_row_to_invitation(r) for r in rows]

    def update_invitation(self, invitation_id: str, conn: Connection | None = None, **fields) -> bool:
        """Update status, token_hash, or expires_at. Stamps updated_at."""
        fields["updated_at"] = now_iso()
        with transaction(self.engine, conn) as c:
            result = c.execute(_invitations.update().where(_invitations.c.id == invitation_id).values(**fields))
        return result.rowcount > 0

    def expire_stale_invitations(self) -> int:
        """Flip every pending invitation past its expiry to expired. Returns the count."""
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _invitations.update()
                .where(
                    (_invitations.c.status == InvitationStatus.PENDING.value) & (_invitations.c.expires_at < now)
                )
                .values(status=InvitationStatus.EXPIRED.value, updated_at=now)
            )
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_business(row) -> Business:
    return Business(
        id=row.id,
        name=row.name,
        phone=row.phone,
        email=row.email,
        address=row.address,
        business_type=row.business_type,
        business_sector=row.business_sector,
        description=row.description,
        website=row.website,
        logo=row.logo,
        business_certificate=row.business_certificate,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_invitation(row) -> Invitation:
    return Invitation(
        id=row.id,
        business_id=row.business_id,
        email=row.email,
        role=row.role,
        token_hash=row.token_hash,
        status=row.status,
        invited_by_id=row.invited_by_id,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
