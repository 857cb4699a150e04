"""
auth/store.py -- SQLAlchemy Core persistence for users, one-time tokens,
and API keys.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user,
_row_to_token and _row_to_api_key are the mappers. Route and service code
never touches SQL directly.

The Engine is injected (built once by core.db.create_db_engine) and shared
with BusinessStore and CreditStore. Methods that take a conn argument can
join a transaction the caller already opened; see core.db.transaction.

Security:
  All queries use bound parameters. No f-strings in SQL.
  API key reads and writes are always scoped by business_id so a caller
  cannot touch another tenant's key by guessing its id (IDOR).

Layer rule: no imports from api/, web/, business/, credits/, or mail/.
"""

from __future__ import annotations

import json

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Connection, Engine

from auth.models import ApiKey, AuthToken, User
from core.db import api_keys as _api_keys
from core.db import auth_tokens as _auth_tokens
from core.db import new_id, now_iso, transaction
from core.db import users as _users


class UserStore:
    """Repository for User, AuthToken and ApiKey entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(name="Ama", email="ama@example.com", password_hash=hash_password("...")))
        user = store.get_by_email("ama@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User, conn: Connection | None = None) -> str:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        Callers check email_exists() first for a friendly 409 and treat the
        IntegrityError as the concurrent-signup case.
        """
        user_id = user.id or new_id()
        with transaction(self.engine, conn) as c:
            c.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email.lower(),
                    phone=user.phone,
                    password_hash=user.password_hash,
                    role=user.role,
                    business_id=user.business_id,
                    email_verified_at=user.email_verified_at,
                    is_active=1 if user.is_active else 0,
                    created_at=now_iso(),
                )
            )
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str, exclude_user_id: str | None = None) -> bool:
        query = _users.select().where(_users.c.email == email.strip().lower())
        if exclude_user_id is not None:
            query = query.where(_users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def list_by_business(self, business_id: str, search: str | None = None) -> list[User]:
        """Team members of a business, oldest first, optionally filtered by name/email substring."""
        query = _users.select().where(_users.c.business_id == business_id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(or_(func.lower(_users.c.name).like(pattern), _users.c.email.like(pattern)))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_users.c.created_at)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, phone, role, password_hash, business_id,
        email_verified_at, is_active. is_active is converted to int for SQLite.

        Returns True if a row was updated, False if user_id was not found.
        """
        if not fields:
            return False
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        with transaction(self.engine, conn) as c:
            result = c.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def mark_verified(self, user_id: str) -> None:
        self.update_user(user_id, email_verified_at=now_iso())

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC timestamp as last_login."""
        self.update_user(user_id, last_login=now_iso())

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # One-time tokens
    # ------------------------------------------------------------------

    def issue_token(self, purpose: str, identifier: str, token_hash: str, expires_at: str) -> None:
        """Store a token hash, replacing any live token for the same (purpose, identifier)."""
        identifier = identifier.strip().lower()
        with self.engine.begin() as conn:
            conn.execute(
                _auth_tokens.delete().where(
                    (_auth_tokens.c.purpose == purpose) & (_auth_tokens.c.identifier == identifier)
                )
            )
            conn.execute(
                _auth_tokens.insert().values(
                    id=new_id(),
                    purpose=purpose,
                    identifier=identifier,
                    token_hash=token_hash,
                    attempts=0,
                    expires_at=expires_at,
                    created_at=now_iso(),
                )
            )

    def get_token_by_hash(self, purpose: str, token_hash: str) -> AuthToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _auth_tokens.select().where(
                    (_auth_tokens.c.purpose == purpose) & (_auth_tokens.c.token_hash == token_hash)
                )
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def get_token_for(self, purpose: str, identifier: str) -> AuthToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _auth_tokens.select().where(
                    (_auth_tokens.c.purpose == purpose) & (_auth_tokens.c.identifier == identifier.strip().lower())
                )
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def increment_token_attempts(self, token_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _auth_tokens.update()
                .where(_auth_tokens.c.id == token_id)
                .values(attempts=_auth_tokens.c.attempts + 1)
            )

    def delete_token(self, token_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_auth_tokens.delete().where(_auth_tokens.c.id == token_id))

    def purge_expired_tokens(self) -> int:
        """Delete every token whose expiry has passed. Returns the number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_auth_tokens.delete().where(_auth_tokens.c.expires_at < now_iso()))
        return result.rowcount

    # ------------------------------------------------------------------
    # API key queries (always scoped by business_id)
    # ------------------------------------------------------------------

    def list_api_keys(self, business_id: str) -> list[ApiKey]:
        """Return every API key of a business, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _api_keys.select()
                .where(_api_keys.c.business_id == business_id)
                .order_by(_api_keys.c.created_at.desc())
            ).fetchall()
        return [_row_to_api_key(r) for r in rows]

    def count_api_keys(self, business_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_api_keys).where(_api_keys.c.business_id == business_id)
            ).scalar()
        return result or 0

    def create_api_key(self, api_key: ApiKey) -> str:
        """Insert a new API key record and return its id."""
        key_id = new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _api_keys.insert().values(
                    id=key_id,
                    business_id=api_key.business_id,
                    name=api_key.name,
                    key=api_key.key,
                    hashed_secret=api_key.hashed_secret,
                    permissions=json.dumps(api_key.permissions),
                    expires_at=api_key.expires_at,
                    created_at=now_iso(),
                    is_active=1 if api_key.is_active else 0,
                )
            )
        return key_id

    def get_api_key(self, key_id: str, business_id: str) -> ApiKey | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _api_keys.select().where((_api_keys.c.id == key_id) & (_api_keys.c.business_id == business_id))
            ).fetchone()
        return _row_to_api_key(row) if row is not None else None

    def update_api_key(self, key_id: str, business_id: str, **fields) -> bool:
        """Update name, is_active, hashed_secret or last_used_at. False if not in this business."""
        if not fields:
            return False
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.begin() as conn:
            result = conn.execute(
                _api_keys.update()
                .where((_api_keys.c.id == key_id) & (_api_keys.c.business_id == business_id))
                .values(**fields)
            )
        return result.rowcount > 0

    def delete_api_key(self, key_id: str, business_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _api_keys.delete().where((_api_keys.c.id == key_id) & (_api_keys.c.business_id == business_id))
            )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        password_hash=row.password_hash,
        role=row.role,
        business_id=row.business_id,
        email_verified_at=row.email_verified_at,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_token(row) -> AuthToken:
    return AuthToken(
        id=row.id,
        purpose=row.purpose,
        identifier=row.identifier,
        token_hash=row.token_hash,
        attempts=row.attempts,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


def _row_to_api_key(row) -> ApiKey:
    return ApiKey(
        id=row.id,
        business_id=row.business_id,
        name=row.name,
        key=row.key,
        hashed_secret=row.hashed_secret,
        permissions=json.loads(row.permissions) if row.permissions else [],
        expires_at=row.expires_at,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        is_active=bool(row.is_active),
    )
