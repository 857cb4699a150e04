"""
core/db.py -- Shared SQLAlchemy Core schema and engine factory.

Every store (auth/store.py, business/store.py, credits/store.py) is handed the
same Engine at construction time. The engine is built once by the app
lifespan (api/main.py) or the operator CLI (main.py) and disposed on shutdown.
Keeping all tables on one MetaData lets signup write the business, the owner
and the welcome credits inside a single engine.begin() transaction.

IDs are uuid4 strings generated in Python so rows can be referenced before
the transaction commits. Timestamps are ISO 8601 UTC strings (TEXT), the
same convention the stores have always used; lexical order equals
chronological order, so expiry checks compare strings directly.

Foreign keys are not declared. Ownership checks (business_id scoping) are
enforced in the store queries instead.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/,
business/, credits/, or mail/.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine

metadata = MetaData()

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-case
    Column("phone", String(32)),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="member"),
    Column("business_id", String(36)),
    Column("email_verified_at", String(32)),  # NULL until the verification link is used
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

auth_tokens = Table(
    "auth_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("purpose", String(20), nullable=False),  # "verify_email", "reset_password", "login_otp"
    Column("identifier", String(255), nullable=False),  # lower-case email
    Column("token_hash", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("attempts", Integer, nullable=False, server_default="0"),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("purpose", "identifier", name="uq_auth_tokens_purpose_identifier"),
)

businesses = Table(
    "businesses",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("phone", String(32)),
    Column("email", String(255)),
    Column("address", Text),
    Column("business_type", String(100)),
    Column("business_sector", String(100)),
    Column("description", Text),
    Column("website", String(255)),
    Column("logo", Text),  # relative upload path
    Column("business_certificate", Text),  # relative upload path
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

invitations = Table(
    "invitations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), nullable=False),
    Column("email", String(255), nullable=False),
    Column("role", String(20), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("invited_by_id", String(36), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

api_keys = Table(
    "api_keys",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), nullable=False),
    Column("name", String(100), nullable=False),
    Column("key", String(40), nullable=False, unique=True),  # public identifier, exa_<16 hex>
    Column("hashed_secret", Text, nullable=False),  # bcrypt
    Column("permissions", Text, nullable=False),  # JSON array
    Column("expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("last_used_at", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

business_accounts = Table(
    "business_accounts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), nullable=False),
    Column("type", String(20), nullable=False),  # SMS, SERVICE, GENERAL
    Column("balance", Float, nullable=False, server_default="0"),
    Column("currency", String(8), nullable=False, server_default="GHS"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("business_id", "type", name="uq_business_accounts_business_type"),
)

credit_transactions = Table(
    "credit_transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), nullable=False),
    Column("account_id", String(36), nullable=False),
    Column("type", String(20), nullable=False),
    Column("amount", Float, nullable=False),  # signed: debits are negative
    Column("balance", Float, nullable=False),  # account balance after this entry
    Column("description", Text),
    Column("reference_id", String(64)),
    Column("created_at", String(32), nullable=False),
)

invoices = Table(
    "invoices",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), nullable=False),
    Column("invoice_number", String(32), nullable=False, unique=True),
    Column("account_type", String(20), nullable=False),
    Column("amount", Float, nullable=False),
    Column("currency", String(8), nullable=False, server_default="GHS"),
    Column("payment_method", String(32), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", String(32), nullable=False),
    Column("paid_at", String(32)),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build the process-wide Engine and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers shared by the stores
# ---------------------------------------------------------------------------


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def iso_after(**delta) -> str:
    """ISO timestamp for now + timedelta(**delta)."""
    return (datetime.now(timezone.utc) + timedelta(**delta)).isoformat(timespec="microseconds")


@contextmanager
def transaction(engine: Engine, conn: Connection | None = None) -> Iterator[Connection]:
    """Yield a connection inside a transaction.

    When conn is given the caller already owns a transaction (e.g. signup
    writing several tables) and it is reused as-is; otherwise a new one is
    opened with engine.begin() and committed on exit.
    """
    if conn is not None:
        yield conn
        return
    with engine.begin() as new_conn:
        yield new_conn
