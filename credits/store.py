"""
credits/store.py -- SQLAlchemy Core persistence for the credit ledger.

Pattern: Repository + Data Mapper, same as auth/store.py.

Ledger rules:
  - One BusinessAccount per (business_id, type), created on first use.
  - Every balance change writes exactly one CreditTransaction in the same
    database transaction as the balance update.
  - Debits use a conditional UPDATE ... WHERE balance >= :amount, so two
    concurrent debits can never drive a balance below zero. A debit that
    matches no row raises InsufficientCreditsError and the transaction
    rolls back.

Layer rule: no imports from api/, web/, auth/, business/, or mail/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.db import business_accounts as _accounts
from core.db import credit_transactions as _transactions
from core.db import invoices as _invoices
from core.db import new_id, now_iso, transaction
from core.errors import BadRequestError
from credits.models import (
    WELCOME_CREDITS,
    AccountType,
    BusinessAccount,
    CreditTransaction,
    Invoice,
    InvoiceStatus,
    TransactionType,
)

logger = logging.getLogger("exa.credits")


class InsufficientCreditsError(BadRequestError):
    pass


def _money(value: float) -> float:
    return round(float(value), 2)


def _new_invoice_number() -> str:
    return f"INV-{datetime.now(timezone.utc):%Y%m%d}-{secrets.token_hex(3).upper()}"


class CreditStore:
    """Repository for accounts, transactions, and invoices of a business.

    Usage:
        credits = CreditStore(engine)
        credits.purchase_credits(business_id, AccountType.SMS, 100, "mobile_money")
        credits.get_all_balances(business_id)   # {"SMS": 100.0, "SERVICE": 0.0, "GENERAL": 0.0}
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_or_create_account(
        self, business_id: str, account_type: AccountType, conn: Connection | None = None
    ) -> BusinessAccount:
        """Return the (business, type) account, inserting it at zero on first use.

        The insert runs in a SAVEPOINT: when a concurrent request creates the
        same account first, the unique constraint fires, only the savepoint is
        rolled back, and the row the other request wrote is returned.
        """
        with transaction(self.engine, conn) as c:
            existing = _find_account(c, business_id, account_type)
            if existing is not None:
                return existing
            now = now_iso()
            account_id = new_id()
            try:
                with c.begin_nested():
                    c.execute(
                        _accounts.insert().values(
                            id=account_id,
                            business_id=business_id,
                            type=account_type.value,
                            balance=0.0,
                            created_at=now,
                            updated_at=now,
                        )
                    )
            except IntegrityError:
                logger.debug("Account %s/%s created concurrently", business_id, account_type.value)
                return _find_account(c, business_id, account_type)
        return BusinessAccount(id=account_id, business_id=business_id, type=account_type.value, created_at=now)

    def get_balance(self, business_id: str, account_type: AccountType) -> float:
        return self.get_or_create_account(business_id, account_type).balance

    def has_sufficient_credits(self, business_id: str, account_type: AccountType, amount: float) -> bool:
        return self.get_balance(business_id, account_type) >= amount

    def get_all_balances(self, business_id: str) -> dict[str, float]:
        """Balances of every account type, creating missing accounts at zero."""
        with self.engine.begin() as conn:
            return {t.value: self.get_or_create_account(business_id, t, conn).balance for t in AccountType}

    # ------------------------------------------------------------------
    # Ledger mutations
    # ------------------------------------------------------------------

    def _record(
        self,
        conn: Connection,
        account: BusinessAccount,
        tx_type: TransactionType,
        amount: float,
        description: str | None,
        reference_id: str | None = None,
    ) -> float:
        """Apply a signed amount to an account and append the ledger entry.

        Returns the balance after the change. Raises InsufficientCreditsError
        when a debit would overdraw the account.
        """
        update = _accounts.update().where(_accounts.c.id == account.id)
        if amount < 0:
            update = update.where(_accounts.c.balance >= -amount)
        result = conn.execute(update.values(balance=_accounts.c.balance + amount, updated_at=now_iso()))
        if result.rowcount == 0:
            raise InsufficientCreditsError(f"Insufficient credits in {account.type} account")
        balance = _money(conn.execute(select(_accounts.c.balance).where(_accounts.c.id == account.id)).scalar())
        conn.execute(
            _transactions.insert().values(
                id=new_id(),
                business_id=account.business_id,
                account_id=account.id,
                type=tx_type.value,
                amount=_money(amount),
                balance=balance,
                description=description,
                reference_id=reference_id,
                created_at=now_iso(),
            )
        )
        return balance

    def grant_welcome_credits(self, business_id: str, conn: Connection | None = None) -> dict[str, float]:
        """Seed the three accounts of a new business with their welcome bonus."""
        balances: dict[str, float] = {}
        with transaction(self.engine, conn) as c:
            for account_type, amount in WELCOME_CREDITS.items():
                account = self.get_or_create_account(business_id, account_type, c)
                balances[account_type.value] = self._record(
                    c,
                    account,
                    TransactionType.WELCOME_BONUS,
                    amount,
                    f"Welcome bonus: {amount:g} {account_type.value} credits",
                )
        return balances

    def deduct_credits(
        self,
        business_id: str,
        account_type: AccountType,
        amount: float,
        description: str,
        reference_id: str | None = None,
    ) -> float:
        """Debit an account for usage. Raises InsufficientCreditsError on overdraw."""
        with self.engine.begin() as conn:
            account = self.get_or_create_account(business_id, account_type, conn)
            return self._record(conn, account, TransactionType.USAGE, -amount, description, reference_id)

    def transfer_credits(
        self,
        business_id: str,
        from_type: AccountType,
        to_type: AccountType,
        amount: float,
        description: str | None = None,
    ) -> dict[str, float]:
        """Move credits between two accounts of the same business atomically."""
        if from_type == to_type:
            raise BadRequestError("Cannot transfer to the same account type")
        note = description or "Internal transfer"
        with self.engine.begin() as conn:
            source = self.get_or_create_account(business_id, from_type, conn)
            target = self.get_or_create_account(business_id, to_type, conn)
            from_balance = self._record(
                conn, source, TransactionType.TRANSFER_OUT, -amount, f"Transfer to {to_type.value} account: {note}"
            )
            to_balance = self._record(
                conn, target, TransactionType.TRANSFER_IN, amount, f"Transfer from {from_type.value} account: {note}"
            )
        logger.info(
            "Transferred %.2f from %s to %s for business %s", amount, from_type.value, to_type.value, business_id
        )
        return {from_type.value: from_balance, to_type.value: to_balance}

    def purchase_credits(
        self, business_id: str, account_type: AccountType, amount: float, payment_method: str
    ) -> tuple[Invoice, float]:
        """Credit an account and record a paid invoice in one transaction.

        Payment capture happens outside this system; the invoice is written
        as paid at the moment the credits are applied.
        """
        now = now_iso()
        invoice = Invoice(
            id=new_id(),
            business_id=business_id,
            invoice_number=_new_invoice_number(),
            account_type=account_type.value,
            amount=_money(amount),
            payment_method=payment_method,
            status=InvoiceStatus.PAID.value,
            created_at=now,
            paid_at=now,
        )
        with self.engine.begin() as conn:
            conn.execute(
                _invoices.insert().values(
                    id=invoice.id,
                    business_id=business_id,
                    invoice_number=invoice.invoice_number,
                    account_type=invoice.account_type,
                    amount=invoice.amount,
                    currency=invoice.currency,
                    payment_method=payment_method,
                    status=invoice.status,
                    created_at=now,
                    paid_at=now,
                )
            )
            account = self.get_or_create_account(business_id, account_type, conn)
            balance = self._record(
                conn,
                account,
                TransactionType.PURCHASE,
                amount,
                f"Purchased {amount:g} {account_type.value} credits via {payment_method}",
                invoice.invoice_number,
            )
        logger.info(
            "Purchase %s: %.2f %s credits for business %s",
            invoice.invoice_number,
            amount,
            account_type.value,
            business_id,
        )
        return invoice, balance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_history(
        self,
        business_id: str,
        page: int = 1,
        limit: int = 10,
        tx_type: str | None = None,
        account_type: str | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """Newest-first page of ledger entries plus the total matching count."""
        joined = _transactions.join(_accounts, _transactions.c.account_id == _accounts.c.id)
        conditions = [_transactions.c.business_id == business_id]
        if tx_type:
            conditions.append(_transactions.c.type == tx_type)
        if account_type:
            conditions.append(_accounts.c.type == account_type)
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(joined).where(*conditions)).scalar() or 0
            rows = conn.execute(
                select(_transactions, _accounts.c.type.label("account_type"))
                .select_from(joined)
                .where(*conditions)
                .order_by(_transactions.c.created_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).fetchall()
        return [_row_to_transaction(r) for r in rows], total

    def list_invoices(
        self, business_id: str, page: int = 1, limit: int = 10, status: str | None = None
    ) -> tuple[list[Invoice], int]:
        conditions = [_invoices.c.business_id == business_id]
        if status:
            conditions.append(_invoices.c.status == status)
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_invoices).where(*conditions)).scalar() or 0
            rows = conn.execute(
                _invoices.select()
                .where(*conditions)
                .order_by(_invoices.c.created_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).fetchall()
        return [_row_to_invoice(r) for r in rows], total

    def get_invoice(self, business_id: str, invoice_id: str) -> Invoice | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _invoices.select().where((_invoices.c.id == invoice_id) & (_invoices.c.business_id == business_id))
            ).fetchone()
        return _row_to_invoice(row) if row is not None else None


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _find_account(conn: Connection, business_id: str, account_type: AccountType) -> BusinessAccount | None:
    row = conn.execute(
        _accounts.select().where((_accounts.c.business_id == business_id) & (_accounts.c.type == account_type.value))
    ).fetchone()
    return _row_to_account(row) if row is not None else None


def _row_to_account(row) -> BusinessAccount:
    return BusinessAccount(
        id=row.id,
        business_id=row.business_id,
        type=row.type,
        balance=_money(row.balance),
        currency=row.currency,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_transaction(row) -> CreditTransaction:
    return CreditTransaction(
        id=row.id,
        business_id=row.business_id,
        account_id=row.account_id,
        type=row.type,
        amount=_money(row.amount),
        balance=_money(row.balance),
        description=row.description,
        reference_id=row.reference_id,
        created_at=row.created_at,
        account_type=row.account_type,
    )


def _row_to_invoice(row) -> Invoice:
    return Invoice(
        id=row.id,
        business_id=row.business_id,
        invoice_number=row.invoice_number,
        account_type=row.account_type,
        amount=_money(row.amount),
        currency=row.currency,
        payment_method=row.payment_method,
        status=row.status,
        created_at=row.created_at,
        paid_at=row.paid_at,
    )
