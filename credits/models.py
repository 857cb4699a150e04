"""
credits/models.py -- Ledger dataclasses.

Amounts are plain floats rounded to 2 decimal places on the way out of the
store. Transaction amounts are signed: debits (USAGE, TRANSFER_OUT) are
negative, and balance records the account balance right after the entry.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class AccountType(str, enum.Enum):
    SMS = "SMS"
    SERVICE = "SERVICE"
    GENERAL = "GENERAL"


class TransactionType(str, enum.Enum):
    WELCOME_BONUS = "WELCOME_BONUS"
    PURCHASE = "PURCHASE"
    USAGE = "USAGE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# Granted once to every new business at signup.
WELCOME_CREDITS: dict[AccountType, float] = {
    AccountType.SMS: 50.0,
    AccountType.SERVICE: 10.0,
    AccountType.GENERAL: 20.0,
}

DEFAULT_CURRENCY = "GHS"


@dataclass
class BusinessAccount:
    business_id: str
    type: str
    balance: float = 0.0
    currency: str = DEFAULT_CURRENCY
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class CreditTransaction:
    business_id: str
    account_id: str
    type: str
    amount: float
    balance: float
    description: str | None = None
    reference_id: str | None = None
    id: str | None = None
    created_at: str | None = None
    account_type: str | None = None  # joined from business_accounts for display

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "accountType": self.account_type,
            "amount": self.amount,
            "balance": self.balance,
            "description": self.description,
            "referenceId": self.reference_id,
            "createdAt": self.created_at,
        }


@dataclass
class Invoice:
    business_id: str
    invoice_number: str
    account_type: str
    amount: float
    payment_method: str
    currency: str = DEFAULT_CURRENCY
    status: str = InvoiceStatus.PENDING.value
    id: str | None = None
    created_at: str | None = None
    paid_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "accountType": self.account_type,
            "amount": self.amount,
            "currency": self.currency,
            "paymentMethod": self.payment_method,
            "status": self.status,
            "createdAt": self.created_at,
            "paidAt": self.paid_at,
        }
