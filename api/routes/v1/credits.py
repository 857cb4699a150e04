"""
api/routes/v1/credits.py -- Credit ledger endpoints for the caller's business.

Routes:
  GET  /api/v1/credit/balance                               -- every account balance
  POST /api/v1/credit/purchase                              -- add credits + paid invoice (201)
  GET  /api/v1/credit/history?page&limit&type&accountType   -- ledger entries, newest first
  POST /api/v1/credit/transfer                              -- move credits between accounts
  GET  /api/v1/credit/invoices?page&limit&status            -- invoices, newest first
  GET  /api/v1/credit/invoices/{id}                         -- one invoice (404 if not ours)

Amount validation (amount > 0) is enforced by the request models. Overdraw
surfaces as InsufficientCreditsError (400) from credits/store.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import Pagination, PurchaseRequest, TransferRequest
from auth.dependencies import authenticate_token
from auth.models import User
from core.errors import NotFoundError
from credits.store import CreditStore

router = APIRouter()


@router.get("/credit/balance")
def get_balance(request: Request, user: User = Depends(authenticate_token)) -> dict:
    balances = request.app.state.credit_store.get_all_balances(user.business_id)
    return {"success": True, "message": "Credit balance retrieved successfully", "data": {"balances": balances}}


@router.post("/credit/purchase", status_code=201)
def purchase(request: Request, body: PurchaseRequest, user: User = Depends(authenticate_token)) -> dict:
    credit_store: CreditStore = request.app.state.credit_store
    invoice, balance = credit_store.purchase_credits(
        user.business_id, body.account_type, body.amount, body.payment_method
    )
    return {
        "success": True,
        "message": "Credits purchased successfully",
        "data": {"invoice": invoice.to_dict(), "accountType": body.account_type.value, "balance": balance},
    }


@router.get("/credit/history")
def get_history(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    type: Optional[str] = None,
    account_type: Optional[str] = Query(default=None, alias="accountType"),
    user: User = Depends(authenticate_token),
) -> dict:
    credit_store: CreditStore = request.app.state.credit_store
    transactions, total = credit_store.get_history(user.business_id, page, limit, type, account_type)
    return {
        "success": True,
        "message": "Credit history retrieved successfully",
        "data": [t.to_dict() for t in transactions],
        "pagination": Pagination.of(page, limit, total),
    }


@router.post("/credit/transfer")
def transfer(request: Request, body: TransferRequest, user: User = Depends(authenticate_token)) -> dict:
    credit_store: CreditStore = request.app.state.credit_store
    balances = credit_store.transfer_credits(
        user.business_id, body.from_account_type, body.to_account_type, body.amount, body.description
    )
    return {"success": True, "message": "Credits transferred successfully", "data": {"balances": balances}}


@router.get("/credit/invoices")
def list_invoices(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: Optional[str] = None,
    user: User = Depends(authenticate_token),
) -> dict:
    credit_store: CreditStore = request.app.state.credit_store
    invoices, total = credit_store.list_invoices(user.business_id, page, limit, status)
    return {
        "success": True,
        "message": "Invoices retrieved successfully",
        "data": [i.to_dict() for i in invoices],
        "pagination": Pagination.of(page, limit, total),
    }


@router.get("/credit/invoices/{invoice_id}")
def get_invoice(request: Request, invoice_id: str, user: User = Depends(authenticate_token)) -> dict:
    invoice = request.app.state.credit_store.get_invoice(user.business_id, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return {"success": True, "message": "Invoice retrieved successfully", "data": invoice.to_dict()}
