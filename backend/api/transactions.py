"""Buy/sell entry API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from models import Account
from schemas import BuyRequest, BuyResponse, SaleRecordResponse, SellRequest, SellResponse
from services.lot_ledger_service import LotLedgerService
from services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["transactions"])


@router.post("/{account_id}/transactions/buy", response_model=BuyResponse, status_code=201)
def record_buy(
    account_id: str,
    request: BuyRequest,
    db: Session = Depends(get_db),
):
    """Record a buy as a new lot."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        try:
            outcome = TransactionService.record_buy(
                db,
                account_id,
                request.ticker,
                request.trade_date,
                request.quantity,
                request.unit_price,
                fees=request.fees,
                venue=request.venue,
                notes=request.notes,
            )
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    db.refresh(outcome.lot)
    if outcome.holding is not None:
        db.refresh(outcome.holding)
    return {"lot": outcome.lot, "holding": outcome.holding}


@router.post("/{account_id}/transactions/sell", response_model=SellResponse, status_code=201)
def record_sell(
    account_id: str,
    request: SellRequest,
    db: Session = Depends(get_db),
):
    """Record a sell, matching it against the account's lots.

    A sell larger than the available lots is accepted and flagged for review.
    The account's pool lock is held from the first read until the commit,
    so concurrent sells never match against the same units.
    """
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        try:
            outcome = TransactionService.record_sell(
                db,
                account_id,
                request.ticker,
                request.trade_date,
                request.quantity,
                request.unit_price,
                fees=request.fees,
                method=request.lot_method,
                venue=request.venue,
                notes=request.notes,
            )
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    db.refresh(outcome.sale)
    if outcome.holding is not None:
        db.refresh(outcome.holding)
    return {"sale": outcome.sale, "holding": outcome.holding}


@router.get("/{account_id}/sales", response_model=list[SaleRecordResponse])
def list_sales(
    account_id: str,
    ticker: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """List recorded sales of an account, oldest first."""
    get_or_404(db, Account, account_id, "Account not found")
    if ticker:
        return LotLedgerService.get_sales_for(db, ticker, account_id)
    return LotLedgerService.get_sales_for_account(db, account_id)
