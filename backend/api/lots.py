"""Lot management API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.helpers import get_account_lot_or_404, get_or_404
from database import get_db
from models import Account
from schemas.lot import (
    HoldingLotCreate,
    HoldingLotResponse,
    HoldingLotUpdate,
    LotSummaryResponse,
)
from services.holding_reconciliation_service import HoldingReconciliationService
from services.lot_ledger_service import LotLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["lots"])


def _summary_response_dict(db: Session, ticker: str, account_id: str) -> dict:
    """Lot summary enriched with the cached holding and its unallocated amount."""
    summary = LotLedgerService.get_lot_summary(db, ticker, account_id)
    drift = HoldingReconciliationService.get_drift(db, ticker, account_id)
    if drift.holding_id is not None:
        summary["holding_quantity"] = drift.stored_quantity
        summary["unallocated_quantity"] = drift.drift
    return summary


@router.get("/{account_id}/lots", response_model=list[HoldingLotResponse])
def get_account_lots(
    account_id: str,
    ticker: str | None = Query(default=None),
    include_closed: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    """Get the lots of an account, optionally only one ticker's pool."""
    get_or_404(db, Account, account_id, "Account not found")
    if ticker:
        return LotLedgerService.get_lots_for(db, ticker, account_id, include_closed)
    return LotLedgerService.get_lots_for_account(db, account_id, include_closed)


@router.get("/{account_id}/lots/summary", response_model=list[LotSummaryResponse])
def get_account_lot_summaries(
    account_id: str,
    ticker: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Get aggregated lot summaries per ticker for an account."""
    get_or_404(db, Account, account_id, "Account not found")
    tickers = [ticker] if ticker else sorted(LotLedgerService.get_tickers_for_account(db, account_id))
    return [_summary_response_dict(db, t, account_id) for t in tickers]


@router.post("/{account_id}/lots", response_model=HoldingLotResponse, status_code=201)
def create_lot(
    account_id: str,
    lot_data: HoldingLotCreate,
    db: Session = Depends(get_db),
):
    """Create a new manual lot and reconcile its holding."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        try:
            lot = LotLedgerService.create_lot(db, account_id, lot_data)
            HoldingReconciliationService.reconcile(db, lot.ticker, account_id)
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    db.refresh(lot)
    return lot


@router.put("/{account_id}/lots/{lot_id}", response_model=HoldingLotResponse)
def update_lot(
    account_id: str,
    lot_id: str,
    lot_data: HoldingLotUpdate,
    db: Session = Depends(get_db),
):
    """Update a lot and reconcile its holding."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        get_account_lot_or_404(db, account_id, lot_id)
        try:
            lot = LotLedgerService.update_lot(db, lot_id, lot_data)
            HoldingReconciliationService.reconcile(db, lot.ticker, account_id)
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    db.refresh(lot)
    return lot


@router.delete("/{account_id}/lots/{lot_id}", status_code=204)
def delete_lot(
    account_id: str,
    lot_id: str,
    db: Session = Depends(get_db),
):
    """Delete a lot and reconcile its holding."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        get_account_lot_or_404(db, account_id, lot_id)
        try:
            lot = LotLedgerService.delete_lot(db, lot_id)
            HoldingReconciliationService.reconcile(db, lot.ticker, account_id)
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
