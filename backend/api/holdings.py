"""Holdings API endpoints: cached positions, drift and reconciliation."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from models import Account, Holding
from schemas import HoldingDriftResponse, HoldingReassignRequest, HoldingResponse
from services.account_service import AccountService
from services.holding_reconciliation_service import HoldingReconciliationService
from services.lot_ledger_service import LotLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["holdings"])


@router.get("/accounts/{account_id}/holdings", response_model=list[HoldingResponse])
def list_holdings(account_id: str, db: Session = Depends(get_db)):
    """List the cached holdings of an account."""
    get_or_404(db, Account, account_id, "Account not found")
    return (
        db.query(Holding)
        .filter(Holding.account_id == account_id)
        .order_by(Holding.ticker.asc())
        .all()
    )


@router.get("/accounts/{account_id}/holdings/drift", response_model=list[HoldingDriftResponse])
def list_drifted_holdings(account_id: str, db: Session = Depends(get_db)):
    """Report holdings whose cached values disagree with their lots."""
    get_or_404(db, Account, account_id, "Account not found")
    return HoldingReconciliationService.find_drifted_holdings(db, [account_id])


@router.post("/accounts/{account_id}/holdings/sync", response_model=list[HoldingResponse])
def sync_account_holdings(account_id: str, db: Session = Depends(get_db)):
    """Reconcile every holding of an account from its lots."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        holdings = HoldingReconciliationService.reconcile_account(db, account_id)
        db.commit()
    for holding in holdings:
        db.refresh(holding)
    return holdings


@router.post("/accounts/{account_id}/holdings/{ticker}/sync", response_model=HoldingResponse)
def sync_holding(account_id: str, ticker: str, db: Session = Depends(get_db)):
    """Reconcile one holding from its lots."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        holding = HoldingReconciliationService.reconcile(db, ticker, account_id)
        if holding is None:
            raise HTTPException(status_code=404, detail="No holding or lots for this ticker")
        db.commit()
    db.refresh(holding)
    return holding


@router.post("/holdings/sync", response_model=list[HoldingResponse])
def sync_all_holdings(db: Session = Depends(get_db)):
    """Reconcile every holding of every account.

    Pools of accounts that gain their first lot while this runs are left
    for the next sync.
    """
    account_ids = HoldingReconciliationService.pooled_account_ids(db)
    # No read transaction may stay open while waiting on pool locks
    db.rollback()
    with LotLedgerService.pool_locks(account_ids):
        holdings = HoldingReconciliationService.reconcile_all(db, account_ids)
        db.commit()
    for holding in holdings:
        db.refresh(holding)
    logger.info("Reconciled %d holdings across %d accounts", len(holdings), len(account_ids))
    return holdings


@router.put("/holdings/{holding_id}/account", response_model=HoldingResponse)
def reassign_holding(
    holding_id: str,
    request: HoldingReassignRequest,
    db: Session = Depends(get_db),
):
    """Move a holding with its lots and sales to another account."""
    holding = get_or_404(db, Holding, holding_id, "Holding not found")
    account_ids = [holding.account_id, request.account_id]
    db.rollback()
    with LotLedgerService.pool_locks(account_ids):
        try:
            holding = AccountService.reassign_holding(db, holding_id, request.account_id)
            db.commit()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    db.refresh(holding)
    return holding
