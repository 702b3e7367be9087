"""Account management service."""

import logging

from sqlalchemy.orm import Session

from models import Account, Holding, HoldingLot, SaleRecord
from services.holding_reconciliation_service import HoldingReconciliationService
from services.lot_ledger_service import LotLedgerService

logger = logging.getLogger(__name__)


class AccountService:
    """Service for managing accounts and moving holdings between them."""

    @staticmethod
    def create_account(
        db: Session,
        name: str,
        institution_name: str | None = None,
        account_type: str = "taxable",
    ) -> Account:
        account = Account(
            name=name,
            institution_name=institution_name,
            account_type=account_type,
        )
        db.add(account)
        db.flush()
        logger.info("Account created: %s (id=%s)", account.name, account.id)
        return account

    @staticmethod
    def list_accounts(db: Session) -> list[Account]:
        """List all accounts from the database."""
        return db.query(Account).order_by(Account.name.asc()).all()

    @staticmethod
    def get_account(db: Session, account_id: str) -> Account | None:
        """Get a specific account by ID."""
        return db.get(Account, account_id)

    @staticmethod
    def reassign_holding(
        db: Session, holding_id: str, new_account_id: str
    ) -> Holding:
        """Move a holding, its lots and its sales to another account.

        The lot pool moves with the holding so the (ticker, account) keying
        stays intact. If the target account already holds the ticker, the
        two pools merge. Both the old and the new pair are reconciled.

        Raises:
            ValueError: If the holding or the target account doesn't exist.
        """
        holding = db.get(Holding, holding_id)
        if holding is None:
            raise ValueError(f"Holding not found: {holding_id}")
        if db.get(Account, new_account_id) is None:
            raise ValueError(f"Unknown account: {new_account_id}")

        old_account_id = holding.account_id
        ticker = holding.ticker
        if old_account_id == new_account_id:
            return holding

        with LotLedgerService.pool_locks([old_account_id, new_account_id]):
            lot_filter = (
                HoldingLot.account_id.is_(None) if old_account_id is None
                else HoldingLot.account_id == old_account_id
            )
            sale_filter = (
                SaleRecord.account_id.is_(None) if old_account_id is None
                else SaleRecord.account_id == old_account_id
            )
            lots_moved = (
                db.query(HoldingLot)
                .filter(HoldingLot.ticker == ticker, lot_filter)
                .update({HoldingLot.account_id: new_account_id}, synchronize_session="fetch")
            )
            sales_moved = (
                db.query(SaleRecord)
                .filter(SaleRecord.ticker == ticker, sale_filter)
                .update({SaleRecord.account_id: new_account_id}, synchronize_session="fetch")
            )

            target = (
                db.query(Holding)
                .filter(Holding.ticker == ticker, Holding.account_id == new_account_id)
                .first()
            )
            if target is None:
                holding.account_id = new_account_id
                target = holding
            else:
                db.delete(holding)
            db.flush()

            HoldingReconciliationService.reconcile(db, ticker, old_account_id)
            target = HoldingReconciliationService.reconcile(db, ticker, new_account_id)

        logger.info(
            "Moved %s from account %s to %s (%d lots, %d sales)",
            ticker, old_account_id, new_account_id, lots_moved, sales_moved,
        )
        return target
