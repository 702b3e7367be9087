"""Interactive entry of single buy and sell transactions.

The form path: one mutation at a time, matched against the pool's current
remaining quantities, then reconciled. Bulk imports must end in the same
ledger state as feeding their rows through here one by one.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from config import settings
from models import Account, Holding, HoldingLot, SaleRecord
from schemas.lot import HoldingLotCreate
from services.holding_reconciliation_service import HoldingReconciliationService
from services.lot_ledger_service import LotLedgerService
from services.lot_matcher import LotMethod, match
from utils.ticker import normalize_ticker

logger = logging.getLogger(__name__)


@dataclass
class BuyOutcome:
    lot: HoldingLot
    holding: Holding | None


@dataclass
class SellOutcome:
    sale: SaleRecord
    holding: Holding | None


class TransactionService:
    """Records buys and sells one at a time."""

    @staticmethod
    def record_buy(
        db: Session,
        account_id: str,
        ticker: str,
        trade_date: date,
        quantity: Decimal,
        unit_price: Decimal,
        fees: Decimal = Decimal("0"),
        venue: str | None = None,
        notes: str | None = None,
    ) -> BuyOutcome:
        """Mint a lot for a buy and reconcile its holding."""
        with LotLedgerService.pool_lock(account_id):
            lot = LotLedgerService.create_lot(
                db,
                account_id,
                HoldingLotCreate(
                    ticker=ticker,
                    purchase_date=trade_date,
                    quantity=quantity,
                    unit_price=unit_price,
                    fees=fees,
                    venue=venue,
                    notes=notes,
                ),
                source="form",
            )
            holding = HoldingReconciliationService.reconcile(db, lot.ticker, account_id)
        return BuyOutcome(lot=lot, holding=holding)

    @staticmethod
    def record_sell(
        db: Session,
        account_id: str,
        ticker: str,
        trade_date: date,
        quantity: Decimal,
        unit_price: Decimal,
        fees: Decimal = Decimal("0"),
        method: LotMethod | str | None = None,
        venue: str | None = None,
        notes: str | None = None,
    ) -> SellOutcome:
        """Match a sell against the pool, persist it and reconcile.

        Selling more than the pool holds is not an error: the remainder is
        recorded with zero cost basis and the sale is flagged for review.

        Raises:
            ValueError: If the account doesn't exist or quantity isn't positive.
        """
        if db.get(Account, account_id) is None:
            raise ValueError(f"Unknown account: {account_id}")
        if Decimal(quantity) <= 0:
            raise ValueError(f"Sale quantity must be positive, got {quantity}")

        method = LotMethod(str(method or settings.DEFAULT_LOT_METHOD).upper())
        ticker = normalize_ticker(ticker)

        with LotLedgerService.pool_lock(account_id):
            lots = LotLedgerService.get_lots_for(db, ticker, account_id)
            matched = match(
                Decimal(quantity), trade_date, lots, method,
                settings.LONG_TERM_HOLDING_DAYS,
            )
            sale = LotLedgerService.record_sale(
                db,
                account_id=account_id,
                ticker=ticker,
                sale_date=trade_date,
                quantity=Decimal(quantity),
                unit_price=Decimal(unit_price),
                fees=Decimal(fees),
                holding_period=matched.holding_period,
                lot_method=method,
                disposals=[
                    (c.lot.id, c.quantity, c.cost_basis) for c in matched.consumptions
                ],
                unmatched_quantity=matched.unmatched_quantity,
                source="form",
                venue=venue,
                notes=notes,
            )
            holding = HoldingReconciliationService.reconcile(db, ticker, account_id)

        logger.info(
            "Recorded %s sell of %s %s: cost basis %s, gain/loss %s",
            method, quantity, ticker, sale.cost_basis, sale.realized_gain_loss,
        )
        return SellOutcome(sale=sale, holding=holding)
