"""Holding reconciliation: recompute cached holdings from their lots.

The lots are the source of truth. A Holding row is a materialized view of
the lots of one (ticker, account) pair:

    quantity         = sum(remaining_quantity)
    cost_basis_total = sum(remaining_quantity / original_quantity * cost_basis)

``reconcile`` overwrites the cached row with these values. It runs after
every lot create/edit/delete, every sale, every import and every account
reassignment. Outside of an explicit reconcile, a mismatch between the
cached row and its lots is reported as drift and never corrected silently.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from models import Holding, HoldingLot
from services.lot_matcher import COST_QUANTUM, QUANTITY_QUANTUM
from utils.ticker import normalize_ticker, pool_key

logger = logging.getLogger(__name__)

COST_BASIS_TOLERANCE = Decimal("0.01")


@dataclass
class HoldingDrift:
    """Cached holding values compared with the values derived from lots."""

    ticker: str
    account_id: str | None
    holding_id: str | None
    stored_quantity: Decimal
    lot_quantity: Decimal
    stored_cost_basis: Decimal
    lot_cost_basis: Decimal

    @property
    def drift(self) -> Decimal:
        """stored - lot-derived quantity; positive means unallocated units."""
        return self.stored_quantity - self.lot_quantity

    @property
    def cost_basis_drift(self) -> Decimal:
        return self.stored_cost_basis - self.lot_cost_basis

    @property
    def has_drift(self) -> bool:
        return self.drift != 0 or abs(self.cost_basis_drift) > COST_BASIS_TOLERANCE


class HoldingReconciliationService:
    """Derives holdings from lots and reports drift."""

    @staticmethod
    def lot_totals(
        db: Session, ticker: str, account_id: str | None
    ) -> tuple[Decimal, Decimal]:
        """Quantity and remaining cost basis summed over a pool's lots."""
        lots = _lots_for_pool(db, ticker, account_id)
        quantity = sum((Decimal(lot.remaining_quantity) for lot in lots), Decimal("0"))
        cost_basis = sum((lot.remaining_cost_basis for lot in lots), Decimal("0"))
        return (
            quantity.quantize(QUANTITY_QUANTUM),
            cost_basis.quantize(COST_QUANTUM),
        )

    @staticmethod
    def reconcile(
        db: Session, ticker: str, account_id: str | None
    ) -> Holding | None:
        """Overwrite the cached holding of a (ticker, account) from its lots.

        Creates the holding row when lots exist but no row does yet.
        Returns None when there is neither a row nor any lot.
        """
        ticker = normalize_ticker(ticker)
        quantity, cost_basis = HoldingReconciliationService.lot_totals(db, ticker, account_id)
        holding = _get_holding(db, ticker, account_id)

        if holding is None:
            if not _lots_for_pool(db, ticker, account_id):
                return None
            holding = Holding(account_id=account_id, ticker=ticker)
            db.add(holding)
            logger.info("Created holding for %s in account %s", ticker, account_id)
        elif Decimal(holding.quantity) != quantity:
            logger.info(
                "Reconciling %s in account %s: quantity %s -> %s",
                ticker, account_id, holding.quantity, quantity,
            )

        holding.quantity = quantity
        holding.cost_basis_total = cost_basis
        holding.last_reconciled_at = datetime.now(timezone.utc)
        db.flush()
        return holding

    @staticmethod
    def reconcile_many(
        db: Session, pairs: Iterable[tuple[str, str | None]]
    ) -> list[Holding]:
        """Reconcile each distinct (ticker, account) pair once."""
        holdings = []
        seen: set[tuple[str, str | None]] = set()
        for ticker, account_id in pairs:
            key = pool_key(ticker, account_id)
            if key in seen:
                continue
            seen.add(key)
            holding = HoldingReconciliationService.reconcile(db, *key)
            if holding is not None:
                holdings.append(holding)
        return holdings

    @staticmethod
    def reconcile_account(db: Session, account_id: str | None) -> list[Holding]:
        """Reconcile every pool of an account, including stale holding rows."""
        return HoldingReconciliationService.reconcile_many(
            db, [(ticker, account_id) for ticker in _tickers_for_account(db, account_id)]
        )

    @staticmethod
    def pooled_account_ids(db: Session) -> set[str | None]:
        """Accounts with at least one lot or cached holding."""
        account_ids = {row[0] for row in db.query(HoldingLot.account_id).distinct()}
        account_ids |= {row[0] for row in db.query(Holding.account_id).distinct()}
        return account_ids

    @staticmethod
    def reconcile_all(
        db: Session, account_ids: Iterable[str | None] | None = None
    ) -> list[Holding]:
        """Reconcile every pool that has lots or a holding row.

        When ``account_ids`` is given, only pools of those accounts are
        touched.
        """
        pairs = {(t, a) for t, a in db.query(HoldingLot.ticker, HoldingLot.account_id).distinct()}
        pairs |= {(t, a) for t, a in db.query(Holding.ticker, Holding.account_id)}
        if account_ids is not None:
            allowed = set(account_ids)
            pairs = {pair for pair in pairs if pair[1] in allowed}
        return HoldingReconciliationService.reconcile_many(db, sorted(pairs, key=_pair_sort_key))

    @staticmethod
    def get_drift(
        db: Session, ticker: str, account_id: str | None
    ) -> HoldingDrift:
        """Read-only comparison of the cached holding against its lots."""
        ticker = normalize_ticker(ticker)
        quantity, cost_basis = HoldingReconciliationService.lot_totals(db, ticker, account_id)
        holding = _get_holding(db, ticker, account_id)
        return HoldingDrift(
            ticker=ticker,
            account_id=account_id,
            holding_id=holding.id if holding else None,
            stored_quantity=Decimal(holding.quantity) if holding else Decimal("0"),
            lot_quantity=quantity,
            stored_cost_basis=Decimal(holding.cost_basis_total) if holding else Decimal("0"),
            lot_cost_basis=cost_basis,
        )

    @staticmethod
    def find_drifted_holdings(
        db: Session, account_ids: list[str] | None = None
    ) -> list[HoldingDrift]:
        """Report every holding whose cached values disagree with its lots."""
        query = db.query(Holding)
        if account_ids:
            query = query.filter(Holding.account_id.in_(account_ids))

        drifted = []
        for holding in query.order_by(Holding.ticker.asc()).all():
            drift = HoldingReconciliationService.get_drift(db, holding.ticker, holding.account_id)
            if drift.has_drift:
                logger.warning(
                    "Holding drift: %s in account %s stored %s, lots %s",
                    drift.ticker, drift.account_id, drift.stored_quantity, drift.lot_quantity,
                )
                drifted.append(drift)
        return drifted


def _account_filter(column, account_id: str | None):
    return column.is_(None) if account_id is None else column == account_id


def _lots_for_pool(db: Session, ticker: str, account_id: str | None) -> list[HoldingLot]:
    return (
        db.query(HoldingLot)
        .filter(
            HoldingLot.ticker == normalize_ticker(ticker),
            _account_filter(HoldingLot.account_id, account_id),
        )
        .all()
    )


def _get_holding(db: Session, ticker: str, account_id: str | None) -> Holding | None:
    return (
        db.query(Holding)
        .filter(
            Holding.ticker == ticker,
            _account_filter(Holding.account_id, account_id),
        )
        .first()
    )


def _tickers_for_account(db: Session, account_id: str | None) -> list[str]:
    tickers = {
        row[0]
        for row in db.query(HoldingLot.ticker)
        .filter(_account_filter(HoldingLot.account_id, account_id))
        .distinct()
    }
    tickers |= {
        row[0]
        for row in db.query(Holding.ticker).filter(_account_filter(Holding.account_id, account_id))
    }
    return sorted(tickers)


def _pair_sort_key(pair: tuple[str, str | None]) -> tuple[str, str]:
    return pair[0], pair[1] or ""
