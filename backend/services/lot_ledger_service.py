"""Service for lot-based cost basis tracking.

The lot store: CRUD, scoped queries, aggregation and sale recording for
HoldingLot, SaleRecord and LotDisposal records. Queries are always scoped
to a (ticker, account) pool or an account, never the full collection.
Has no knowledge of Holdings; keeping holdings in line with their lots is
the job of the holding reconciliation service.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session, selectinload

from models import Account, HoldingLot, LotDisposal, SaleRecord
from schemas.lot import HoldingLotCreate, HoldingLotUpdate
from services.lot_matcher import quantize_cost, realized_gain_loss
from utils.ticker import normalize_ticker

logger = logging.getLogger(__name__)


class LotLedgerService:
    """Manages lot CRUD, scoped queries, aggregation and sale recording."""

    # Serializes lot-pool reads and writes per account. Request handlers
    # take it before their first query and release it after commit. This
    # works for a single-process deployment; multiple workers would need a
    # database level lock or an optimistic version check on the pool.
    _registry_lock = threading.Lock()
    _account_locks: dict[str | None, threading.RLock] = {}

    @classmethod
    @contextmanager
    def pool_lock(cls, account_id: str | None):
        """Hold the lock guarding every lot pool of an account."""
        with cls._registry_lock:
            lock = cls._account_locks.setdefault(account_id, threading.RLock())
        with lock:
            yield

    @classmethod
    @contextmanager
    def pool_locks(cls, account_ids: Iterable[str | None]):
        """Hold the pool locks of several accounts, taken in a fixed order."""
        ordered = sorted(set(account_ids), key=lambda account_id: account_id or "")
        with ExitStack() as stack:
            for account_id in ordered:
                stack.enter_context(cls.pool_lock(account_id))
            yield

    # --- CRUD ---

    @staticmethod
    def create_lot(
        db: Session,
        account_id: str | None,
        lot_data: HoldingLotCreate,
        source: str = "manual",
        lot_id: str | None = None,
        external_id: str | None = None,
    ) -> HoldingLot:
        """Create a lot with its full quantity remaining.

        Raises ValueError if the account doesn't exist.
        """
        if account_id is not None and db.get(Account, account_id) is None:
            raise ValueError(f"Unknown account: {account_id}")

        lot = HoldingLot(
            account_id=account_id,
            ticker=normalize_ticker(lot_data.ticker),
            purchase_date=lot_data.purchase_date,
            original_quantity=lot_data.quantity,
            remaining_quantity=lot_data.quantity,
            unit_price=lot_data.unit_price,
            fees=lot_data.fees,
            source=source,
            venue=lot_data.venue,
            notes=lot_data.notes,
            external_id=external_id,
        )
        if lot_id is not None:
            lot.id = lot_id
        db.add(lot)
        db.flush()
        logger.info(
            "Created lot: %s units of %s @ %s in account %s",
            lot_data.quantity,
            lot.ticker,
            lot_data.unit_price,
            account_id,
        )
        return lot

    @staticmethod
    def update_lot(
        db: Session, lot_id: str, lot_data: HoldingLotUpdate
    ) -> HoldingLot:
        """Rewrite a lot's fields.

        When quantity is provided, it becomes the new original_quantity;
        remaining_quantity is adjusted to preserve the disposed amount.
        """
        lot = db.get(HoldingLot, lot_id)
        if not lot:
            raise ValueError(f"Lot not found: {lot_id}")

        if lot_data.purchase_date is not None:
            earliest_sale = (
                db.query(SaleRecord.sale_date)
                .join(LotDisposal, LotDisposal.sale_id == SaleRecord.id)
                .filter(LotDisposal.holding_lot_id == lot.id)
                .order_by(SaleRecord.sale_date.asc())
                .first()
            )
            if earliest_sale and lot_data.purchase_date > earliest_sale[0]:
                raise ValueError(
                    f"Purchase date {lot_data.purchase_date} is after a sale "
                    f"that drew from this lot ({earliest_sale[0]})"
                )
            lot.purchase_date = lot_data.purchase_date

        if lot_data.unit_price is not None:
            lot.unit_price = lot_data.unit_price

        if lot_data.fees is not None:
            lot.fees = lot_data.fees

        if lot_data.venue is not None:
            lot.venue = lot_data.venue

        if lot_data.notes is not None:
            lot.notes = lot_data.notes

        if lot_data.quantity is not None:
            disposed = Decimal(lot.original_quantity) - Decimal(lot.remaining_quantity)
            if lot_data.quantity < disposed:
                raise ValueError(
                    f"New quantity ({lot_data.quantity}) cannot be less than "
                    f"already-disposed amount ({disposed})"
                )
            lot.original_quantity = lot_data.quantity
            lot.remaining_quantity = lot_data.quantity - disposed

        db.flush()
        logger.info("Updated lot: %s", lot_id)
        return lot

    @staticmethod
    def delete_lot(db: Session, lot_id: str) -> HoldingLot:
        """Delete a lot. Cascade removes its disposals.

        Returns the deleted (detached) lot so callers can reconcile its pool.
        """
        lot = db.get(HoldingLot, lot_id)
        if not lot:
            raise ValueError(f"Lot not found: {lot_id}")

        if lot.disposals:
            logger.warning(
                "Deleting lot %s with %d disposals; the sales keep their recorded cost basis",
                lot_id,
                len(lot.disposals),
            )
            for disposal in list(lot.disposals):
                disposal.sale.disposals.remove(disposal)
        logger.info(
            "Deleting lot: %s (%s units of %s)",
            lot_id,
            lot.remaining_quantity,
            lot.ticker,
        )
        db.delete(lot)
        db.flush()
        return lot

    # --- Queries ---

    @staticmethod
    def get_lot(db: Session, lot_id: str) -> HoldingLot | None:
        return db.get(HoldingLot, lot_id)

    @staticmethod
    def get_lots_for(
        db: Session,
        ticker: str,
        account_id: str | None,
        include_closed: bool = False,
    ) -> list[HoldingLot]:
        """Get the lot pool for a (ticker, account), oldest first."""
        query = (
            db.query(HoldingLot)
            .options(selectinload(HoldingLot.disposals))
            .filter(
                HoldingLot.ticker == normalize_ticker(ticker),
                HoldingLot.account_id.is_(None) if account_id is None
                else HoldingLot.account_id == account_id,
            )
        )
        if not include_closed:
            query = query.filter(HoldingLot.remaining_quantity > 0)
        return query.order_by(
            HoldingLot.purchase_date.asc(), HoldingLot.created_at.asc()
        ).all()

    @staticmethod
    def get_lots_for_account(
        db: Session, account_id: str, include_closed: bool = False
    ) -> list[HoldingLot]:
        """Get all lots for an account, ordered by purchase date."""
        query = db.query(HoldingLot).filter(HoldingLot.account_id == account_id)
        if not include_closed:
            query = query.filter(HoldingLot.remaining_quantity > 0)
        return query.order_by(
            HoldingLot.purchase_date.asc(), HoldingLot.created_at.asc()
        ).all()

    @staticmethod
    def get_sales_for(
        db: Session, ticker: str, account_id: str | None
    ) -> list[SaleRecord]:
        """Get the sales of a (ticker, account), oldest first."""
        return (
            db.query(SaleRecord)
            .options(selectinload(SaleRecord.disposals))
            .filter(
                SaleRecord.ticker == normalize_ticker(ticker),
                SaleRecord.account_id.is_(None) if account_id is None
                else SaleRecord.account_id == account_id,
            )
            .order_by(SaleRecord.sale_date.asc(), SaleRecord.created_at.asc())
            .all()
        )

    @staticmethod
    def get_sales_for_account(db: Session, account_id: str) -> list[SaleRecord]:
        return (
            db.query(SaleRecord)
            .filter(SaleRecord.account_id == account_id)
            .order_by(SaleRecord.sale_date.asc(), SaleRecord.created_at.asc())
            .all()
        )

    @staticmethod
    def get_tickers_for_account(db: Session, account_id: str | None) -> set[str]:
        """Tickers with at least one lot or sale in the account."""
        lot_filter = (
            HoldingLot.account_id.is_(None) if account_id is None
            else HoldingLot.account_id == account_id
        )
        sale_filter = (
            SaleRecord.account_id.is_(None) if account_id is None
            else SaleRecord.account_id == account_id
        )
        tickers = {row[0] for row in db.query(HoldingLot.ticker).filter(lot_filter).distinct()}
        tickers |= {row[0] for row in db.query(SaleRecord.ticker).filter(sale_filter).distinct()}
        return tickers

    # --- Sales ---

    @staticmethod
    def record_sale(
        db: Session,
        *,
        account_id: str | None,
        ticker: str,
        sale_date: date,
        quantity: Decimal,
        unit_price: Decimal,
        fees: Decimal,
        holding_period: str,
        lot_method: str,
        disposals: list[tuple[str, Decimal, Decimal]],
        unmatched_quantity: Decimal = Decimal("0"),
        source: str = "form",
        venue: str | None = None,
        notes: str | None = None,
        external_id: str | None = None,
    ) -> SaleRecord:
        """Persist a matched sale and decrement the lots it drew from.

        Args:
            disposals: (lot_id, quantity_consumed, cost_basis) triples

        A lot that no longer holds the requested quantity is drawn down to
        zero; the shortfall joins ``unmatched_quantity`` and the sale is
        flagged for review. Raises ValueError if a referenced lot is
        missing or belongs to a different pool.
        """
        ticker = normalize_ticker(ticker)
        sale = SaleRecord(
            account_id=account_id,
            ticker=ticker,
            sale_date=sale_date,
            quantity=quantity,
            unit_price=unit_price,
            fees=fees,
            holding_period=holding_period,
            lot_method=lot_method,
            source=source,
            venue=venue,
            notes=notes,
            external_id=external_id,
        )

        cost_basis = Decimal("0")
        unmatched = Decimal(unmatched_quantity)
        for lot_id, requested, lot_cost in disposals:
            lot = db.get(HoldingLot, lot_id)
            if lot is None:
                raise ValueError(f"Lot not found: {lot_id}")
            if lot.ticker != ticker or lot.account_id != account_id:
                raise ValueError(
                    f"Lot {lot_id} does not belong to {ticker} in account {account_id}"
                )

            available = Decimal(lot.remaining_quantity)
            take = min(Decimal(requested), available)
            if take < requested:
                logger.warning(
                    "Lot %s holds %s but %s was requested; %s left unmatched",
                    lot_id[:8], available, requested, requested - take,
                )
                unmatched += requested - take
                lot_cost = Decimal(lot_cost) * take / Decimal(requested)
            if take <= 0:
                continue

            lot_cost = quantize_cost(lot_cost)
            lot.remaining_quantity = available - take
            sale.disposals.append(
                LotDisposal(holding_lot=lot, quantity=take, cost_basis=lot_cost)
            )
            cost_basis += lot_cost
            logger.info(
                "Disposal: %s units from lot %s (remaining: %s)",
                take, lot_id[:8], lot.remaining_quantity,
            )

        sale.cost_basis = cost_basis
        sale.unmatched_quantity = unmatched
        sale.needs_review = unmatched > 0
        sale.realized_gain_loss = realized_gain_loss(quantity, unit_price, fees, cost_basis)
        db.add(sale)
        db.flush()

        if sale.needs_review:
            logger.warning(
                "Sale %s of %s %s flagged: %s units without a backing lot",
                sale.id[:8], quantity, ticker, unmatched,
            )
        return sale

    # --- Aggregation ---

    @staticmethod
    def get_lot_summary(
        db: Session, ticker: str, account_id: str | None
    ) -> dict:
        """Compute an aggregated lot summary for a (ticker, account) pool.

        Returns:
            Dict with lotted quantity, open lot count, remaining cost basis
            and realized gain/loss from recorded sales.
        """
        lots = LotLedgerService.get_lots_for(db, ticker, account_id, include_closed=False)
        sales = LotLedgerService.get_sales_for(db, ticker, account_id)

        lotted_quantity = sum(
            (Decimal(lot.remaining_quantity) for lot in lots), Decimal("0")
        )
        remaining_cost_basis = sum(
            (lot.remaining_cost_basis for lot in lots), Decimal("0")
        )
        realized = sum(
            (Decimal(sale.realized_gain_loss) for sale in sales), Decimal("0")
        )

        return {
            "ticker": normalize_ticker(ticker),
            "account_id": account_id,
            "lotted_quantity": lotted_quantity,
            "open_lot_count": len(lots),
            "remaining_cost_basis": remaining_cost_basis,
            "realized_gain_loss": realized,
        }
