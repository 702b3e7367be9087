"""CSV transaction import.

Pipeline states, in order: UPLOADED -> MAPPED -> PREVIEWED -> COMMITTED.

- UPLOADED: the text is parsed into a header and rows (dict per row)
- MAPPED: logical fields are mapped to source columns
- PREVIEWED: the first rows are rendered through the same normalization
  used at commit
- COMMITTED: invalid rows and duplicates are dropped, the rest is replayed
  against the account's lots and persisted, touched holdings are reconciled

``back()`` is the only backward transition. Parse and mapping problems
raise; bad rows are counted and reported.
"""

import csv
import io
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Callable

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models import Account, HoldingLot, ImportRun, SaleRecord
from schemas.lot import HoldingLotCreate
from services.exceptions import (
    ColumnMappingError,
    CsvParseError,
    ImportStateError,
    PersistenceError,
)
from services.holding_reconciliation_service import HoldingReconciliationService
from services.ledger_replay_service import (
    LedgerTransaction,
    PricedBuy,
    PricedTransaction,
    RawTransaction,
    TransactionType,
    normalize_transaction,
    replay,
)
from services.lot_ledger_service import LotLedgerService
from services.lot_matcher import COST_QUANTUM, QUANTITY_QUANTUM, LotMethod

logger = logging.getLogger(__name__)


class ImportState(StrEnum):
    UPLOADED = "uploaded"
    MAPPED = "mapped"
    PREVIEWED = "previewed"
    COMMITTED = "committed"


REQUIRED_FIELDS = ("type", "ticker", "quantity", "price", "date")
OPTIONAL_FIELDS = ("fee", "venue", "notes", "external_id")
IMPORT_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

# Header names recognized by suggest_mapping, compared case-insensitively
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "type": ("type", "side", "action", "transaction type"),
    "ticker": ("ticker", "symbol", "asset", "asset ticker"),
    "quantity": ("quantity", "qty", "amount", "shares", "units"),
    "price": ("price", "unit price", "price per unit", "spot price"),
    "date": ("date", "trade date", "timestamp", "time"),
    "fee": ("fee", "fees", "commission", "trading fee"),
    "venue": ("venue", "exchange", "wallet", "exchange/wallet"),
    "notes": ("notes", "note", "memo", "description"),
    "external_id": ("id", "transaction id", "txid", "external id", "order id"),
}


@dataclass
class ParsedCsv:
    headers: list[str]
    rows: list[dict[str, str]]


@dataclass
class RowError:
    """A dropped row, numbered from 1 over the data rows."""

    row_number: int
    reason: str
    kind: str = "invalid"  # "invalid" / "duplicate" / "persistence"


@dataclass
class PreviewRow:
    row_number: int
    type: str | None = None
    ticker: str | None = None
    quantity: Decimal | None = None
    price: Decimal | None = None
    date: str | None = None
    fee: Decimal | None = None
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    error: str | None = None


@dataclass
class ImportResult:
    """Counters and diagnostics of one commit."""

    account_id: str
    lot_method: str
    rows_total: int = 0
    committed_count: int = 0
    invalid_rows_dropped: int = 0
    duplicates_skipped: int = 0
    persistence_failures: int = 0
    buys: int = 0
    sells: int = 0
    total_gains: Decimal = Decimal("0")
    total_losses: Decimal = Decimal("0")
    short_term: int = 0
    long_term: int = 0
    flagged_sales: int = 0
    cancelled: bool = False
    timed_out: bool = False
    row_errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    touched_holdings: list[tuple[str, str]] = field(default_factory=list)
    import_run_id: str | None = None

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.timed_out or self.persistence_failures:
            return "partial"
        return "completed"


def parse_csv(text: str, max_rows: int | None = None) -> ParsedCsv:
    """Parse comma-delimited, double-quote-escaped text with a header row.

    Blank lines and rows with only empty cells are skipped. Short rows are
    padded with empty strings.

    Raises:
        CsvParseError: If the text is empty, malformed, has no data rows or
            more than ``max_rows`` of them.
    """
    if text is None or not text.strip():
        raise CsvParseError("Empty file")

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), strict=True)
    try:
        records = [record for record in reader if any(cell.strip() for cell in record)]
    except csv.Error as e:
        raise CsvParseError(f"Malformed CSV at line {reader.line_num}: {e}", reader.line_num) from e

    if not records:
        raise CsvParseError("Empty file")

    headers = [h.strip() for h in records[0]]
    if any(not h for h in headers):
        raise CsvParseError("Header row contains an empty column name", 1)
    if len(set(headers)) != len(headers):
        raise CsvParseError("Header row contains duplicate column names", 1)

    rows = []
    for record in records[1:]:
        if len(record) > len(headers):
            raise CsvParseError(
                f"Row {len(rows) + 1} has {len(record)} fields, header has {len(headers)}"
            )
        values = [cell.strip() for cell in record] + [""] * (len(headers) - len(record))
        rows.append(dict(zip(headers, values)))

    if not rows:
        raise CsvParseError("No data rows found")
    if max_rows is not None and len(rows) > max_rows:
        raise CsvParseError(f"File has {len(rows)} rows; the limit is {max_rows}")

    logger.debug("Parsed CSV: %d columns, %d rows", len(headers), len(rows))
    return ParsedCsv(headers=headers, rows=rows)


def suggest_mapping(headers: list[str]) -> dict[str, str]:
    """Guess a field -> column mapping from well-known header names."""
    by_name = {h.strip().lower(): h for h in headers}
    mapping = {}
    for field_name, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in by_name:
                mapping[field_name] = by_name[alias]
                break
    return mapping


def _cell(row: dict[str, str], mapping: dict[str, str], field_name: str) -> str | None:
    column = mapping.get(field_name)
    if not column:
        return None
    return row.get(column)


def normalize_row(
    row: dict[str, str],
    mapping: dict[str, str],
    account_id: str | None,
    row_number: int,
) -> LedgerTransaction:
    """Normalize and validate one mapped row.

    Raises:
        ValueError: With the reason the row is dropped.
    """
    tx = normalize_transaction(
        RawTransaction(
            type=_cell(row, mapping, "type"),
            ticker=_cell(row, mapping, "ticker") or "",
            quantity=_cell(row, mapping, "quantity"),
            unit_price=_cell(row, mapping, "price"),
            trade_date=_cell(row, mapping, "date"),
            fees=_cell(row, mapping, "fee"),
            account_id=account_id,
            venue=_cell(row, mapping, "venue"),
            notes=_cell(row, mapping, "notes"),
            external_id=_cell(row, mapping, "external_id"),
            row_number=row_number,
        )
    )
    if not tx.ticker:
        raise ValueError("Missing ticker")
    if tx.quantity <= 0:
        raise ValueError(f"Quantity must be positive, got {tx.quantity}")
    if tx.unit_price <= 0:
        raise ValueError(f"Price must be positive, got {tx.unit_price}")
    if tx.fees < 0:
        raise ValueError(f"Fee cannot be negative, got {tx.fees}")
    return tx


def _duplicate_key(type_: str, ticker: str, quantity, price, trade_date) -> tuple:
    return (
        str(type_),
        ticker,
        Decimal(quantity).quantize(QUANTITY_QUANTUM),
        Decimal(price).quantize(COST_QUANTUM),
        trade_date,
    )


class CsvImportPipeline:
    """One upload's trip through the import state machine."""

    def __init__(self, account_id: str, text: str, filename: str | None = None):
        self.account_id = account_id
        self.filename = filename
        self.parsed = parse_csv(text, settings.IMPORT_MAX_ROWS)
        self.mapping: dict[str, str] = {}
        self.state = ImportState.UPLOADED
        self.result: ImportResult | None = None

    @property
    def headers(self) -> list[str]:
        return self.parsed.headers

    @property
    def missing_required_fields(self) -> list[str]:
        return [f for f in REQUIRED_FIELDS if not self.mapping.get(f)]

    def _require(self, *states: ImportState) -> None:
        if self.state not in states:
            raise ImportStateError(
                f"Not allowed in state {self.state}; expected {', '.join(states)}"
            )

    def map_columns(self, mapping: dict[str, str | None]) -> None:
        """Set the field -> column mapping. Empty values leave a field unmapped."""
        self._require(ImportState.UPLOADED, ImportState.MAPPED)

        unknown = sorted(set(mapping) - set(IMPORT_FIELDS))
        if unknown:
            raise ColumnMappingError(f"Unknown fields: {', '.join(unknown)}")

        cleaned = {k: v for k, v in mapping.items() if v}
        missing_columns = sorted(v for v in cleaned.values() if v not in self.parsed.headers)
        if missing_columns:
            raise ColumnMappingError(
                f"Columns not in file: {', '.join(missing_columns)}",
                missing_fields=[k for k, v in cleaned.items() if v in missing_columns],
            )

        self.mapping = cleaned
        self.state = ImportState.MAPPED

    def preview(self, limit: int | None = None) -> list[PreviewRow]:
        """Render the first rows exactly as commit would normalize them."""
        self._require(ImportState.MAPPED, ImportState.PREVIEWED)
        if self.missing_required_fields:
            raise ColumnMappingError(
                f"Required fields not mapped: {', '.join(self.missing_required_fields)}",
                missing_fields=self.missing_required_fields,
            )

        limit = settings.IMPORT_PREVIEW_ROWS if limit is None else limit
        rows = []
        for index, row in enumerate(self.parsed.rows[:limit], start=1):
            try:
                tx = normalize_row(row, self.mapping, self.account_id, index)
            except ValueError as e:
                rows.append(PreviewRow(row_number=index, error=str(e)))
                continue
            rows.append(
                PreviewRow(
                    row_number=index,
                    type=tx.type,
                    ticker=tx.ticker,
                    quantity=tx.quantity,
                    price=tx.unit_price,
                    date=tx.trade_date.isoformat(),
                    fee=tx.fees,
                    venue=tx.venue,
                    notes=tx.notes,
                    external_id=tx.external_id,
                )
            )

        self.state = ImportState.PREVIEWED
        return rows

    def back(self) -> None:
        """Step back one state: PREVIEWED -> MAPPED -> UPLOADED."""
        if self.state == ImportState.PREVIEWED:
            self.state = ImportState.MAPPED
        elif self.state == ImportState.MAPPED:
            self.state = ImportState.UPLOADED
        else:
            raise ImportStateError(f"Cannot go back from state {self.state}")

    def commit(
        self,
        db: Session,
        method: LotMethod | str | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ImportResult:
        """Validate, replay and persist every row, then reconcile holdings.

        Changes are flushed, not committed; the caller owns the transaction.

        Raises:
            ImportStateError: If the pipeline hasn't been previewed.
            PersistenceError: If the database fails even row by row.
        """
        self._require(ImportState.PREVIEWED)
        if db.get(Account, self.account_id) is None:
            raise ValueError(f"Unknown account: {self.account_id}")

        method = LotMethod(str(method or settings.DEFAULT_LOT_METHOD).upper())
        result = ImportResult(
            account_id=self.account_id,
            lot_method=method,
            rows_total=len(self.parsed.rows),
        )
        deadline = time.monotonic() + settings.IMPORT_TIMEOUT_SECONDS

        def stop_requested() -> bool:
            if should_cancel is not None and should_cancel():
                result.cancelled = True
                return True
            if time.monotonic() > deadline:
                result.timed_out = True
                return True
            return False

        with LotLedgerService.pool_lock(self.account_id):
            valid = self._validate_rows(db, result)

            tickers = {tx.ticker for tx in valid}
            existing_lots = (
                db.query(HoldingLot)
                .filter(
                    HoldingLot.account_id == self.account_id,
                    HoldingLot.ticker.in_(sorted(tickers)),
                )
                .order_by(HoldingLot.purchase_date.asc(), HoldingLot.created_at.asc())
                .all()
                if tickers else []
            )

            replayed = replay(
                valid,
                existing_lots,
                method,
                should_cancel=stop_requested,
                long_term_days=settings.LONG_TERM_HOLDING_DAYS,
            )
            stats = replayed.stats
            result.buys = stats.buys
            result.sells = stats.sells
            result.total_gains = stats.total_gains
            result.total_losses = stats.total_losses
            result.short_term = stats.short_term
            result.long_term = stats.long_term
            result.warnings.extend(w.message for w in replayed.warnings)

            self._persist(db, replayed.priced_transactions, result, deadline)

            pairs = sorted({tx.ticker for tx in replayed.priced_transactions})
            HoldingReconciliationService.reconcile_many(
                db, [(ticker, self.account_id) for ticker in pairs]
            )
            result.touched_holdings = [(ticker, self.account_id) for ticker in pairs]

            run = ImportRun(
                account_id=self.account_id,
                filename=self.filename,
                lot_method=method,
                status=result.status,
                rows_total=result.rows_total,
                committed_count=result.committed_count,
                invalid_rows_dropped=result.invalid_rows_dropped,
                duplicates_skipped=result.duplicates_skipped,
                persistence_failures=result.persistence_failures,
                flagged_sales=result.flagged_sales,
            )
            db.add(run)
            db.flush()
            result.import_run_id = run.id

        self.state = ImportState.COMMITTED
        self.result = result
        logger.info(
            "Import %s into account %s (%s): %d/%d committed, %d invalid, "
            "%d duplicates, %d failed, %d flagged sales",
            result.status, self.account_id, method, result.committed_count,
            result.rows_total, result.invalid_rows_dropped, result.duplicates_skipped,
            result.persistence_failures, result.flagged_sales,
        )
        return result

    # --- Commit phases ---

    def _validate_rows(self, db: Session, result: ImportResult) -> list[LedgerTransaction]:
        """Normalize every row, dropping invalid rows and duplicates."""
        seen_ids, seen_keys = self._existing_identities(db)
        valid = []
        for index, row in enumerate(self.parsed.rows, start=1):
            try:
                tx = normalize_row(row, self.mapping, self.account_id, index)
            except ValueError as e:
                result.invalid_rows_dropped += 1
                result.row_errors.append(RowError(row_number=index, reason=str(e)))
                continue

            key = _duplicate_key(tx.type, tx.ticker, tx.quantity, tx.unit_price, tx.trade_date)
            if (tx.external_id and tx.external_id in seen_ids) or key in seen_keys:
                result.duplicates_skipped += 1
                result.row_errors.append(
                    RowError(row_number=index, reason="Already recorded", kind="duplicate")
                )
                continue

            if tx.external_id:
                seen_ids.add(tx.external_id)
            valid.append(tx)

        if result.invalid_rows_dropped:
            logger.warning(
                "Dropped %d invalid rows of %d", result.invalid_rows_dropped, result.rows_total
            )
        return valid

    def _existing_identities(self, db: Session) -> tuple[set[str], set[tuple]]:
        """External ids and (type, ticker, quantity, price, date) keys already recorded."""
        ids: set[str] = set()
        keys: set[tuple] = set()
        lots = db.query(HoldingLot).filter(HoldingLot.account_id == self.account_id).all()
        for lot in lots:
            if lot.external_id:
                ids.add(lot.external_id)
            keys.add(
                _duplicate_key(
                    TransactionType.BUY, lot.ticker, lot.original_quantity,
                    lot.unit_price, lot.purchase_date,
                )
            )
        sales = db.query(SaleRecord).filter(SaleRecord.account_id == self.account_id).all()
        for sale in sales:
            if sale.external_id:
                ids.add(sale.external_id)
            keys.add(
                _duplicate_key(
                    TransactionType.SELL, sale.ticker, sale.quantity,
                    sale.unit_price, sale.sale_date,
                )
            )
        return ids, keys

    def _persist(
        self,
        db: Session,
        priced: list[PricedTransaction],
        result: ImportResult,
        deadline: float,
    ) -> None:
        """Write all priced transactions at once, falling back to one by one."""
        if not priced:
            return

        try:
            with db.begin_nested():
                flagged = sum(1 for tx in priced if self._persist_one(db, tx))
            result.committed_count = len(priced)
            result.flagged_sales = flagged
            return
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(
                "Bulk write of %d transactions failed (%s); retrying row by row",
                len(priced), e,
            )

        for position, tx in enumerate(priced):
            if time.monotonic() > deadline:
                result.timed_out = True
                result.warnings.append(
                    f"Timed out after writing {result.committed_count} transactions; "
                    f"{len(priced) - position} not written"
                )
                break
            try:
                with db.begin_nested():
                    flagged = self._persist_one(db, tx)
            except OperationalError as e:
                raise PersistenceError(f"Database unavailable during import: {e}") from e
            except (SQLAlchemyError, ValueError) as e:
                result.persistence_failures += 1
                result.row_errors.append(
                    RowError(row_number=tx.row_number or 0, reason=str(e), kind="persistence")
                )
                logger.warning("Row %s could not be written: %s", tx.row_number, e)
                continue
            result.committed_count += 1
            if flagged:
                result.flagged_sales += 1

    def _persist_one(self, db: Session, tx: PricedTransaction) -> bool:
        """Write one priced transaction. Returns True for a flagged sale."""
        if isinstance(tx, PricedBuy):
            LotLedgerService.create_lot(
                db,
                self.account_id,
                HoldingLotCreate(
                    ticker=tx.ticker,
                    purchase_date=tx.trade_date,
                    quantity=tx.quantity,
                    unit_price=tx.unit_price,
                    fees=tx.fees,
                    venue=tx.venue,
                    notes=tx.notes,
                ),
                source="import",
                lot_id=tx.lot_id,
                external_id=tx.external_id,
            )
            return False

        sale = LotLedgerService.record_sale(
            db,
            account_id=self.account_id,
            ticker=tx.ticker,
            sale_date=tx.trade_date,
            quantity=tx.quantity,
            unit_price=tx.unit_price,
            fees=tx.fees,
            holding_period=tx.holding_period,
            lot_method=tx.lot_method,
            disposals=[(d.lot_id, d.quantity, d.cost_basis) for d in tx.disposals],
            unmatched_quantity=tx.unmatched_quantity,
            source="import",
            venue=tx.venue,
            notes=tx.notes,
            external_id=tx.external_id,
        )
        return sale.needs_review
