"""Ledger replay: prices a stream of buy/sell transactions against lots.

Given raw transactions (typically a CSV import) and the lots that already
exist, replays everything in chronological order: each buy mints a new
lot, each sell is matched against the lots of its (ticker, account) pool
that exist at that point in time. The output is the priced transaction
list plus aggregate statistics; nothing is written to the database here.

Existing lots enter the pool at their *remaining* quantity, exactly what the
form path would match against, so replaying rows one by one through the
form and replaying them here end in the same lot pool.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Callable, Iterable, Literal, Sequence

from models import generate_uuid
from services.lot_matcher import (
    COST_QUANTUM,
    DEFAULT_LONG_TERM_DAYS,
    QUANTITY_QUANTUM,
    HoldingPeriod,
    LotMethod,
    apply_match,
    match,
    quantize_cost,
    realized_gain_loss,
)
from utils.parsing import parse_decimal, parse_trade_date
from utils.ticker import normalize_ticker

logger = logging.getLogger(__name__)


class TransactionType(StrEnum):
    BUY = "buy"
    SELL = "sell"


SELL_TOKENS = frozenset({"sell", "sold", "sale", "s"})
BUY_TOKENS = frozenset({"buy", "bought", "purchase", "b"})


def normalize_transaction_type(value: Any) -> TransactionType:
    """Coerce a free-form type token to buy or sell.

    Matching is case-insensitive. Only the sell keywords (sell, sold, sale,
    s) produce a sell; everything else, including unrecognized or empty
    tokens, is a buy.
    """
    token = str(value or "").strip().lower()
    if token in SELL_TOKENS:
        return TransactionType.SELL
    return TransactionType.BUY


@dataclass
class RawTransaction:
    """A transaction as supplied by the caller, before normalization."""

    type: Any
    ticker: str
    quantity: Any
    unit_price: Any
    trade_date: Any
    fees: Any = Decimal("0")
    account_id: str | None = None
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    row_number: int | None = None


@dataclass
class LedgerTransaction:
    """A normalized transaction ready for replay."""

    type: TransactionType
    ticker: str
    quantity: Decimal
    unit_price: Decimal
    trade_date: date
    fees: Decimal
    account_id: str | None
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    row_number: int | None = None


def normalize_transaction(raw: RawTransaction) -> LedgerTransaction:
    """Normalize type, ticker, numbers and date of a raw transaction.

    Quantities are rounded to 8 decimals and money amounts to 6, the
    scales the lot and sale columns store.

    Raises:
        ValueError: If the quantity, price or date cannot be parsed.
    """
    quantity = parse_decimal(raw.quantity)
    unit_price = parse_decimal(raw.unit_price)
    trade_date = parse_trade_date(raw.trade_date)
    if quantity is None:
        raise ValueError(f"Non-numeric quantity: {raw.quantity!r}")
    if unit_price is None:
        raise ValueError(f"Non-numeric price: {raw.unit_price!r}")
    if trade_date is None:
        raise ValueError(f"Unparseable date: {raw.trade_date!r}")

    fees = parse_decimal(raw.fees) if raw.fees not in (None, "") else Decimal("0")
    if fees is None:
        raise ValueError(f"Non-numeric fee: {raw.fees!r}")

    return LedgerTransaction(
        type=normalize_transaction_type(raw.type),
        ticker=normalize_ticker(str(raw.ticker or "")),
        quantity=quantity.quantize(QUANTITY_QUANTUM),
        unit_price=unit_price.quantize(COST_QUANTUM),
        trade_date=trade_date,
        fees=fees.quantize(COST_QUANTUM),
        account_id=raw.account_id,
        venue=raw.venue or None,
        notes=raw.notes or None,
        external_id=raw.external_id or None,
        row_number=raw.row_number,
    )


@dataclass
class ReplayLot:
    """In-memory lot tracked during replay."""

    id: str
    ticker: str
    account_id: str | None
    purchase_date: date
    original_quantity: Decimal
    remaining_quantity: Decimal
    unit_price: Decimal
    fees: Decimal = Decimal("0")
    is_existing: bool = False


@dataclass
class DisposalLine:
    """One (lot_id, quantity_consumed) pair of a priced sell."""

    lot_id: str
    quantity: Decimal
    cost_basis: Decimal
    existing_lot: bool


@dataclass
class PricedBuy:
    """A buy annotated with its freshly minted lot id and cost basis."""

    lot_id: str
    ticker: str
    account_id: str | None
    trade_date: date
    quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    cost_basis: Decimal
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    row_number: int | None = None
    type: Literal[TransactionType.BUY] = field(default=TransactionType.BUY, init=False)


@dataclass
class PricedSell:
    """A sell annotated with its cost basis, gain/loss and lot draws."""

    ticker: str
    account_id: str | None
    trade_date: date
    quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    cost_basis: Decimal
    realized_gain_loss: Decimal
    holding_period: HoldingPeriod
    lot_method: LotMethod
    disposals: list[DisposalLine] = field(default_factory=list)
    unmatched_quantity: Decimal = Decimal("0")
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    row_number: int | None = None
    type: Literal[TransactionType.SELL] = field(default=TransactionType.SELL, init=False)

    @property
    def needs_review(self) -> bool:
        return self.unmatched_quantity > 0


PricedTransaction = PricedBuy | PricedSell


@dataclass
class ReplayStats:
    """Aggregate counters over a replay."""

    buys: int = 0
    sells: int = 0
    total_gains: Decimal = Decimal("0")
    total_losses: Decimal = Decimal("0")
    short_term: int = 0
    long_term: int = 0
    insufficient_lot_sales: int = 0


@dataclass
class ReplayWarning:
    """A recoverable anomaly found during replay."""

    message: str
    row_number: int | None = None
    ticker: str | None = None
    unmatched_quantity: Decimal | None = None


@dataclass
class ReplayResult:
    priced_transactions: list[PricedTransaction] = field(default_factory=list)
    stats: ReplayStats = field(default_factory=ReplayStats)
    lots: list[ReplayLot] = field(default_factory=list)
    warnings: list[ReplayWarning] = field(default_factory=list)
    processed_count: int = 0
    cancelled: bool = False


def seed_lot_pool(existing_lots: Iterable[Any]) -> list[ReplayLot]:
    """Copy existing lots into replay lots at their remaining quantity."""
    pool = []
    for lot in existing_lots:
        pool.append(
            ReplayLot(
                id=lot.id,
                ticker=normalize_ticker(lot.ticker),
                account_id=lot.account_id,
                purchase_date=lot.purchase_date,
                original_quantity=Decimal(lot.original_quantity),
                remaining_quantity=Decimal(lot.remaining_quantity),
                unit_price=Decimal(lot.unit_price),
                fees=Decimal(lot.fees or 0),
                is_existing=True,
            )
        )
    return pool


def replay(
    raw_transactions: Sequence[RawTransaction | LedgerTransaction],
    existing_lots: Iterable[Any],
    method: LotMethod | str,
    *,
    should_cancel: Callable[[], bool] | None = None,
    long_term_days: int = DEFAULT_LONG_TERM_DAYS,
) -> ReplayResult:
    """Replay transactions chronologically, minting lots and matching sells.

    Args:
        raw_transactions: Buys and sells in any order
        existing_lots: Lots already recorded (HoldingLot rows or ReplayLots)
        method: Lot selection method applied to every sell
        should_cancel: Checked before each transaction; when it returns
            True the replay stops and returns the prefix processed so far
        long_term_days: Holding-period threshold in days

    Returns:
        ReplayResult with priced transactions, stats, final lot pool and
        warnings.
    """
    method = LotMethod(str(method).upper())
    result = ReplayResult(lots=seed_lot_pool(existing_lots))

    normalized: list[LedgerTransaction] = []
    for raw in raw_transactions:
        if isinstance(raw, LedgerTransaction):
            normalized.append(raw)
            continue
        try:
            normalized.append(normalize_transaction(raw))
        except ValueError as e:
            result.warnings.append(
                ReplayWarning(message=f"Skipped unparseable transaction: {e}", row_number=raw.row_number)
            )

    # Stable sort: same-day transactions keep their input order
    ordered = sorted(
        enumerate(normalized), key=lambda pair: (pair[1].trade_date, pair[0])
    )

    for _, tx in ordered:
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            logger.warning(
                "Replay cancelled after %d of %d transactions",
                result.processed_count, len(ordered),
            )
            break

        if tx.type == TransactionType.BUY:
            result.priced_transactions.append(_replay_buy(tx, result))
        else:
            result.priced_transactions.append(
                _replay_sell(tx, result, method, long_term_days)
            )
        result.processed_count += 1

    logger.info(
        "Replayed %d transactions (%s): %d buys, %d sells, %d flagged",
        result.processed_count, method, result.stats.buys, result.stats.sells,
        result.stats.insufficient_lot_sales,
    )
    return result


def _replay_buy(tx: LedgerTransaction, result: ReplayResult) -> PricedBuy:
    lot_id = generate_uuid()
    cost_basis = quantize_cost(tx.quantity * tx.unit_price + tx.fees)
    result.lots.append(
        ReplayLot(
            id=lot_id,
            ticker=tx.ticker,
            account_id=tx.account_id,
            purchase_date=tx.trade_date,
            original_quantity=tx.quantity,
            remaining_quantity=tx.quantity,
            unit_price=tx.unit_price,
            fees=tx.fees,
        )
    )
    result.stats.buys += 1
    return PricedBuy(
        lot_id=lot_id,
        ticker=tx.ticker,
        account_id=tx.account_id,
        trade_date=tx.trade_date,
        quantity=tx.quantity,
        unit_price=tx.unit_price,
        fees=tx.fees,
        cost_basis=cost_basis,
        venue=tx.venue,
        notes=tx.notes,
        external_id=tx.external_id,
        row_number=tx.row_number,
    )


def _replay_sell(
    tx: LedgerTransaction,
    result: ReplayResult,
    method: LotMethod,
    long_term_days: int,
) -> PricedSell:
    pool = [
        lot for lot in result.lots
        if lot.ticker == tx.ticker and lot.account_id == tx.account_id
    ]
    matched = match(tx.quantity, tx.trade_date, pool, method, long_term_days)
    apply_match(matched)

    gain = realized_gain_loss(tx.quantity, tx.unit_price, tx.fees, matched.cost_basis_consumed)

    stats = result.stats
    stats.sells += 1
    if matched.holding_period == HoldingPeriod.SHORT_TERM:
        stats.short_term += 1
    else:
        stats.long_term += 1
    if gain >= 0:
        stats.total_gains += gain
    else:
        stats.total_losses += abs(gain)

    if matched.insufficient_lots:
        stats.insufficient_lot_sales += 1
        result.warnings.append(
            ReplayWarning(
                message=(
                    f"Sell of {tx.quantity} {tx.ticker} on {tx.trade_date} exceeds "
                    f"available lots by {matched.unmatched_quantity}; the remainder "
                    "is treated as zero cost basis"
                ),
                row_number=tx.row_number,
                ticker=tx.ticker,
                unmatched_quantity=matched.unmatched_quantity,
            )
        )

    return PricedSell(
        ticker=tx.ticker,
        account_id=tx.account_id,
        trade_date=tx.trade_date,
        quantity=tx.quantity,
        unit_price=tx.unit_price,
        fees=tx.fees,
        cost_basis=matched.cost_basis_consumed,
        realized_gain_loss=gain,
        holding_period=matched.holding_period,
        lot_method=method,
        disposals=[
            DisposalLine(
                lot_id=c.lot.id,
                quantity=c.quantity,
                cost_basis=c.cost_basis,
                existing_lot=c.lot.is_existing,
            )
            for c in matched.consumptions
        ],
        unmatched_quantity=matched.unmatched_quantity,
        venue=tx.venue,
        notes=tx.notes,
        external_id=tx.external_id,
        row_number=tx.row_number,
    )
