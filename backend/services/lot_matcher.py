"""Lot matching: decides which lots a sale draws from and at what cost.

Pure functions with no database access. Works on anything shaped like a
lot (``MatchableLot``): persisted ``HoldingLot`` rows for the interactive
form path, and in-memory ``ReplayLot`` objects during CSV replay.

Insufficient inventory is not an error here. The shortfall is reported in
``MatchResult.unmatched_quantity`` and contributes zero cost basis.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_DOWN, Decimal
from enum import StrEnum
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)

QUANTITY_QUANTUM = Decimal("0.00000001")
COST_QUANTUM = Decimal("0.000001")
DEFAULT_LONG_TERM_DAYS = 365


def quantize_cost(value) -> Decimal:
    """Round a money amount to the scale its columns store."""
    return Decimal(value).quantize(COST_QUANTUM)


class LotMethod(StrEnum):
    """Lot selection method for sales."""

    FIFO = "FIFO"
    LIFO = "LIFO"
    HIFO = "HIFO"
    AVG = "AVG"


class HoldingPeriod(StrEnum):
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class MatchableLot(Protocol):
    """Structural type of a lot the matcher can consume from."""

    id: str
    purchase_date: date
    remaining_quantity: Decimal
    unit_price: Decimal


@dataclass
class LotConsumption:
    """Quantity taken from one lot by a sale."""

    lot: MatchableLot
    quantity: Decimal
    cost_basis: Decimal
    holding_days: int


@dataclass
class MatchResult:
    """Outcome of matching a sale against a lot pool."""

    method: LotMethod
    sale_quantity: Decimal
    consumptions: list[LotConsumption] = field(default_factory=list)
    cost_basis_consumed: Decimal = Decimal("0")
    unmatched_quantity: Decimal = Decimal("0")
    holding_period: HoldingPeriod = HoldingPeriod.LONG_TERM

    @property
    def quantity_matched(self) -> Decimal:
        return sum((c.quantity for c in self.consumptions), Decimal("0"))

    @property
    def insufficient_lots(self) -> bool:
        """True when the pool could not cover the whole sale."""
        return self.unmatched_quantity > 0


def eligible_lots(
    lots: Sequence[MatchableLot], sale_date: date
) -> list[MatchableLot]:
    """Lots a sale on ``sale_date`` may draw from, in chronological order.

    Lots with nothing remaining and lots purchased after the sale are
    excluded. The sort is stable, so lots bought on the same day keep the
    order in which they were supplied.
    """
    candidates = [
        lot for lot in lots
        if lot.remaining_quantity > 0 and lot.purchase_date <= sale_date
    ]
    return sorted(candidates, key=lambda lot: lot.purchase_date)


def order_lots(
    lots: Sequence[MatchableLot], method: LotMethod
) -> list[MatchableLot]:
    """Order chronologically-sorted candidates for greedy consumption.

    - FIFO: oldest purchase first
    - LIFO: newest purchase first
    - HIFO: highest unit price first; equal prices fall back to purchase
      date ascending, then to the supplied order
    - AVG: returned unchanged (average cost does not select lots)
    """
    if method == LotMethod.FIFO:
        return sorted(lots, key=lambda lot: lot.purchase_date)
    if method == LotMethod.LIFO:
        return sorted(lots, key=lambda lot: lot.purchase_date, reverse=True)
    if method == LotMethod.HIFO:
        chronological = sorted(lots, key=lambda lot: lot.purchase_date)
        return sorted(chronological, key=lambda lot: Decimal(lot.unit_price), reverse=True)
    return list(lots)


def classify_holding_period(
    consumptions: Sequence[LotConsumption],
    long_term_days: int = DEFAULT_LONG_TERM_DAYS,
) -> HoldingPeriod:
    """Classify a whole sale from the lots it consumed.

    If any consumed portion was held ``long_term_days`` days or fewer, the
    entire sale is short-term, rather than splitting it per unit.
    """
    for consumption in consumptions:
        if consumption.holding_days <= long_term_days:
            return HoldingPeriod.SHORT_TERM
    return HoldingPeriod.LONG_TERM


def match(
    sale_quantity: Decimal,
    sale_date: date,
    candidate_lots: Sequence[MatchableLot],
    method: LotMethod | str,
    long_term_days: int = DEFAULT_LONG_TERM_DAYS,
) -> MatchResult:
    """Match a sale against candidate lots without mutating them.

    Args:
        sale_quantity: Units being sold (must be positive)
        sale_date: Calendar date of the sale
        candidate_lots: Lots of the same (ticker, account) pool
        method: FIFO, LIFO, HIFO or AVG
        long_term_days: Holding-period threshold in days

    Returns:
        MatchResult describing the consumptions. Call ``apply_match`` to
        decrement the lots.
    """
    method = LotMethod(str(method).upper())
    sale_quantity = Decimal(sale_quantity)
    if sale_quantity <= 0:
        raise ValueError(f"Sale quantity must be positive, got {sale_quantity}")

    candidates = eligible_lots(candidate_lots, sale_date)

    if method == LotMethod.AVG:
        consumptions, cost_basis = _match_average(sale_quantity, sale_date, candidates)
    else:
        consumptions, cost_basis = _match_greedy(
            sale_quantity, sale_date, order_lots(candidates, method)
        )

    matched = sum((c.quantity for c in consumptions), Decimal("0"))
    result = MatchResult(
        method=method,
        sale_quantity=sale_quantity,
        consumptions=consumptions,
        cost_basis_consumed=cost_basis,
        unmatched_quantity=max(sale_quantity - matched, Decimal("0")),
        holding_period=classify_holding_period(consumptions, long_term_days),
    )

    if result.insufficient_lots:
        logger.warning(
            "%s match incomplete: %s of %s units have no lot (zero cost basis)",
            method, result.unmatched_quantity, sale_quantity,
        )
    return result


def apply_match(result: MatchResult) -> None:
    """Decrement each consumed lot's remaining quantity in place."""
    for consumption in result.consumptions:
        lot = consumption.lot
        new_remaining = Decimal(lot.remaining_quantity) - consumption.quantity
        if new_remaining < 0:
            raise ValueError(
                f"Consumption of {consumption.quantity} exceeds remaining "
                f"{lot.remaining_quantity} on lot {lot.id}"
            )
        lot.remaining_quantity = new_remaining


def realized_gain_loss(
    quantity: Decimal,
    unit_price: Decimal,
    fees: Decimal,
    cost_basis: Decimal,
) -> Decimal:
    """Proceeds net of fees minus the cost basis consumed."""
    proceeds = Decimal(quantity) * Decimal(unit_price) - Decimal(fees or 0)
    return quantize_cost(proceeds - Decimal(cost_basis))


def _holding_days(sale_date: date, lot: MatchableLot) -> int:
    return (sale_date - lot.purchase_date).days


def _match_greedy(
    sale_quantity: Decimal,
    sale_date: date,
    ordered_lots: Sequence[MatchableLot],
) -> tuple[list[LotConsumption], Decimal]:
    """Walk lots in order, taking as much of each as still needed."""
    remaining_to_sell = sale_quantity
    cost_basis = Decimal("0")
    consumptions: list[LotConsumption] = []

    for lot in ordered_lots:
        if remaining_to_sell <= 0:
            break
        take = min(remaining_to_sell, Decimal(lot.remaining_quantity))
        if take <= 0:
            continue
        lot_cost = quantize_cost(take * Decimal(lot.unit_price))
        consumptions.append(
            LotConsumption(
                lot=lot,
                quantity=take,
                cost_basis=lot_cost,
                holding_days=_holding_days(sale_date, lot),
            )
        )
        cost_basis += lot_cost
        remaining_to_sell -= take

    return consumptions, cost_basis


def _match_average(
    sale_quantity: Decimal,
    sale_date: date,
    candidates: Sequence[MatchableLot],
) -> tuple[list[LotConsumption], Decimal]:
    """Average cost: price at the pool's weighted mean, consume pro rata.

    Every candidate gives up the same fraction of its remaining quantity,
    which keeps each lot's share of the pool (and so the pool's average
    price) unchanged. Shares are rounded down to the quantity precision;
    the rounding residue goes to the lot with the most headroom left. The
    sale's cost basis is the sum of the per-lot costs after rounding them
    to the money scale.
    """
    total_quantity = sum((Decimal(lot.remaining_quantity) for lot in candidates), Decimal("0"))
    if total_quantity <= 0:
        return [], Decimal("0")

    total_cost = sum(
        (Decimal(lot.remaining_quantity) * Decimal(lot.unit_price) for lot in candidates),
        Decimal("0"),
    )
    weighted_avg_price = total_cost / total_quantity

    if sale_quantity >= total_quantity:
        shares = [Decimal(lot.remaining_quantity) for lot in candidates]
    else:
        shares = [
            (sale_quantity * Decimal(lot.remaining_quantity) / total_quantity).quantize(
                QUANTITY_QUANTUM, rounding=ROUND_DOWN
            )
            for lot in candidates
        ]
        residual = sale_quantity - sum(shares, Decimal("0"))
        if residual > 0:
            headrooms = [
                Decimal(lot.remaining_quantity) - share
                for lot, share in zip(candidates, shares)
            ]
            best = max(range(len(candidates)), key=lambda i: headrooms[i])
            shares[best] += min(residual, headrooms[best])

    consumptions = [
        LotConsumption(
            lot=lot,
            quantity=share,
            cost_basis=quantize_cost(share * weighted_avg_price),
            holding_days=_holding_days(sale_date, lot),
        )
        for lot, share in zip(candidates, shares)
        if share > 0
    ]
    return consumptions, sum((c.cost_basis for c in consumptions), Decimal("0"))
