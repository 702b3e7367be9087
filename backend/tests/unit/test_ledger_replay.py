"""Tests for the ledger replayer."""

from datetime import date
from decimal import Decimal

import pytest

from services.ledger_replay_service import (
    PricedBuy,
    PricedSell,
    RawTransaction,
    ReplayLot,
    TransactionType,
    normalize_transaction,
    normalize_transaction_type,
    replay,
)
from services.lot_matcher import HoldingPeriod, LotMethod


def raw(type_, ticker, quantity, price, trade_date, fees="0", account_id="acct", row=None):
    return RawTransaction(
        type=type_,
        ticker=ticker,
        quantity=quantity,
        unit_price=price,
        trade_date=trade_date,
        fees=fees,
        account_id=account_id,
        row_number=row,
    )


class TestTransactionType:
    @pytest.mark.parametrize("token", ["sell", "SOLD", "Sale", "s", " S "])
    def test_sell_tokens(self, token):
        assert normalize_transaction_type(token) == TransactionType.SELL

    @pytest.mark.parametrize("token", ["buy", "Bought", "PURCHASE", "b"])
    def test_buy_tokens(self, token):
        assert normalize_transaction_type(token) == TransactionType.BUY

    @pytest.mark.parametrize("token", ["deposit", "", None, "transfer"])
    def test_unrecognized_defaults_to_buy(self, token):
        assert normalize_transaction_type(token) == TransactionType.BUY


class TestNormalizeTransaction:
    def test_normalizes_fields(self):
        tx = normalize_transaction(
            raw("Sold", " btc ", "$1,000.50", "2.5", "2024-01-15 10:30:00", fees="1.25")
        )

        assert tx.type == TransactionType.SELL
        assert tx.ticker == "BTC"
        assert tx.quantity == Decimal("1000.50")
        assert tx.unit_price == Decimal("2.5")
        assert tx.trade_date == date(2024, 1, 15)
        assert tx.fees == Decimal("1.25")

    def test_missing_fee_is_zero(self):
        tx = normalize_transaction(raw("buy", "ETH", "1", "100", "2024-01-01", fees=None))
        assert tx.fees == Decimal("0")

    def test_non_numeric_quantity_raises(self):
        with pytest.raises(ValueError, match="quantity"):
            normalize_transaction(raw("buy", "ETH", "lots", "100", "2024-01-01"))

    def test_bad_date_raises(self):
        with pytest.raises(ValueError, match="date"):
            normalize_transaction(raw("buy", "ETH", "1", "100", "yesterday"))

    def test_rounds_to_stored_scale(self):
        tx = normalize_transaction(
            raw("buy", "BTC", "0.123456789", "100.1234567", "2024-01-01", fees="0.0000004")
        )

        assert tx.quantity == Decimal("0.12345679")
        assert tx.unit_price == Decimal("100.123457")
        assert tx.fees == Decimal("0")


class TestReplay:
    def test_avg_sell_amounts_use_stored_scale(self):
        result = replay(
            [
                raw("buy", "ETH", "1", "100", "2023-01-01"),
                raw("buy", "ETH", "1", "100", "2023-02-01"),
                raw("buy", "ETH", "1", "101", "2023-03-01"),
                raw("sell", "ETH", "1", "150", "2023-06-01"),
            ],
            [],
            LotMethod.AVG,
        )

        sell = result.priced_transactions[-1]
        # 301 / 3 per unit
        assert sell.cost_basis == Decimal("100.333333")
        assert sum(d.cost_basis for d in sell.disposals) == sell.cost_basis
        assert sell.realized_gain_loss == Decimal("49.666667")
        assert result.stats.total_gains == sell.realized_gain_loss

    def test_buys_mint_lots_and_sell_is_priced(self):
        result = replay(
            [
                raw("buy", "BTC", "1", "10000", "2023-01-01"),
                raw("buy", "BTC", "1", "30000", "2023-06-01"),
                raw("sell", "BTC", "1", "40000", "2023-12-01", fees="10"),
            ],
            [],
            LotMethod.HIFO,
        )

        buys = [tx for tx in result.priced_transactions if isinstance(tx, PricedBuy)]
        sells = [tx for tx in result.priced_transactions if isinstance(tx, PricedSell)]
        assert len(buys) == 2 and len(sells) == 1

        sell = sells[0]
        assert sell.cost_basis == Decimal("30000")
        assert sell.realized_gain_loss == Decimal("9990")
        assert sell.holding_period == HoldingPeriod.SHORT_TERM
        assert sell.disposals[0].lot_id == buys[1].lot_id
        assert sell.disposals[0].existing_lot is False

        assert result.stats.buys == 2
        assert result.stats.sells == 1
        assert result.stats.total_gains == Decimal("9990")
        assert result.stats.short_term == 1

    def test_input_is_replayed_chronologically(self):
        # The sell comes first in the input but last in time
        result = replay(
            [
                raw("sell", "ETH", "1", "300", "2024-03-01"),
                raw("buy", "ETH", "1", "100", "2024-01-01"),
            ],
            [],
            LotMethod.FIFO,
        )

        assert [tx.type for tx in result.priced_transactions] == ["buy", "sell"]
        assert result.priced_transactions[1].unmatched_quantity == 0
        assert result.warnings == []

    def test_pools_are_scoped_by_account(self):
        result = replay(
            [
                raw("buy", "BTC", "1", "100", "2024-01-01", account_id="a"),
                raw("sell", "BTC", "1", "200", "2024-02-01", account_id="b"),
            ],
            [],
            LotMethod.FIFO,
        )

        sell = result.priced_transactions[1]
        assert sell.disposals == []
        assert sell.needs_review is True
        assert result.stats.insufficient_lot_sales == 1

    def test_insufficient_lots_produce_warning_and_zero_basis_remainder(self):
        result = replay(
            [
                raw("buy", "BTC", "1", "100", "2024-01-01", row=1),
                raw("sell", "BTC", "3", "200", "2024-02-01", row=2),
            ],
            [],
            LotMethod.FIFO,
        )

        sell = result.priced_transactions[1]
        assert sell.unmatched_quantity == Decimal("2")
        assert sell.cost_basis == Decimal("100")
        assert sell.realized_gain_loss == Decimal("500")
        assert result.warnings[0].row_number == 2
        assert result.warnings[0].unmatched_quantity == Decimal("2")

    def test_existing_lots_enter_at_remaining_quantity(self):
        existing = ReplayLot(
            id="old-lot",
            ticker="BTC",
            account_id="acct",
            purchase_date=date(2022, 1, 1),
            original_quantity=Decimal("2"),
            remaining_quantity=Decimal("0.5"),
            unit_price=Decimal("100"),
        )
        result = replay(
            [raw("sell", "BTC", "1", "200", "2024-01-01")], [existing], LotMethod.FIFO
        )

        sell = result.priced_transactions[0]
        assert sell.disposals[0].lot_id == "old-lot"
        assert sell.disposals[0].existing_lot is True
        assert sell.disposals[0].quantity == Decimal("0.5")
        assert sell.unmatched_quantity == Decimal("0.5")
        assert sell.holding_period == HoldingPeriod.LONG_TERM

    def test_unparseable_rows_are_skipped_with_warning(self):
        result = replay(
            [
                raw("buy", "BTC", "abc", "100", "2024-01-01", row=1),
                raw("buy", "BTC", "1", "100", "2024-01-01", row=2),
            ],
            [],
            LotMethod.FIFO,
        )

        assert result.processed_count == 1
        assert result.warnings[0].row_number == 1

    def test_losses_are_accumulated_as_positive_amounts(self):
        result = replay(
            [
                raw("buy", "BTC", "1", "500", "2020-01-01"),
                raw("sell", "BTC", "1", "300", "2024-01-01"),
            ],
            [],
            LotMethod.FIFO,
        )

        assert result.stats.total_losses == Decimal("200")
        assert result.stats.total_gains == Decimal("0")
        assert result.stats.long_term == 1

    def test_cancellation_returns_consistent_prefix(self):
        calls = {"n": 0}

        def cancel_after_two():
            calls["n"] += 1
            return calls["n"] > 2

        result = replay(
            [
                raw("buy", "BTC", "1", "100", "2024-01-01"),
                raw("buy", "BTC", "1", "200", "2024-01-02"),
                raw("sell", "BTC", "1", "300", "2024-01-03"),
            ],
            [],
            LotMethod.FIFO,
            should_cancel=cancel_after_two,
        )

        assert result.cancelled is True
        assert result.processed_count == 2
        assert len(result.priced_transactions) == 2
        assert all(lot.remaining_quantity == lot.original_quantity for lot in result.lots)

    def test_conservation_across_replay(self):
        result = replay(
            [
                raw("buy", "BTC", "2", "100", "2024-01-01"),
                raw("buy", "BTC", "3", "150", "2024-02-01"),
                raw("sell", "BTC", "1.5", "200", "2024-03-01"),
                raw("sell", "BTC", "2", "220", "2024-04-01"),
            ],
            [],
            LotMethod.AVG,
        )

        consumed: dict[str, Decimal] = {}
        for tx in result.priced_transactions:
            if isinstance(tx, PricedSell):
                for d in tx.disposals:
                    consumed[d.lot_id] = consumed.get(d.lot_id, Decimal("0")) + d.quantity

        for lot in result.lots:
            assert lot.original_quantity - lot.remaining_quantity == consumed.get(lot.id, 0)
