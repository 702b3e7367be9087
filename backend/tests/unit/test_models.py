"""Tests for database models."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from models import Holding, HoldingLot, LotDisposal, SaleRecord


def _lot(account_id, **overrides):
    values = dict(
        account_id=account_id,
        ticker="AAPL",
        purchase_date=date(2024, 1, 1),
        original_quantity=Decimal("1"),
        remaining_quantity=Decimal("1"),
        unit_price=Decimal("100"),
        source="manual",
    )
    values.update(overrides)
    return HoldingLot(**values)


def _sale(account_id, **overrides):
    values = dict(
        account_id=account_id,
        ticker="AAPL",
        sale_date=date(2024, 6, 1),
        quantity=Decimal("2"),
        unit_price=Decimal("200"),
        holding_period="short_term",
        lot_method="FIFO",
        source="form",
    )
    values.update(overrides)
    return SaleRecord(**values)


def test_account_creation(account):
    """Test account model creation."""
    assert account.id is not None
    assert account.name == "Test Account"
    assert account.account_type == "taxable"
    assert account.is_active is True


def test_holding_creation(holding):
    assert holding.id is not None
    assert holding.quantity == Decimal("10")
    assert holding.last_reconciled_at is None


def test_holding_lot_creation(holding_lot):
    """Test lot model creation and derived cost basis."""
    assert holding_lot.id is not None
    assert holding_lot.ticker == "AAPL"
    assert holding_lot.cost_basis == Decimal("1500")
    assert holding_lot.remaining_cost_basis == Decimal("1500")
    assert holding_lot.is_closed is False


def test_holding_lot_remaining_cost_basis_includes_fees(db, account):
    lot = _lot(account.id, original_quantity=Decimal("4"), remaining_quantity=Decimal("1"), fees=Decimal("8"))
    db.add(lot)
    db.commit()

    assert lot.remaining_cost_basis == Decimal("102")


def test_holding_lot_back_populates(holding_lot, account):
    assert holding_lot in account.holding_lots


def test_holding_lot_check_constraint_zero_original_quantity(db, account):
    db.add(_lot(account.id, original_quantity=Decimal("0"), remaining_quantity=Decimal("0")))
    with pytest.raises(IntegrityError):
        db.commit()


def test_holding_lot_check_constraint_negative_remaining(db, account):
    db.add(_lot(account.id, remaining_quantity=Decimal("-1")))
    with pytest.raises(IntegrityError):
        db.commit()


def test_holding_lot_check_constraint_remaining_above_original(db, account):
    db.add(_lot(account.id, remaining_quantity=Decimal("2")))
    with pytest.raises(IntegrityError):
        db.commit()


def test_holding_lot_check_constraint_negative_price(db, account):
    db.add(_lot(account.id, unit_price=Decimal("-1")))
    with pytest.raises(IntegrityError):
        db.commit()


def test_holding_lot_allows_zero_remaining(db, account):
    lot = _lot(account.id, remaining_quantity=Decimal("0"))
    db.add(lot)
    db.commit()

    assert lot.is_closed is True


def test_holding_unique_per_account_and_ticker(db, account, holding):
    db.add(Holding(account_id=account.id, ticker="AAPL"))
    with pytest.raises(IntegrityError):
        db.commit()


def test_sale_disposals_relationship(db, account, holding_lot):
    sale = _sale(account.id)
    sale.disposals.append(
        LotDisposal(holding_lot=holding_lot, quantity=Decimal("2"), cost_basis=Decimal("300"))
    )
    db.add(sale)
    db.commit()

    assert holding_lot.disposals[0].sale is sale
    assert sale in account.sales


def test_sale_delete_cascades_disposals(db, account, holding_lot):
    sale = _sale(account.id)
    sale.disposals.append(LotDisposal(holding_lot=holding_lot, quantity=Decimal("2")))
    db.add(sale)
    db.commit()

    db.delete(sale)
    db.commit()

    assert db.query(LotDisposal).count() == 0
    assert db.get(HoldingLot, holding_lot.id) is not None


def test_lot_disposal_check_constraint_zero_quantity(db, account, holding_lot):
    sale = _sale(account.id)
    sale.disposals.append(LotDisposal(holding_lot=holding_lot, quantity=Decimal("0")))
    db.add(sale)
    with pytest.raises(IntegrityError):
        db.commit()
