"""Test fixtures and sample data."""
import threading

import pytest
from datetime import date
from decimal import Decimal

from models import Account, Holding, HoldingLot
from services.lot_ledger_service import LotLedgerService
from sqlalchemy.orm import Session


def create_account(db: Session, name: str = "Brokerage", **kwargs) -> Account:
    """Create and flush an account.

    This is a helper function (not a fixture) for tests that need several
    accounts.
    """
    acc = Account(name=name, institution_name=kwargs.pop("institution_name", "Test Brokerage"), **kwargs)
    db.add(acc)
    db.flush()
    return acc


def create_lot(
    db: Session,
    account_id: str | None,
    ticker: str,
    purchase_date: date,
    quantity: str | Decimal,
    unit_price: str | Decimal,
    fees: str | Decimal = "0",
    remaining: str | Decimal | None = None,
    source: str = "manual",
) -> HoldingLot:
    """Create and flush a lot directly, bypassing the service layer."""
    lot = HoldingLot(
        account_id=account_id,
        ticker=ticker,
        purchase_date=purchase_date,
        original_quantity=Decimal(quantity),
        remaining_quantity=Decimal(quantity if remaining is None else remaining),
        unit_price=Decimal(unit_price),
        fees=Decimal(fees),
        source=source,
    )
    db.add(lot)
    db.flush()
    return lot


def pool_lock_held_elsewhere(account_id: str | None) -> bool:
    """Whether another thread currently finds the account's pool lock taken."""
    held = []

    def attempt():
        lock = LotLedgerService._account_locks.get(account_id)
        if lock is None:
            held.append(False)
            return
        acquired = lock.acquire(blocking=False)
        if acquired:
            lock.release()
        held.append(not acquired)

    thread = threading.Thread(target=attempt)
    thread.start()
    thread.join()
    return held[0]


def watch_commits(monkeypatch, db: Session, *account_ids: str | None) -> list[bool]:
    """Patch ``db.commit`` to note whether every given pool lock was held.

    Returns the list that receives one entry per commit.
    """
    states = []
    commit = db.commit

    def watched_commit():
        states.append(all(pool_lock_held_elsewhere(a) for a in account_ids))
        commit()

    monkeypatch.setattr(db, "commit", watched_commit)
    return states


def build_csv(rows: list[tuple], header: str = "Type,Symbol,Quantity,Price,Date") -> str:
    """Render rows as CSV text with a header line."""
    lines = [header]
    for row in rows:
        lines.append(",".join(str(value) for value in row))
    return "\n".join(lines) + "\n"


@pytest.fixture
def account(db: Session) -> Account:
    """Create a test account."""
    acc = Account(
        name="Test Account",
        institution_name="Test Brokerage",
        is_active=True,
    )
    db.add(acc)
    db.commit()
    db.refresh(acc)
    return acc


@pytest.fixture
def second_account(db: Session) -> Account:
    """Create a second test account."""
    acc = Account(
        name="Second Account",
        institution_name="Other Exchange",
        account_type="roth_ira",
        is_active=True,
    )
    db.add(acc)
    db.commit()
    db.refresh(acc)
    return acc


@pytest.fixture
def holding_lot(db: Session, account: Account) -> HoldingLot:
    """Create a test lot: 10 AAPL @ 150 bought 2024-01-15."""
    lot = HoldingLot(
        account_id=account.id,
        ticker="AAPL",
        purchase_date=date(2024, 1, 15),
        original_quantity=Decimal("10"),
        remaining_quantity=Decimal("10"),
        unit_price=Decimal("150.00"),
        fees=Decimal("0"),
        source="manual",
    )
    db.add(lot)
    db.commit()
    db.refresh(lot)
    return lot


@pytest.fixture
def holding(db: Session, account: Account, holding_lot: HoldingLot) -> Holding:
    """Create a cached holding matching ``holding_lot``."""
    h = Holding(
        account_id=account.id,
        ticker="AAPL",
        quantity=Decimal("10"),
        cost_basis_total=Decimal("1500"),
    )
    db.add(h)
    db.commit()
    db.refresh(h)
    return h
