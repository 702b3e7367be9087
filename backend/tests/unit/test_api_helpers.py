"""Tests for shared API helpers."""

from datetime import date

import pytest
from fastapi import HTTPException

from api.helpers import get_account_lot_or_404, get_or_404, import_error_to_http
from models import Account, HoldingLot
from services.exceptions import (
    ColumnMappingError,
    CsvParseError,
    ImportStateError,
    PersistenceError,
)
from tests.fixtures import create_account, create_lot


class TestGetOr404:
    """Tests for get_or_404."""

    def test_returns_entity(self, db):
        """Returns the entity when it exists."""
        account = create_account(db, "Test Account")

        result = get_or_404(db, Account, account.id, "Account not found")
        assert result.id == account.id
        assert result.name == "Test Account"

    def test_raises_404_when_missing(self, db):
        """Raises HTTPException 404 when the entity doesn't exist."""
        with pytest.raises(HTTPException) as exc_info:
            get_or_404(db, Account, "nonexistent-id", "Account not found")
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Account not found"

    def test_works_with_different_models(self, db):
        account = create_account(db)
        lot = create_lot(db, account.id, "AAPL", date(2024, 1, 1), "1", "100")

        assert get_or_404(db, HoldingLot, lot.id).ticker == "AAPL"


class TestGetAccountLotOr404:
    def test_returns_lot_of_account(self, db):
        account = create_account(db)
        lot = create_lot(db, account.id, "AAPL", date(2024, 1, 1), "1", "100")

        assert get_account_lot_or_404(db, account.id, lot.id) is lot

    def test_lot_of_other_account_is_missing(self, db):
        account = create_account(db)
        other = create_account(db, "Other")
        lot = create_lot(db, account.id, "AAPL", date(2024, 1, 1), "1", "100")

        with pytest.raises(HTTPException) as exc_info:
            get_account_lot_or_404(db, other.id, lot.id)
        assert exc_info.value.status_code == 404


class TestImportErrorToHttp:
    @pytest.mark.parametrize(
        "error,status",
        [
            (CsvParseError("Empty file"), 400),
            (ColumnMappingError("Required fields not mapped: date", ["date"]), 400),
            (ImportStateError("Not allowed"), 409),
            (PersistenceError("Database unavailable"), 500),
        ],
    )
    def test_status_codes(self, error, status):
        exc = import_error_to_http(error)

        assert exc.status_code == status
        assert exc.detail == str(error)
