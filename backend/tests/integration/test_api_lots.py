"""Integration tests for lot API endpoints."""

from datetime import date
from decimal import Decimal

from models import Holding, HoldingLot
from services.lot_ledger_service import LotLedgerService
from tests.fixtures import create_lot, watch_commits


class TestGetLots:
    def test_list_lots(self, client, account, holding_lot):
        response = client.get(f"/api/accounts/{account.id}/lots")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["ticker"] == "AAPL"
        assert float(data[0]["remaining_quantity"]) == 10.0
        assert float(data[0]["cost_basis"]) == 1500.0
        assert data[0]["is_closed"] is False

    def test_filter_by_ticker(self, client, db, account, holding_lot):
        create_lot(db, account.id, "MSFT", date(2024, 2, 1), "1", "400")
        db.commit()

        response = client.get(f"/api/accounts/{account.id}/lots", params={"ticker": "msft"})

        assert [lot["ticker"] for lot in response.json()] == ["MSFT"]

    def test_closed_lots_hidden_by_default(self, client, db, account, holding_lot):
        holding_lot.remaining_quantity = Decimal("0")
        db.commit()

        assert client.get(f"/api/accounts/{account.id}/lots").json() == []
        response = client.get(f"/api/accounts/{account.id}/lots", params={"include_closed": True})
        assert len(response.json()) == 1
        assert response.json()[0]["is_closed"] is True

    def test_unknown_account(self, client):
        response = client.get("/api/accounts/missing/lots")
        assert response.status_code == 404


class TestLotSummary:
    def test_summary_with_holding(self, client, db, account, holding):
        holding.quantity = Decimal("12")
        db.commit()

        response = client.get(f"/api/accounts/{account.id}/lots/summary")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["ticker"] == "AAPL"
        assert float(data[0]["lotted_quantity"]) == 10.0
        assert float(data[0]["holding_quantity"]) == 12.0
        assert float(data[0]["unallocated_quantity"]) == 2.0
        assert data[0]["open_lot_count"] == 1
        assert float(data[0]["remaining_cost_basis"]) == 1500.0

    def test_summary_without_holding(self, client, account, holding_lot):
        data = client.get(f"/api/accounts/{account.id}/lots/summary").json()

        assert data[0]["holding_quantity"] is None
        assert data[0]["unallocated_quantity"] is None


class TestCreateLot:
    def test_create_lot_reconciles_holding(self, client, db, account):
        response = client.post(
            f"/api/accounts/{account.id}/lots",
            json={
                "ticker": " eth ",
                "purchase_date": "2024-03-01",
                "quantity": "2.5",
                "unit_price": "3000",
                "fees": "12.50",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ticker"] == "ETH"
        assert data["source"] == "manual"
        assert float(data["cost_basis"]) == 7512.5

        holding = db.query(Holding).filter_by(account_id=account.id, ticker="ETH").one()
        assert holding.quantity == Decimal("2.5")
        assert holding.cost_basis_total == Decimal("7512.5")

    def test_create_lot_rejects_non_positive_quantity(self, client, account):
        response = client.post(
            f"/api/accounts/{account.id}/lots",
            json={"ticker": "ETH", "purchase_date": "2024-03-01", "quantity": "0", "unit_price": "1"},
        )
        assert response.status_code == 422

    def test_create_lot_unknown_account(self, client):
        response = client.post(
            "/api/accounts/missing/lots",
            json={"ticker": "ETH", "purchase_date": "2024-03-01", "quantity": "1", "unit_price": "1"},
        )
        assert response.status_code == 404


class TestUpdateLot:
    def test_update_quantity_reconciles_holding(self, client, db, account, holding, holding_lot):
        response = client.put(
            f"/api/accounts/{account.id}/lots/{holding_lot.id}",
            json={"quantity": "15"},
        )

        assert response.status_code == 200
        assert float(response.json()["remaining_quantity"]) == 15.0
        db.refresh(holding)
        assert holding.quantity == Decimal("15")
        assert holding.cost_basis_total == Decimal("2250")

    def test_update_below_disposed_is_rejected(self, client, db, account, holding_lot):
        LotLedgerService.record_sale(
            db,
            account_id=account.id,
            ticker="AAPL",
            sale_date=date(2024, 6, 1),
            quantity=Decimal("6"),
            unit_price=Decimal("200"),
            fees=Decimal("0"),
            holding_period="short_term",
            lot_method="FIFO",
            disposals=[(holding_lot.id, Decimal("6"), Decimal("900"))],
        )
        db.commit()

        response = client.put(
            f"/api/accounts/{account.id}/lots/{holding_lot.id}",
            json={"quantity": "5"},
        )

        assert response.status_code == 400
        assert "already-disposed" in response.json()["detail"]

    def test_lot_of_other_account_is_not_found(self, client, second_account, holding_lot):
        response = client.put(
            f"/api/accounts/{second_account.id}/lots/{holding_lot.id}",
            json={"notes": "moved"},
        )
        assert response.status_code == 404


class TestDeleteLot:
    def test_delete_lot_zeroes_holding(self, client, db, account, holding, holding_lot):
        response = client.delete(f"/api/accounts/{account.id}/lots/{holding_lot.id}")

        assert response.status_code == 204
        assert db.query(HoldingLot).count() == 0
        db.refresh(holding)
        assert holding.quantity == Decimal("0")

    def test_delete_missing_lot(self, client, account):
        response = client.delete(f"/api/accounts/{account.id}/lots/missing")
        assert response.status_code == 404


class TestPoolLockSpansCommit:
    def test_create_commits_under_pool_lock(self, client, db, account, monkeypatch):
        states = watch_commits(monkeypatch, db, account.id)

        response = client.post(
            f"/api/accounts/{account.id}/lots",
            json={"ticker": "ETH", "purchase_date": "2024-03-01", "quantity": "1", "unit_price": "3000"},
        )

        assert response.status_code == 201
        assert states == [True]

    def test_delete_commits_under_pool_lock(self, client, db, account, holding_lot, monkeypatch):
        states = watch_commits(monkeypatch, db, account.id)

        response = client.delete(f"/api/accounts/{account.id}/lots/{holding_lot.id}")

        assert response.status_code == 204
        assert states == [True]
