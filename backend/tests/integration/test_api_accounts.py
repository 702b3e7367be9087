"""Integration tests for accounts API."""


def test_list_accounts_empty(client):
    response = client.get("/api/accounts")
    assert response.status_code == 200
    assert response.json() == []


def test_list_accounts_sorted(client, account, second_account):
    response = client.get("/api/accounts")

    assert [a["name"] for a in response.json()] == ["Second Account", "Test Account"]


def test_create_account(client):
    response = client.post(
        "/api/accounts",
        json={"name": "Cold Wallet", "account_type": "wallet"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Cold Wallet"
    assert data["account_type"] == "wallet"
    assert data["is_active"] is True

    fetched = client.get(f"/api/accounts/{data['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Cold Wallet"


def test_create_account_defaults_to_taxable(client):
    response = client.post("/api/accounts", json={"name": "Brokerage"})
    assert response.json()["account_type"] == "taxable"


def test_create_account_rejects_unknown_type(client):
    response = client.post("/api/accounts", json={"name": "X", "account_type": "checking"})
    assert response.status_code == 422


def test_create_account_requires_name(client):
    response = client.post("/api/accounts", json={"name": ""})
    assert response.status_code == 422


def test_get_account_not_found(client):
    response = client.get("/api/accounts/nonexistent-id")
    assert response.status_code == 404
    assert response.json()["detail"] == "Account not found"
