import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from config import Settings
from main import create_app


def add_transaction(client, **overrides):
    payload = {
        "amount": 50,
        "description": "Groceries",
        "date": "2026-10-03",
        "type": "expense",
        "category": "Food",
    }
    payload.update(overrides)
    response = client.post("/api/transactions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_root(client):
    assert client.get("/").status_code == 200


def test_database_check(client):
    data = client.get("/test").json()
    assert data["connection_status"] == "Connected"
    assert data["database_name"] == "finance_test"


class TestTransactions:
    def test_create(self, client):
        created = add_transaction(client, description="  Lunch  ")
        assert created["id"]
        assert created["amount"] == 50
        assert created["description"] == "Lunch"
        assert created["date"] == "2026-10-03"
        assert created["type"] == "expense"
        assert created["category"] == "Food"
        assert "createdAt" in created

    def test_list_sorted_by_date_desc(self, client):
        add_transaction(client, date="2026-09-01", description="old")
        add_transaction(client, date="2026-10-10", description="new")
        add_transaction(client, date="2026-10-02", description="mid")
        data = client.get("/api/transactions").json()
        assert [t["description"] for t in data] == ["new", "mid", "old"]

    def test_list_filters(self, client):
        add_transaction(client, date="2026-09-01")
        add_transaction(client, date="2026-10-10")
        add_transaction(client, date="2026-10-11", type="income", category="Salary")
        assert len(client.get("/api/transactions", params={"month": "2026-10"}).json()) == 2
        assert len(client.get("/api/transactions", params={"type": "expense"}).json()) == 2
        incomes = client.get("/api/transactions", params={"month": "2026-10", "type": "income"}).json()
        assert [t["category"] for t in incomes] == ["Salary"]

    def test_rejects_invalid_body(self, client):
        response = client.post(
            "/api/transactions",
            json={"amount": -5, "description": "x" * 101, "date": "2026-10-03", "type": "refund", "category": "Food"},
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "Invalid request"
        assert {e["loc"][-1] for e in body["details"]} == {"amount", "description", "type"}

    def test_update(self, client):
        created = add_transaction(client)
        response = client.put(f"/api/transactions/{created['id']}", json={"amount": 75.5, "category": "Dining"})
        assert response.status_code == 200
        updated = response.json()
        assert updated["amount"] == 75.5
        assert updated["category"] == "Dining"
        assert updated["description"] == "Groceries"
        assert updated["createdAt"] == created["createdAt"]

    def test_update_missing(self, client):
        response = client.put("/api/transactions/64b7f0c2a1b2c3d4e5f60718", json={"amount": 1})
        assert response.status_code == 404
        assert response.json() == {"error": "Transaction not found"}

    def test_delete(self, client):
        created = add_transaction(client)
        response = client.delete(f"/api/transactions/{created['id']}")
        assert response.status_code == 200
        assert "message" in response.json()
        assert client.get("/api/transactions").json() == []

    def test_delete_missing_is_not_found(self, client):
        assert client.delete("/api/transactions/64b7f0c2a1b2c3d4e5f60718").status_code == 404
        assert client.delete("/api/transactions/not-an-id").status_code == 404

    def test_store_failure_returns_500(self, client, db, monkeypatch):
        def broken(*args, **kwargs):
            raise PyMongoError("connection reset")

        monkeypatch.setattr(db, "list_transactions", broken)
        response = client.get("/api/transactions")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch transactions"}


class TestBudgets:
    def test_upsert_by_category(self, client):
        first = client.post("/api/budgets", json={"category": "Food", "monthlyLimit": 100})
        assert first.status_code == 201
        second = client.post("/api/budgets", json={"category": "Food", "monthlyLimit": 250})
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        client.post("/api/budgets", json={"category": "Food", "monthlyLimit": 300})

        budgets = client.get("/api/budgets").json()
        assert len(budgets) == 1
        assert budgets[0]["monthlyLimit"] == 300

    def test_update_limit(self, client):
        created = client.post("/api/budgets", json={"category": "Rent", "monthlyLimit": 900}).json()
        response = client.put(f"/api/budgets/{created['id']}", json={"monthlyLimit": 950})
        assert response.status_code == 200
        assert response.json()["monthlyLimit"] == 950
        assert response.json()["category"] == "Rent"

    def test_update_missing(self, client):
        response = client.put("/api/budgets/64b7f0c2a1b2c3d4e5f60718", json={"monthlyLimit": 10})
        assert response.status_code == 404
        assert response.json() == {"error": "Budget not found"}

    def test_rejects_negative_limit(self, client):
        response = client.post("/api/budgets", json={"category": "Food", "monthlyLimit": -1})
        assert response.status_code == 422

    def test_delete(self, client):
        created = client.post("/api/budgets", json={"category": "Fun", "monthlyLimit": 40}).json()
        assert client.delete(f"/api/budgets/{created['id']}").status_code == 200
        assert client.delete(f"/api/budgets/{created['id']}").status_code == 404
        assert client.get("/api/budgets").json() == []


class TestAnalytics:
    def test_budget_comparison_end_to_end(self, client):
        add_transaction(client, amount=50, category="Food", date="2026-10-03")
        client.post("/api/budgets", json={"category": "Food", "monthlyLimit": 100})

        data = client.get("/api/analytics/budgets").json()
        assert data == [
            {"category": "Food", "budgeted": 100.0, "actual": 50.0, "percentage": 50.0, "status": "under"}
        ]

    def test_categories(self, client):
        add_transaction(client, amount=30, category="Food")
        add_transaction(client, amount=70, category="Rent")
        add_transaction(client, amount=900, category="Salary", type="income")
        data = client.get("/api/analytics/categories").json()
        assert [(c["category"], c["percentage"]) for c in data] == [("Rent", 70.0), ("Food", 30.0)]

    def test_monthly(self, client):
        add_transaction(client, amount=20, date="2026-08-14")
        data = client.get("/api/analytics/monthly").json()
        assert len(data) == 6
        assert data[-1]["key"] == "2026-10"
        assert {"month": "Aug 2026", "key": "2026-08", "amount": 20.0, "count": 1} in data

    def test_insights(self, client):
        add_transaction(client, amount=150, category="Food", date="2026-10-03")
        client.post("/api/budgets", json={"category": "Food", "monthlyLimit": 100})
        data = client.get("/api/analytics/insights").json()
        assert data["currentMonthExpenses"] == 150
        assert data["lastMonthExpenses"] == 0
        assert data["spendingChange"] == 0
        assert data["highestCategory"] == {"category": "Food", "amount": 150.0}
        assert data["overBudgetCategories"] == ["Food"]
        assert data["budgetUsage"] == 150
        assert data["projectedMonthlySpending"] == 310

    def test_summary(self, client):
        add_transaction(client, amount=2000, category="Salary", type="income")
        add_transaction(client, amount=120, category="Food")
        data = client.get("/api/summary").json()
        assert data["totalIncome"] == 2000
        assert data["totalExpenses"] == 120
        assert data["netBalance"] == 1880
        assert data["topCategory"]["category"] == "Food"
        assert len(data["recentTransactions"]) == 2

    def test_empty_store(self, client):
        assert client.get("/api/analytics/categories").json() == []
        assert client.get("/api/analytics/budgets").json() == []
        insights = client.get("/api/analytics/insights").json()
        assert insights["budgetUsage"] == 0
        assert insights["highestCategory"] is None


class TestTransactionSearchAndSort:
    def test_search_matches_description_or_category(self, client):
        add_transaction(client, description="Weekly GROCERIES", category="Food")
        add_transaction(client, description="Bus pass", category="Transport")
        add_transaction(client, description="Cinema", category="Entertainment")

        found = client.get("/api/transactions", params={"search": "groceries"}).json()
        assert [t["description"] for t in found] == ["Weekly GROCERIES"]
        found = client.get("/api/transactions", params={"search": "TRANS"}).json()
        assert [t["category"] for t in found] == ["Transport"]

    def test_search_is_literal(self, client):
        add_transaction(client, description="Books (used)")
        add_transaction(client, description="Books new")
        found = client.get("/api/transactions", params={"search": "(used"}).json()
        assert [t["description"] for t in found] == ["Books (used)"]
        assert client.get("/api/transactions", params={"search": ".*"}).json() == []

    def test_sort_by_amount(self, client):
        add_transaction(client, amount=20, date="2026-10-10", description="mid")
        add_transaction(client, amount=5, date="2026-10-12", description="small")
        add_transaction(client, amount=300, date="2026-09-01", description="big")
        data = client.get("/api/transactions", params={"sort": "amount"}).json()
        assert [t["description"] for t in data] == ["big", "mid", "small"]

    def test_rejects_unknown_sort(self, client):
        response = client.get("/api/transactions", params={"sort": "category"})
        assert response.status_code == 422


class TestOverviews:
    def test_monthly_overview(self, client):
        add_transaction(client, amount=40, date="2026-10-03")
        add_transaction(client, amount=20, date="2026-08-14")
        add_transaction(client, amount=1000, date="2026-10-01", type="income", category="Salary")
        data = client.get("/api/analytics/monthly/overview").json()
        assert len(data["months"]) == 6
        assert data["total"] == 60
        assert data["average"] == 10
        assert data["transactionCount"] == 2

    def test_budget_overview(self, client):
        add_transaction(client, amount=120, category="Food")
        add_transaction(client, amount=85, category="Rent")
        for category in ("Food", "Rent", "Fun"):
            client.post("/api/budgets", json={"category": category, "monthlyLimit": 100})
        data = client.get("/api/analytics/budgets/overview").json()
        assert [c["category"] for c in data["comparisons"]] == ["Food", "Rent", "Fun"]
        assert data["overBudgetCount"] == 1
        assert data["onTrackCount"] == 1
        assert data["underCount"] == 1


def test_unexpected_error_returns_json(app, db, caplog):
    db.db["transactions"].insert_one(
        {"amount": 5, "description": "Bad", "date": "10/03/2026", "type": "expense", "category": "Food"}
    )
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/summary")
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "Unhandled error on GET /api/summary" in caplog.text


def test_shutdown_closes_database_after_interrupted_run():
    database = MagicMock()
    app = create_app(database=database, settings=Settings())

    async def run():
        async with app.router.lifespan_context(app):
            raise RuntimeError("interrupted")

    with pytest.raises(RuntimeError):
        asyncio.run(run())
    database.connect.assert_called_once()
    database.close.assert_called_once()
