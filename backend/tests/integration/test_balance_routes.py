"""
tests/integration/test_balance_routes.py — Balances and analytics read models.

Covers:
  - balances include every member, sum to zero, and carry suggested transfers
    that are NOT persisted
  - corrupt ledger data surfaces as IMBALANCED_LEDGER (500), never a plan
  - analytics totals per member and per category
"""

from __future__ import annotations

from decimal import Decimal

from backend.groupledger.extensions import db
from backend.groupledger.models.expense import Expense
from backend.groupledger.models.split import Split
from backend.groupledger.models.types import SplitStatus
from backend.tests.integration.conftest import headers, make_expense, make_group


class TestBalances:

    def test_balances_response(self, client):
        group = make_group(client, members=("bob", "carol", "dave"))
        make_expense(client, "alice", group["id"], "30.00", splits=[
            {"user_id": "alice", "amount": "10.00"},
            {"user_id": "bob", "amount": "10.00"},
            {"user_id": "carol", "amount": "10.00"},
        ])

        resp = client.get(f"/api/v1/groups/{group['id']}/balances", headers=headers("dave"))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["currency"] == "USD"
        assert data["balances"] == [
            {"user_id": "alice", "balance": "20.00"},
            {"user_id": "bob", "balance": "-10.00"},
            {"user_id": "carol", "balance": "-10.00"},
            {"user_id": "dave", "balance": "0.00"},
        ]
        assert data["balance_sum"] == "0.00"
        assert data["suggested_settlements"] == [
            {"from_user_id": "bob", "to_user_id": "alice", "amount": "10.00"},
            {"from_user_id": "carol", "to_user_id": "alice", "amount": "10.00"},
        ]

        listed = client.get(
            f"/api/v1/groups/{group['id']}/settlements", headers=headers("dave"),
        ).get_json()["data"]
        assert listed == []

    def test_balances_sum_to_zero_across_many_expenses(self, client):
        group = make_group(client, members=("bob", "carol"))
        make_expense(client, "alice", group["id"], "10.00")
        make_expense(client, "bob", group["id"], "47.11")
        make_expense(client, "carol", group["id"], "0.05")

        data = client.get(
            f"/api/v1/groups/{group['id']}/balances", headers=headers("alice"),
        ).get_json()["data"]
        assert sum(Decimal(row["balance"]) for row in data["balances"]) == Decimal("0")
        assert data["balance_sum"] == "0.00"

    def test_corrupt_ledger_reports_imbalance(self, app, client):
        group = make_group(client, members=("bob",))

        # Bypass the validator: an expense whose splits cover only part of it.
        with app.app_context():
            expense = Expense(
                group_id=group["id"],
                paid_by_user_id="alice",
                amount=Decimal("30.00"),
                currency="USD",
                description="Broken",
            )
            expense.splits = [Split(user_id="bob", amount=Decimal("10.00"), status=SplitStatus.PENDING)]
            db.session.add(expense)
            db.session.commit()

        resp = client.get(f"/api/v1/groups/{group['id']}/balances", headers=headers("alice"))
        assert resp.status_code == 500
        error = resp.get_json()["error"]
        assert error["code"] == "IMBALANCED_LEDGER"
        assert error["details"] == {"debit_total": "10.00", "credit_total": "30.00"}

        settle_resp = client.post(f"/api/v1/groups/{group['id']}/settle", headers=headers("alice"))
        assert settle_resp.status_code == 500
        assert client.get(
            f"/api/v1/groups/{group['id']}/settlements", headers=headers("alice"),
        ).get_json()["data"] == []


class TestAnalytics:

    def test_analytics_summary(self, client):
        group = make_group(client, members=("bob",))
        make_expense(client, "alice", group["id"], "20.00", category="food")
        make_expense(client, "bob", group["id"], "8.00", category="Transport")
        make_expense(client, "bob", group["id"], "4.00", category="food")

        resp = client.get(f"/api/v1/groups/{group['id']}/analytics", headers=headers("alice"))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["expense_count"] == 3
        assert data["total_expenses"] == "32.00"
        assert data["total_settlements"] == "0.00"
        assert data["category_totals"] == {"food": "24.00", "transport": "8.00"}
        assert data["member_balances"] == {"alice": "4.00", "bob": "-4.00"}
        assert data["member_totals"] == {
            "alice": {"paid": "20.00", "owed": "16.00"},
            "bob": {"paid": "12.00", "owed": "16.00"},
        }

    def test_pending_settlements_total(self, client):
        group = make_group(client, members=("bob",))
        make_expense(client, "alice", group["id"], "20.00")
        client.post(f"/api/v1/groups/{group['id']}/settle", headers=headers("alice"))

        data = client.get(
            f"/api/v1/groups/{group['id']}/analytics", headers=headers("bob"),
        ).get_json()["data"]
        assert data["pending_settlements"] == "10.00"
        assert data["total_settlements"] == "0.00"

    def test_non_member(self, client):
        group = make_group(client)
        resp = client.get(f"/api/v1/groups/{group['id']}/analytics", headers=headers("mallory"))
        assert resp.status_code == 403
