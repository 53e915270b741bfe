"""
tests/unit/test_ledger_balances.py — Unit tests for balance_service.

What this file proves:
  - payer credited with the full amount, every split user debited their share
  - only COMPLETED settlements move balances; pending and cancelled do not
  - members with no activity appear with 0.00
  - balances always sum to zero for valid input
  - tolerance comparison is inclusive at exactly 0.01

No database, no Flask. Expenses and settlements are SimpleNamespace objects
with the same attributes as the ORM rows.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from backend.groupledger.models.types import SettlementStatus
from backend.groupledger.services.balance_service import (
    balance_of,
    compute_balances,
    is_zero,
    member_totals,
    round_balance,
)

D = Decimal


def _expense(paid_by: str, amount: str, splits: dict[str, str]) -> SimpleNamespace:
    return SimpleNamespace(
        paid_by_user_id=paid_by,
        amount=D(amount),
        splits=[SimpleNamespace(user_id=uid, amount=D(amt)) for uid, amt in splits.items()],
    )


def _settlement(frm: str, to: str, amount: str, status=SettlementStatus.COMPLETED):
    return SimpleNamespace(from_user_id=frm, to_user_id=to, amount=D(amount), status=status)


class TestComputeBalances:

    def test_three_way_equal_split(self):
        expenses = [_expense("A", "30.00", {"A": "10.00", "B": "10.00", "C": "10.00"})]
        balances = compute_balances(expenses, [])
        assert balances == {"A": D("20.00"), "B": D("-10.00"), "C": D("-10.00")}

    def test_payer_not_in_splits_keeps_full_credit(self):
        expenses = [_expense("A", "50.00", {"B": "25.00", "C": "25.00"})]
        balances = compute_balances(expenses, [])
        assert balances["A"] == D("50.00")
        assert balances["B"] == D("-25.00")

    def test_completed_settlement_moves_balances(self):
        expenses = [_expense("A", "30.00", {"A": "10.00", "B": "10.00", "C": "10.00"})]
        settlements = [
            _settlement("B", "A", "10.00"),
            _settlement("C", "A", "10.00"),
        ]
        balances = compute_balances(expenses, settlements)
        assert all(bal == D("0.00") for bal in balances.values())

    def test_pending_and_cancelled_settlements_are_ignored(self):
        expenses = [_expense("A", "20.00", {"A": "10.00", "B": "10.00"})]
        settlements = [
            _settlement("B", "A", "10.00", SettlementStatus.PENDING),
            _settlement("B", "A", "10.00", SettlementStatus.CANCELLED),
        ]
        balances = compute_balances(expenses, settlements)
        assert balances == {"A": D("10.00"), "B": D("-10.00")}

    def test_idle_members_reported_with_zero(self):
        balances = compute_balances([], [], member_ids=["A", "B"])
        assert balances == {"A": D("0.00"), "B": D("0.00")}

    def test_balances_sum_to_zero(self):
        expenses = [
            _expense("A", "10.00", {"A": "3.34", "B": "3.33", "C": "3.33"}),
            _expense("B", "45.50", {"A": "20.00", "C": "25.50"}),
            _expense("C", "7.25", {"B": "7.25"}),
        ]
        settlements = [_settlement("C", "B", "5.00")]
        balances = compute_balances(expenses, settlements, ["A", "B", "C", "D"])
        assert sum(balances.values()) == D("0")

    def test_balance_of_unknown_user_is_zero(self):
        assert balance_of("nobody", {"A": D("1.00")}) == D("0.00")


class TestTolerance:

    def test_exactly_one_cent_counts_as_zero(self):
        assert is_zero(D("0.01"))
        assert is_zero(D("-0.01"))

    def test_sub_cent_counts_as_zero(self):
        assert is_zero(D("0.009"))

    def test_two_cents_is_not_zero(self):
        assert not is_zero(D("0.02"))
        assert not is_zero(D("-0.02"))

    def test_round_balance_half_up(self):
        assert round_balance(D("3.335")) == D("3.34")
        assert round_balance(D("-3.335")) == D("-3.34")


def test_member_totals_gross_paid_and_owed():
    expenses = [
        _expense("A", "30.00", {"A": "10.00", "B": "10.00", "C": "10.00"}),
        _expense("B", "12.00", {"A": "6.00", "B": "6.00"}),
    ]
    totals = member_totals(expenses)
    assert totals["A"] == {"paid": D("30.00"), "owed": D("16.00")}
    assert totals["B"] == {"paid": D("12.00"), "owed": D("16.00")}
    assert totals["C"] == {"paid": D("0.00"), "owed": D("10.00")}
