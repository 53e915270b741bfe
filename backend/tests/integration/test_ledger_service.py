"""
tests/integration/test_ledger_service.py — GroupLedgerService against a real session.

Calls the service directly (no HTTP) with a recording notification hook to
prove:
  - notifications fire after commit with the right payloads
  - a failing hook never fails the ledger operation
  - a failed operation leaves no partial rows behind
  - a failed settle keeps the earlier pending plan intact
"""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from backend.groupledger.errors import DuplicateMember, ImbalancedLedger, SplitSumMismatch
from backend.groupledger.extensions import db
from backend.groupledger.models.expense import Expense
from backend.groupledger.models.membership import Membership
from backend.groupledger.models.settlement import Settlement
from backend.groupledger.models.split import Split
from backend.groupledger.models.types import SettlementStatus, SplitStatus
from backend.groupledger.services.ledger_service import GroupLedgerService
from backend.groupledger.services.notification_service import NullNotificationHook
from backend.groupledger.store import LedgerStore


class RecordingHook(NullNotificationHook):

    def __init__(self):
        self.events = []

    def member_added(self, group_id, user_id, added_by):
        self.events.append(("member_added", user_id, added_by))

    def expense_added(self, group_id, expense_id, paid_by, amount, currency, recipients):
        self.events.append(("expense_added", paid_by, amount, currency, sorted(recipients)))

    def expense_fully_paid(self, group_id, expense_id, paid_by):
        self.events.append(("expense_fully_paid", expense_id, paid_by))

    def group_settled(self, group_id, settlement_ids, settled_by):
        self.events.append(("group_settled", len(settlement_ids), settled_by))


class BrokenHook(NullNotificationHook):

    def member_added(self, group_id, user_id, added_by):
        raise ConnectionError("push gateway unreachable")


def _service(hook=None) -> GroupLedgerService:
    return GroupLedgerService(LedgerStore(db.session), hook)


def _count(model) -> int:
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def group_id(app_ctx):
    group, _ = _service().create_group("alice", {"name": "Flat", "currency": "GBP"})
    return group.id


def test_event_sequence(group_id):
    hook = RecordingHook()
    service = _service(hook)

    service.add_member(group_id, "alice", "bob")
    expense = service.add_expense(group_id, "alice", {
        "amount": Decimal("12.00"),
        "description": "Groceries",
    })
    service.mark_split_paid(expense.id, "bob")
    _, warnings = service.mark_split_paid(expense.id, "bob")

    assert warnings[0]["code"] == "ALREADY_PAID"
    assert hook.events == [
        ("member_added", "bob", "alice"),
        ("expense_added", "alice", Decimal("12.00"), "GBP", ["bob"]),
        ("expense_fully_paid", expense.id, "alice"),
    ]


def test_group_settled_event(group_id, caplog):
    hook = RecordingHook()
    service = _service(hook)
    service.add_member(group_id, "alice", "bob")
    service.add_expense(group_id, "bob", {"amount": Decimal("9.00"), "description": "Taxi"})

    with caplog.at_level(logging.INFO, logger="backend.groupledger.services.ledger_service"):
        settlements, _ = service.settle_group(group_id, "alice")

    assert [(s.from_user_id, s.to_user_id, s.amount) for s in settlements] == [
        ("alice", "bob", Decimal("4.50")),
    ]
    assert hook.events[-1] == ("group_settled", 1, "alice")
    assert any("1 transfers totalling 4.50" in r.getMessage() for r in caplog.records)


def test_hook_failure_is_not_fatal(group_id):
    membership = _service(BrokenHook()).add_member(group_id, "alice", "bob")
    assert membership.user_id == "bob"
    assert _count(Membership) == 2


def test_duplicate_member_writes_nothing(group_id):
    service = _service()
    service.add_member(group_id, "alice", "bob")
    with pytest.raises(DuplicateMember):
        service.add_member(group_id, "alice", "bob")
    assert _count(Membership) == 2


def test_rejected_expense_leaves_no_rows(group_id):
    service = _service()
    service.add_member(group_id, "alice", "bob")
    with pytest.raises(SplitSumMismatch):
        service.add_expense(group_id, "alice", {
            "amount": Decimal("10.00"),
            "description": "Bad",
            "splits": [
                {"user_id": "alice", "amount": Decimal("5.00")},
                {"user_id": "bob", "amount": Decimal("5.05")},
            ],
        })
    assert _count(Expense) == 0
    assert _count(Split) == 0


def test_balances_read_model(group_id):
    service = _service()
    service.add_member(group_id, "alice", "bob")
    service.add_expense(group_id, "alice", {"amount": Decimal("10.00"), "description": "Lunch"})

    result = service.get_balances(group_id, "bob")
    assert result["balances"] == [
        {"user_id": "alice", "balance": Decimal("5.00")},
        {"user_id": "bob", "balance": Decimal("-5.00")},
    ]
    assert result["suggested_settlements"] == [
        {"from_user_id": "bob", "to_user_id": "alice", "amount": Decimal("5.00")},
    ]


class _FailingSettlementStore(LedgerStore):
    """Writes the plan rows, then fails before the transaction can commit."""

    def insert_settlements_atomic(self, settlements):
        super().insert_settlements_atomic(settlements)
        raise OperationalError("INSERT INTO settlements", {}, Exception("disk I/O error"))


def _settlement_rows(group_id: int) -> list[tuple]:
    rows = db.session.execute(
        select(Settlement).where(Settlement.group_id == group_id).order_by(Settlement.id)
    ).scalars().all()
    return [(s.from_user_id, s.to_user_id, s.amount, s.status) for s in rows]


def _pending_plan(group_id: int) -> list[tuple]:
    service = _service()
    service.add_member(group_id, "alice", "bob")
    service.add_expense(group_id, "alice", {"amount": Decimal("10.00"), "description": "Lunch"})
    service.settle_group(group_id, "alice")
    return _settlement_rows(group_id)


def test_failed_settlement_write_keeps_previous_plan(group_id):
    before = _pending_plan(group_id)
    assert before == [("bob", "alice", Decimal("5.00"), SettlementStatus.PENDING)]

    service = GroupLedgerService(_FailingSettlementStore(db.session), RecordingHook())
    with pytest.raises(OperationalError):
        service.settle_group(group_id, "bob")

    assert _settlement_rows(group_id) == before
    assert service.notifier.events == []


def test_imbalance_during_settle_keeps_previous_plan(group_id):
    before = _pending_plan(group_id)

    expense = Expense(
        group_id=group_id,
        paid_by_user_id="alice",
        amount=Decimal("30.00"),
        currency="GBP",
        description="Half recorded",
    )
    expense.splits = [Split(user_id="bob", amount=Decimal("10.00"), status=SplitStatus.PENDING)]
    db.session.add(expense)
    db.session.commit()

    with pytest.raises(ImbalancedLedger):
        _service().settle_group(group_id, "alice")

    assert _settlement_rows(group_id) == before
