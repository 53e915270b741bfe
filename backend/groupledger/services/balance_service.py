"""
services/balance_service.py — Balance computation.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The canonical formula must not be reimplemented elsewhere in the codebase.
The membership guard, the settlement planner and the analytics view all
consume compute_balances().

Layer rules:
  - No Flask imports. No database access.
  - Receives already-loaded expenses and settlements (ORM rows or any
    objects with the same attributes) and returns plain dicts.
  - Fully unit-testable with SimpleNamespace stand-ins.

Precision:
  Intermediate sums keep full Decimal precision. Rounding to 2 dp happens
  only in round_balance(), at the point a balance is reported.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from backend.groupledger.models.types import SettlementStatus

# Absolute tolerance for every money comparison against zero. Matches the
# split-sum tolerance in split_service.
BALANCE_TOLERANCE = Decimal("0.01")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def compute_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[str] = (),
) -> dict[str, Decimal]:
    """
    Canonical balance computation for one group.

    Returns {user_id: net_balance}. Positive means the group owes the member,
    negative means the member owes the group.

    Algorithm:
      1. Credit each payer for the full expense amount they fronted.
      2. Debit each split user for their split amount.
      3. For each COMPLETED settlement credit `from` and debit `to`.
         Pending settlements are a plan, not an executed transfer, and are
         skipped. Cancelled settlements are skipped.
      4. Ensure every id in member_ids appears, even with a zero balance.

    Because every expense posts equal credit and debit, the values always
    sum to zero when the split-sum invariant holds.
    """
    balances: dict[str, Decimal] = defaultdict(Decimal)

    for expense in expenses:
        balances[expense.paid_by_user_id] += expense.amount
        for split in expense.splits:
            balances[split.user_id] -= split.amount

    for settlement in settlements:
        if settlement.status != SettlementStatus.COMPLETED:
            continue
        balances[settlement.from_user_id] += settlement.amount
        balances[settlement.to_user_id] -= settlement.amount

    for member_id in member_ids:
        balances.setdefault(member_id, ZERO)

    return dict(balances)


def balance_of(user_id: str, balances: dict[str, Decimal]) -> Decimal:
    """A user with no expenses and no settlements has balance 0."""
    return balances.get(user_id, ZERO)


def is_zero(value: Decimal) -> bool:
    """True when value is within BALANCE_TOLERANCE of zero (inclusive)."""
    return abs(value) <= BALANCE_TOLERANCE


def round_balance(value: Decimal) -> Decimal:
    """Quantises a balance to 2 dp for reporting."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def rounded_balances(balances: dict[str, Decimal]) -> dict[str, Decimal]:
    return {uid: round_balance(bal) for uid, bal in balances.items()}


def member_totals(expenses: Iterable) -> dict[str, dict[str, Decimal]]:
    """
    Per-member gross totals for the analytics view.

    Returns {user_id: {"paid": Decimal, "owed": Decimal}} where `paid` is what
    the member fronted and `owed` is the sum of their split shares.
    """
    totals: dict[str, dict[str, Decimal]] = defaultdict(
        lambda: {"paid": ZERO, "owed": ZERO}
    )
    for expense in expenses:
        totals[expense.paid_by_user_id]["paid"] += expense.amount
        for split in expense.splits:
            totals[split.user_id]["owed"] += split.amount
    return dict(totals)
