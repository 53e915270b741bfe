"""
services/settlement_service.py — Debt simplification (settlement planning).

Greedy two-pointer matching of the largest debtor against the largest
creditor. Not provably transfer-count-optimal in general, but produces at
most N-1 transfers for N non-zero members and runs in O(n log n).

Determinism: debtors and creditors are ordered by magnitude descending,
ties broken by user id ascending, so the same balances always produce the
same plan.

Integrity: balances come from double-entry postings, so they must net to
zero. If they do not (beyond the 0.01 tolerance) the source data is
corrupt; plan_settlements() raises ImbalancedLedger and logs a system alert
instead of emitting a wrong plan. The check runs on the full balance map,
before the tolerance filter picks who takes part in the plan.

Layer rules:
  - No Flask imports. No database access. Persistence of the plan is done
    by ledger_service through LedgerStore.insert_settlements_atomic().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from backend.groupledger.errors import ImbalancedLedger
from backend.groupledger.services.balance_service import BALANCE_TOLERANCE, CENT

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Transfer:
    """One planned payment from a debtor to a creditor."""
    from_user_id: str
    to_user_id: str
    amount: Decimal


@dataclass
class SettlementPlan:
    transfers: list[Transfer] = field(default_factory=list)

    @property
    def nothing_to_settle(self) -> bool:
        """True when balances already net to zero. Callers must surface this."""
        return not self.transfers

    @property
    def total(self) -> Decimal:
        return sum((t.amount for t in self.transfers), ZERO)

    def __iter__(self):
        return iter(self.transfers)

    def __len__(self) -> int:
        return len(self.transfers)


def _ordered(parties: list[tuple[str, Decimal]]) -> list[list]:
    """Largest magnitude first, ties by user id. Returns mutable [uid, remaining] pairs."""
    return [[uid, amt] for uid, amt in sorted(parties, key=lambda p: (-p[1], p[0]))]


def _partition(balances: dict[str, Decimal], threshold: Decimal) -> tuple[list[list], list[list]]:
    debtors = _ordered([(uid, -bal) for uid, bal in balances.items() if bal < -threshold])
    creditors = _ordered([(uid, bal) for uid, bal in balances.items() if bal > threshold])
    return debtors, creditors


def _side_total(parties: list[list]) -> Decimal:
    return sum((p[1] for p in parties), ZERO)


def plan_settlements(
        balances: dict[str, Decimal],
        group_id: int | None = None,
) -> SettlementPlan:
    """
    Converts a balance map into an ordered list of transfers.

    Args:
        balances: {user_id: signed balance} from compute_balances().
        group_id: Only used to give the integrity alert some context.

    Returns:
        SettlementPlan. An empty plan means there is nothing to settle.

    Raises:
        ImbalancedLedger: the balances do not net to zero within 0.01.
    """
    net = sum(balances.values(), ZERO)
    if abs(net) > BALANCE_TOLERANCE:
        debit_total = -sum((b for b in balances.values() if b < 0), ZERO)
        credit_total = sum((b for b in balances.values() if b > 0), ZERO)
        logger.critical(
            "ALERT ledger imbalance in group %s: debts=%s credits=%s",
            group_id, debit_total, credit_total,
        )
        raise ImbalancedLedger(debit_total, credit_total)

    debtors, creditors = _partition(balances, BALANCE_TOLERANCE)

    # Within-tolerance balances on one side can leave the other side uncovered
    # (+0.02 against two -0.01). Then every non-zero balance takes part.
    if abs(_side_total(debtors) - _side_total(creditors)) > BALANCE_TOLERANCE:
        debtors, creditors = _partition(balances, ZERO)

    plan = SettlementPlan()
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor, creditor = debtors[i], creditors[j]

        amount = min(debtor[1], creditor[1])
        transfer_amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        if transfer_amount > ZERO:
            plan.transfers.append(Transfer(debtor[0], creditor[0], transfer_amount))

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] < BALANCE_TOLERANCE:
            i += 1
        if creditor[1] < BALANCE_TOLERANCE:
            j += 1

    return plan
