"""
services/split_service.py — Split validation and equal-split computation.

Rules applied by validate_splits(), in order:
  (a) every split user must be a current group member (INVALID_SPLIT_MEMBER,
      all offending ids reported at once); the same user may not appear twice
      (DUPLICATE_SPLIT_USER)
  (b) abs(sum(splits) - amount) <= 0.01, inclusive (SPLIT_SUM_MISMATCH)
  (c) no splits supplied → equal split across all current members

Whatever path is taken, the returned shares sum EXACTLY to the expense
amount. A within-tolerance residual in supplied splits is folded into the
largest share; the rounding residual of an equal split goes to the first
share in sorted member-id order.

Layer rules:
  - No Flask imports. No database access.
  - Raises typed AppError subclasses; returns plain SplitShare tuples.
"""

from __future__ import annotations

from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple

from backend.groupledger.errors import (
    AppError,
    ErrorCode,
    InvalidSplitMember,
    SplitSumMismatch,
)
from backend.groupledger.models.types import SplitStatus
from backend.groupledger.services.balance_service import BALANCE_TOLERANCE, CENT

ZERO = Decimal("0.00")


class SplitShare(NamedTuple):
    user_id: str
    amount: Decimal


def _as_share(raw) -> SplitShare:
    if isinstance(raw, SplitShare):
        return raw
    return SplitShare(raw["user_id"], Decimal(raw["amount"]))


def compute_equal_splits(amount: Decimal, member_ids: Iterable[str]) -> list[SplitShare]:
    """
    Divides amount evenly among member_ids.

    Each share is amount / n rounded half-up to 2 dp. The residual
    (amount - n * share, possibly negative) is added to the first share in
    sorted member-id order, so 10.00 / 3 gives [3.34, 3.33, 3.33] and
    20.00 / 3 gives [6.66, 6.67, 6.67].

    Shares that end up at 0.00 are dropped (e.g. 0.01 across 3 members),
    because a split must be strictly positive.
    """
    ordered = sorted(set(member_ids))
    if not ordered:
        raise AppError(
            ErrorCode.EMPTY_GROUP,
            "Cannot split an expense across a group with no members.",
            422,
        )

    n = len(ordered)
    base = (amount / Decimal(n)).quantize(CENT, rounding=ROUND_HALF_UP)
    residual = amount - base * n

    amounts = [base] * n
    amounts[0] += residual

    shares = [SplitShare(uid, amt) for uid, amt in zip(ordered, amounts) if amt > ZERO]

    # Must always hold; a failure here is a programming error.
    if sum((s.amount for s in shares), ZERO) != amount:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Equal split computation produced the wrong total for amount {amount}.",
            500,
        )
    return shares


def _absorb_residual(shares: list[SplitShare], amount: Decimal) -> list[SplitShare]:
    """Folds amount - sum(shares) into the largest share (first on ties)."""
    residual = amount - sum((s.amount for s in shares), ZERO)
    if residual == ZERO:
        return shares

    idx = max(range(len(shares)), key=lambda i: (shares[i].amount, -i))
    adjusted = list(shares)
    adjusted[idx] = SplitShare(shares[idx].user_id, shares[idx].amount + residual)
    return [s for s in adjusted if s.amount > ZERO]


def validate_splits(
        expense_amount: Decimal,
        splits: Iterable | None,
        current_member_ids: Iterable[str],
) -> list[SplitShare]:
    """
    Validates the supplied splits for an expense, or builds an equal split.

    Args:
        expense_amount:     Positive Decimal with at most 2 dp.
        splits:             None/empty for an equal split, otherwise a list of
                            {"user_id", "amount"} dicts or SplitShare tuples.
        current_member_ids: User ids of the group's members right now.

    Returns:
        List of SplitShare whose amounts sum exactly to expense_amount.

    Raises:
        InvalidSplitMember, AppError(DUPLICATE_SPLIT_USER),
        AppError(INVALID_SPLIT_AMOUNT), SplitSumMismatch.
    """
    member_ids = set(current_member_ids)
    shares = [_as_share(s) for s in (splits or [])]

    if not shares:
        return compute_equal_splits(expense_amount, member_ids)

    # (a) membership
    outsiders = {s.user_id for s in shares if s.user_id not in member_ids}
    if outsiders:
        raise InvalidSplitMember(list(outsiders))

    duplicates = sorted(uid for uid, n in Counter(s.user_id for s in shares).items() if n > 1)
    if duplicates:
        raise AppError(
            ErrorCode.DUPLICATE_SPLIT_USER,
            f"The same user appears more than once in the splits: {', '.join(duplicates)}.",
            400,
            field="splits",
            details={"user_ids": duplicates},
        )

    non_positive = sorted(s.user_id for s in shares if s.amount <= ZERO)
    if non_positive:
        raise AppError(
            ErrorCode.INVALID_SPLIT_AMOUNT,
            "Every split amount must be greater than zero.",
            422,
            field="splits",
            details={"user_ids": non_positive},
        )

    # (b) sum within tolerance, inclusive at exactly 0.01
    total = sum((s.amount for s in shares), ZERO)
    if abs(total - expense_amount) > BALANCE_TOLERANCE:
        raise SplitSumMismatch(total, expense_amount)

    return _absorb_residual(shares, expense_amount)


# ── Split status machine ───────────────────────────────────────────────────
#
#   pending ──► paid        (one way; re-marking paid is a no-op)
#   cancelled               (terminal; no transition is exposed into it)
# ──────────────────────────────────────────────────────────────────────────

def should_mark_paid(split) -> bool:
    """
    Decides the pending → paid transition for a split.

    Returns True if the split must move to `paid`, False if it is already
    paid (idempotent no-op). Raises INVALID_SPLIT_STATE for a cancelled split.
    """
    if split.status == SplitStatus.PAID:
        return False
    if split.status == SplitStatus.CANCELLED:
        raise AppError(
            ErrorCode.INVALID_SPLIT_STATE,
            f"Split for user {split.user_id} is cancelled and cannot be paid.",
            409,
        )
    return True
