"""
services/membership_service.py — Membership guard.

Invariants enforced at membership-changing operations:
  - at most one membership row per (group, user)         → DuplicateMember
  - a member may remove themselves; only an admin may
    remove another member                                → Unauthorized (403)
  - nobody leaves with an outstanding balance            → OutstandingBalance
  - a group with members keeps at least one admin        → LAST_ADMIN (409)

The guard never touches the database. ledger_service loads the rows and the
live balance, then asks the guard. This keeps every check unit-testable with
plain objects.
"""

from __future__ import annotations

from decimal import Decimal

from backend.groupledger.errors import (
    AppError,
    DuplicateMember,
    ErrorCode,
    NotFound,
    OutstandingBalance,
    Unauthorized,
)
from backend.groupledger.services.balance_service import is_zero


def ensure_not_member(group_id: int, user_id: str, existing) -> None:
    """Raises DuplicateMember if a membership row for (group, user) exists."""
    if existing is not None:
        raise DuplicateMember(group_id, user_id)


def ensure_can_add(group, caller) -> None:
    """
    Only admins add members, unless the group allows member invites.

    `caller` is the caller's membership row (None when not a member).
    """
    if caller is None:
        raise Unauthorized(f"You are not a member of group {group.id}.")
    if not caller.is_admin and not group.allow_member_invites:
        raise Unauthorized("Only a group admin may add members.")


def ensure_can_remove(group_id: int, caller, target) -> None:
    """
    Self-removal is always allowed. Removing someone else requires admin.

    Args:
        caller: the caller's membership row (None when not a member).
        target: the target's membership row (None when not a member).
    """
    if caller is None:
        raise Unauthorized(f"You are not a member of group {group_id}.")

    if target is None:
        raise NotFound(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User is not a member of group {group_id}.",
        )

    if caller.user_id != target.user_id and not caller.is_admin:
        raise Unauthorized("Only a group admin may remove another member.")


def ensure_settled_up(user_id: str, balance: Decimal) -> None:
    """
    Blocks a removal while the member still owes or is owed money.

    Uses the same 0.01 tolerance as every other money comparison:
    a balance of 0.009 passes, 0.02 does not.
    """
    if not is_zero(balance):
        raise OutstandingBalance(user_id, balance)


def ensure_admin_remains(group_id: int, target, members) -> None:
    """
    The last admin may not leave while other members stay behind.

    `members` is the group's full membership list, target included.
    """
    if not target.is_admin:
        return
    others = [m for m in members if m.user_id != target.user_id]
    if others and not any(m.is_admin for m in others):
        raise AppError(
            ErrorCode.LAST_ADMIN,
            f"User {target.user_id} is the last admin of group {group_id} "
            f"and cannot leave while other members remain.",
            409,
        )
