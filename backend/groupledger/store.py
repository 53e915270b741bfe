"""
store.py — LedgerStore: the narrow persistence interface the core consumes.

Wraps a SQLAlchemy Session. Services never build queries themselves; every
read and write of ledger rows goes through this class, so a test double can
stand in for it and the query rules live in one place.

Transactions:
  transaction() brackets ONE public ledger operation. It commits when the
  block exits normally and rolls back on any exception, so an aborted
  operation leaves the ledger unchanged. Methods inside the block only
  flush(). No retries are attempted here; store errors propagate.

Concurrency:
  read_group(..., for_update=True) issues SELECT ... FOR UPDATE on the group
  row. Two concurrent settle calls on the same group therefore serialise on
  the database, which is the only concurrency mechanism the core relies on.
  (SQLite ignores FOR UPDATE; it serialises writers at the file level.)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from backend.groupledger.models.expense import Expense
from backend.groupledger.models.group import Group
from backend.groupledger.models.membership import Membership
from backend.groupledger.models.settlement import Settlement
from backend.groupledger.models.split import Split
from backend.groupledger.models.types import SettlementStatus, SplitStatus

logger = logging.getLogger(__name__)


class LedgerStore:

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Transaction scope ──────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ── Groups ─────────────────────────────────────────────────────────────

    def read_group(self, group_id: int, for_update: bool = False) -> Group | None:
        stmt = select(Group).where(Group.id == group_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def read_groups_for_user(self, user_id: str) -> list[Group]:
        stmt = (
            select(Group)
            .join(Membership, Group.id == Membership.group_id)
            .where(Membership.user_id == user_id)
            .order_by(Group.created_at.asc(), Group.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def insert_group(self, group: Group) -> Group:
        self.session.add(group)
        self.session.flush()  # populate group.id before memberships reference it
        return group

    def update_group(self, group: Group, changes: dict) -> Group:
        for key, value in changes.items():
            setattr(group, key, value)
        self.session.flush()
        return group

    # ── Members ────────────────────────────────────────────────────────────

    def read_members(self, group_id: int) -> list[Membership]:
        stmt = (
            select(Membership)
            .where(Membership.group_id == group_id)
            .order_by(Membership.joined_at.asc(), Membership.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def read_membership(self, group_id: int, user_id: str) -> Membership | None:
        stmt = select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def insert_member(self, membership: Membership) -> Membership:
        self.session.add(membership)
        self.session.flush()
        return membership

    def delete_member(self, membership: Membership) -> None:
        self.session.delete(membership)
        self.session.flush()

    # ── Expenses ───────────────────────────────────────────────────────────

    def read_expenses(self, group_id: int) -> list[Expense]:
        """All expenses of a group with their splits eagerly loaded."""
        stmt = (
            select(Expense)
            .options(selectinload(Expense.splits))
            .where(Expense.group_id == group_id)
            .order_by(Expense.expense_date.desc(), Expense.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def read_expense(self, expense_id: int, for_update: bool = False) -> Expense | None:
        stmt = (
            select(Expense)
            .options(selectinload(Expense.splits))
            .where(Expense.id == expense_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def insert_expense(self, expense: Expense, splits: list[Split]) -> Expense:
        """Writes the expense and all of its splits in the enclosing transaction."""
        expense.splits = splits
        self.session.add(expense)
        self.session.flush()
        return expense

    def update_split_status(
            self,
            split: Split,
            status: SplitStatus,
            at: datetime | None = None,
    ) -> Split:
        split.status = status
        if status == SplitStatus.PAID:
            split.paid_at = at or datetime.now(timezone.utc)
        self.session.flush()
        return split

    # ── Settlements ────────────────────────────────────────────────────────

    def read_settlements(
            self,
            group_id: int,
            status: SettlementStatus | None = None,
    ) -> list[Settlement]:
        stmt = select(Settlement).where(Settlement.group_id == group_id)
        if status is not None:
            stmt = stmt.where(Settlement.status == status)
        stmt = stmt.order_by(Settlement.created_at.desc(), Settlement.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    def read_settlement(self, settlement_id: int, for_update: bool = False) -> Settlement | None:
        stmt = select(Settlement).where(Settlement.id == settlement_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def insert_settlements_atomic(self, settlements: list[Settlement]) -> list[Settlement]:
        """
        Writes a whole settlement plan in one flush.

        Either every row lands or, when the flush fails, the enclosing
        transaction rolls back and none do. Partial plans never persist.
        """
        if not settlements:
            return []
        self.session.add_all(settlements)
        self.session.flush()
        logger.info(
            "Persisted %d settlements for group %s",
            len(settlements), settlements[0].group_id,
        )
        return settlements

    def update_settlement_status(
            self,
            settlement: Settlement,
            status: SettlementStatus,
    ) -> Settlement:
        settlement.status = status
        settlement.updated_at = datetime.now(timezone.utc)
        self.session.flush()
        return settlement
