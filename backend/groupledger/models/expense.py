"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2): never Float.
  - Expenses are immutable once created. The only permitted mutation is a
    split status transition (see models/split.py).
  - sum(splits.amount) == amount is enforced by the split validator before
    the insert; the validator folds any within-tolerance residual into one
    split so the persisted rows always sum exactly.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.groupledger.extensions import db
from backend.groupledger.models.types import SplitStatus

DEFAULT_CATEGORY = "other"


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    paid_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Free-text label; aggregated per label by the analytics view.
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_CATEGORY,
        server_default=DEFAULT_CATEGORY,
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    expense_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        default=date.today,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    # Splits are owned by their expense and never exist independently.
    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Split.id",
    )

    @property
    def is_fully_paid(self) -> bool:
        return bool(self.splits) and all(
            s.status == SplitStatus.PAID for s in self.splits
        )

    def split_for(self, user_id: str) -> "Split | None":  # noqa: F821
        return next((s for s in self.splits if s.user_id == user_id), None)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount} {self.currency}>"
        )
