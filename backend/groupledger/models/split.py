"""
models/split.py — Split table definition.

No business logic. No imports from services or routes.

Status machine: pending → paid (one way). `paid_at` is set only on that
transition. No cancellation transition is exposed by the service layer.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.groupledger.extensions import db
from backend.groupledger.models.types import SplitStatus, value_enum


class Split(db.Model):
    __tablename__ = "splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        CheckConstraint("amount > 0", name="ck_splits_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE CASCADE: splits are owned by their expense.
    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[SplitStatus] = mapped_column(
        value_enum(SplitStatus, "split_status_enum"),
        nullable=False,
        default=SplitStatus.PENDING,
        server_default=SplitStatus.PENDING.value,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id!r} "
            f"amount={self.amount} "
            f"status={self.status.value}>"
        )
