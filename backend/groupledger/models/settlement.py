"""
models/settlement.py — Settlement table definition.

No business logic. No imports from services or routes.

Key design points:
  - Rows are produced only by the settlement planner, never user-authored.
  - `pending` rows are a plan; only `completed` rows move balances.
  - CHECK(from_user_id <> to_user_id): a transfer to yourself is meaningless.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.groupledger.extensions import db
from backend.groupledger.models.types import SettlementStatus, value_enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Debtor.
    from_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Creditor.
    to_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[SettlementStatus] = mapped_column(
        value_enum(SettlementStatus, "settlement_status_enum"),
        nullable=False,
        default=SettlementStatus.PENDING,
        server_default=SettlementStatus.PENDING.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.from_user_id!r} "
            f"to={self.to_user_id!r} "
            f"amount={self.amount} "
            f"status={self.status.value}>"
        )
