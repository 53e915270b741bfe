"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

The member list is NOT stored on the group row. The memberships table is the
single source of truth; any member summary is derived at read time.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.groupledger.extensions import db
from backend.groupledger.models.types import SplitType, value_enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        # ISO 4217 alphabetic code.
        CheckConstraint(
            "LENGTH(currency) = 3",
            name="ck_groups_currency_length",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Opaque external identity of the creator. There is no users table;
    # identity is owned by the upstream auth service.
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # ── Settings ───────────────────────────────────────────────────────────

    default_split_type: Mapped[SplitType] = mapped_column(
        value_enum(SplitType, "split_type_enum"),
        nullable=False,
        default=SplitType.EQUAL,
        server_default=SplitType.EQUAL.value,
    )

    # When true, any member (not only admins) may add new members.
    allow_member_invites: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
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

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        order_by="Membership.joined_at",
    )

    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="group",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="group",
    )

    @property
    def settings(self) -> dict:
        return {
            "default_split_type": self.default_split_type.value,
            "allow_member_invites": self.allow_member_invites,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r} currency={self.currency}>"
