"""
models/membership.py — Membership table definition.

No business logic. No imports from services or routes.

UNIQUE(group_id, user_id) is the last line of defence against duplicate
members; the Membership Guard rejects duplicates before the insert.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.groupledger.extensions import db
from backend.groupledger.models.types import MemberRole, value_enum


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE RESTRICT: groups are never hard-deleted.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    role: Mapped[MemberRole] = mapped_column(
        value_enum(MemberRole, "member_role_enum"),
        nullable=False,
        default=MemberRole.MEMBER,
        server_default=MemberRole.MEMBER.value,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id!r} "
            f"role={self.role.value}>"
        )
