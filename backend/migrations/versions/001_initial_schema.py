"""Initial schema — all ledger tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-16

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  Tables in FK dependency order (groups → memberships → expenses → splits,
  settlements), then indexes.

Enums (split type, role, statuses) are stored as VARCHAR(16) holding the
enum value, matching models/types.value_enum(native_enum=False). No
PostgreSQL enum types are created, so the schema also runs on SQLite.

User ids are opaque strings issued by the upstream identity service; there
is no users table and therefore no user foreign keys.

ON DELETE policies:
  memberships.group_id   → RESTRICT
  expenses.group_id      → RESTRICT
  splits.expense_id      → CASCADE   (splits owned by expense)
  settlements.group_id   → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration: no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("owner_user_id", sa.String(64), nullable=False),
        sa.Column(
            "default_split_type",
            sa.String(16),
            nullable=False,
            server_default="equal",
        ),
        sa.Column(
            "allow_member_invites",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        sa.CheckConstraint(
            "LENGTH(currency) = 3",
            name="ck_groups_currency_length",
        ),
    )

    # ── Step 2: memberships ────────────────────────────────────────────────
    # UNIQUE(group_id, user_id): a user joins a group at most once.

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
    )

    # ── Step 3: expenses ───────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column("paid_by_user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="other"),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    # ── Step 4: splits ─────────────────────────────────────────────────────
    # UNIQUE(expense_id, user_id). paid_at is set when status becomes 'paid'.

    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_splits_expense"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_splits"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        sa.CheckConstraint("amount > 0", name="ck_splits_amount_positive"),
    )

    # ── Step 5: settlements ────────────────────────────────────────────────
    # CHECK(from_user_id <> to_user_id): nobody pays themselves.

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_settlements_group"),
            nullable=False,
        ),
        sa.Column("from_user_id", sa.String(64), nullable=False),
        sa.Column("to_user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    # ── Step 6: Indexes ────────────────────────────────────────────────────

    # memberships: list members of a group, list groups of a user.
    op.create_index("idx_memberships_group", "memberships", ["group_id"])
    op.create_index("idx_memberships_user", "memberships", ["user_id"])

    op.create_index("idx_expenses_group", "expenses", ["group_id"])
    op.create_index("idx_splits_expense", "splits", ["expense_id"])

    # settlements: balance computation and ?status= listing.
    op.create_index("idx_settlements_group", "settlements", ["group_id"])
    op.create_index(
        "idx_settlements_group_status",
        "settlements",
        ["group_id", "status"],
    )


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. Production prefers corrective
    forward migrations over rollbacks.
    """

    op.drop_index("idx_settlements_group_status", table_name="settlements")
    op.drop_index("idx_settlements_group",        table_name="settlements")
    op.drop_index("idx_splits_expense",           table_name="splits")
    op.drop_index("idx_expenses_group",           table_name="expenses")
    op.drop_index("idx_memberships_user",         table_name="memberships")
    op.drop_index("idx_memberships_group",        table_name="memberships")

    op.drop_table("settlements")
    op.drop_table("splits")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
