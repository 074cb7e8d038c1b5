"""Initial schema — expenses, payer/member rows, balances.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. expenses
  2. expense_payers, expense_members (FK → expenses)
  3. balances (no FKs; one row per (user_id, group_id) with a nonzero amount)

ON DELETE policies:
  expense_payers.expense_id   → CASCADE  (rows owned by expense)
  expense_members.expense_id  → CASCADE  (rows owned by expense)

split_mode is stored as VARCHAR(16) with a CHECK constraint (non-native enum),
so no PostgreSQL enum type has to be created or dropped here.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── expenses ───────────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            "date",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "split_mode",
            sa.Enum(
                "equal", "shares", "unequal", "custom",
                name="split_mode_enum",
                native_enum=False,
                length=16,
                create_constraint=True,
            ),
            server_default="custom",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_expenses_title_nonempty",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])

    # ── expense_payers ─────────────────────────────────────────────────────
    op.create_table(
        "expense_payers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("paid_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.CheckConstraint("paid_amount > 0", name="ck_expense_payers_amount_positive"),
        sa.ForeignKeyConstraint(
            ["expense_id"], ["expenses.id"], ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "expense_id", "user_id", name="uq_expense_payers_expense_user",
        ),
    )
    op.create_index("ix_expense_payers_expense_id", "expense_payers", ["expense_id"])

    # ── expense_members ────────────────────────────────────────────────────
    op.create_table(
        "expense_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("amount_owed", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.CheckConstraint(
            "amount_owed >= 0", name="ck_expense_members_amount_non_negative",
        ),
        sa.ForeignKeyConstraint(
            ["expense_id"], ["expenses.id"], ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "expense_id", "user_id", name="uq_expense_members_expense_user",
        ),
    )
    op.create_index("ix_expense_members_expense_id", "expense_members", ["expense_id"])

    # ── balances ───────────────────────────────────────────────────────────
    # The unique constraint name is matched by transactions._is_conflict():
    # two writers inserting the first balance for the same user race here.
    op.create_table(
        "balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("group_id", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_balances_user_group"),
    )
    op.create_index("ix_balances_user_id", "balances", ["user_id"])
    op.create_index("ix_balances_group_id", "balances", ["group_id"])


def downgrade() -> None:
    """Drops every table in reverse FK order."""
    op.drop_index("ix_balances_group_id", table_name="balances")
    op.drop_index("ix_balances_user_id", table_name="balances")
    op.drop_table("balances")

    op.drop_index("ix_expense_members_expense_id", table_name="expense_members")
    op.drop_table("expense_members")

    op.drop_index("ix_expense_payers_expense_id", table_name="expense_payers")
    op.drop_table("expense_payers")

    op.drop_index("ix_expenses_group_id", table_name="expenses")
    op.drop_table("expenses")
