"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - An expense is immutable once written. "Editing" is delete + recreate,
    both of which go through services/ledger_service.py so the balances
    stay consistent.
  - Deleting an expense row hard-deletes it; payer and member rows cascade.
    Balance reversal happens in the same transaction.
  - SplitMode is a Python enum so it can be imported by the allocator and
    schemas without repeating string literals. It is stored as a VARCHAR
    with a CHECK constraint (native_enum=False) so the model works on both
    PostgreSQL and SQLite.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fairshare.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Do not duplicate these as plain string constants anywhere else.

class SplitMode(str, enum.Enum):
    EQUAL   = "equal"
    SHARES  = "shares"
    UNEQUAL = "unequal"
    CUSTOM  = "custom"   # members' owed amounts supplied directly by the caller


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'equal'), not names ('EQUAL')."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),

        # Both layers are intentional; the schema is the primary gate.
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_expenses_title_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,   # idx_expenses_group
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # When the expense happened (user supplied); created_at is when it was recorded.
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    split_mode: Mapped[SplitMode] = mapped_column(
        Enum(
            SplitMode,
            name="split_mode_enum",
            native_enum=False,
            create_constraint=True,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitMode.CUSTOM,
        server_default=SplitMode.CUSTOM.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────
    # ON DELETE CASCADE: payer and member rows are owned by their expense.

    payers: Mapped[list["ExpensePayer"]] = relationship(  # noqa: F821
        "ExpensePayer",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpensePayer.id",
    )

    members: Mapped[list["ExpenseMember"]] = relationship(  # noqa: F821
        "ExpenseMember",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseMember.id",
    )

    def to_ledger_entry(self) -> dict:
        """
        Returns the plain-dict shape the pure ledger functions consume.
        Read-only; does NOT contain logic — just reshapes column values.
        """
        return {
            "amount": self.amount,
            "payers": [
                {"user_id": p.user_id, "paid_amount": p.paid_amount}
                for p in self.payers
            ],
            "members": [
                {"user_id": m.user_id, "amount_owed": m.amount_owed}
                for m in self.members
            ],
        }

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount}>"
        )
