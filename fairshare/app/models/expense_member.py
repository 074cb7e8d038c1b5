"""
models/expense_member.py — Each participant's share of an expense.

Key design points:
  - `amount_owed` may be 0.00: a member excluded from an equal split, or
    given 0 shares, is still recorded as a participant.
  - UNIQUE(expense_id, user_id) — a user appears once per expense (also
    enforced as DUPLICATE_MEMBER at the schema layer).

Invariant: sum(expense_members.amount_owed) == expenses.amount. Enforced in
services/ledger_service.py (ALLOCATION_MISMATCH) before the write.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fairshare.app.extensions import db


class ExpenseMember(db.Model):
    __tablename__ = "expense_members"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_members_expense_user"),
        CheckConstraint("amount_owed >= 0", name="ck_expense_members_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    amount_owed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseMember id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"amount_owed={self.amount_owed}>"
        )
