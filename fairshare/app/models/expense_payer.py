"""
models/expense_payer.py — Who paid for an expense, and how much.

Invariant: sum(expense_payers.paid_amount) == expenses.amount. Enforced in
services/ledger_service.py before the write.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fairshare.app.extensions import db


class ExpensePayer(db.Model):
    __tablename__ = "expense_payers"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_payers_expense_user"),
        CheckConstraint("paid_amount > 0", name="ck_expense_payers_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="payers",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpensePayer id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"paid_amount={self.paid_amount}>"
        )
