"""
models/balance.py — Balance table definition.

One row per (user_id, group_id) pair with a nonzero net balance.
No business logic. No imports from services or routes.

Key design points:
  - `amount` is signed: positive = the group owes this user, negative = this
    user owes the group. Numeric(12, 2) — never Float.
  - A row whose amount reaches zero is DELETED by the ledger, never stored
    as 0.00. Absence of a row means a zero balance.
  - UNIQUE(user_id, group_id): two concurrent ledger operations inserting the
    first balance for the same user collide here; the transaction runner
    treats that IntegrityError as a conflict and retries.
  - Only services/ledger_service.py writes to this table.
  - The per-group zero-sum invariant is enforced by the ledger service and,
    on PostgreSQL, re-checked at COMMIT by a deferred constraint trigger
    (migration 002_add_balance_zero_sum_trigger).

user_id and group_id are opaque identifiers issued by the identity and group
collaborators; there are no foreign keys to users or groups here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from fairshare.app.extensions import db


class Balance(db.Model):
    __tablename__ = "balances"

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_balances_user_group"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,   # idx_balances_user: per-user totals across groups
    )

    group_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,   # idx_balances_group: group snapshot query
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Balance id={self.id} "
            f"user_id={self.user_id} "
            f"group_id={self.group_id} "
            f"amount={self.amount}>"
        )
