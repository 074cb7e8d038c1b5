"""
services/settlement_service.py — Settlement Planner.

Greedy two-heap debt simplification: repeatedly matches the largest debtor
with the largest creditor until every balance reaches zero.

Known property (not a bug): the greedy strategy yields at most N-1 transfers
for N nonzero balances, but it is an approximation. It is NOT guaranteed to
find the global minimum number of transfers (that problem is NP-hard).

Ties between equal amounts are broken by heap insertion order. Which pairs
get matched among ties is not part of the contract; the zero-sum result is.

Layer rules:
  - plan_settlement() is pure: no I/O, no state kept between calls.
  - get_settlement_plan() is the only function here that reads the database,
    and it only reads (through ledger_service.get_group_balances()).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from sqlalchemy.orm import Session

from fairshare.app.errors import DriftError
from fairshare.app.max_heap import MaxHeap
from fairshare.app.money import ZERO, EPSILON, is_negligible, to_decimal
from fairshare.app.services import ledger_service


def plan_settlement(balances: Mapping[str, Decimal]) -> list[dict]:
    """
    Computes transfers that drive every balance in `balances` to zero.

    Args:
        balances: {user_id: net_balance}. Positive = is owed money (creditor),
                  negative = owes money (debtor). Entries within EPSILON of 0
                  are ignored. MUST sum to zero (within EPSILON).

    Returns:
        [{"from_user_id": debtor, "to_user_id": creditor, "amount": Decimal}]
        Every amount is > 0. An empty list means nothing is owed.

    Raises:
        DriftError -- the balances do not sum to zero, so a creditor or debtor
                      is left over once the other side runs out, or the
                      sub-EPSILON leftovers clamped while matching add up to
                      EPSILON or more. Smaller residue is clamped to zero.
    """
    creditors = MaxHeap()
    debtors = MaxHeap()

    for user_id, raw_amount in balances.items():
        amount = to_decimal(raw_amount)
        if is_negligible(amount):
            continue
        if amount > ZERO:
            creditors.insert(user_id, amount)
        else:
            debtors.insert(user_id, -amount)

    transfers: list[dict] = []
    # Sub-epsilon leftovers dropped during matching, signed like balances.
    clamped: dict[str, Decimal] = {}

    while creditors and debtors:
        creditor = creditors.extract_max()
        debtor = debtors.extract_max()

        settled = min(creditor.amount, debtor.amount)
        transfers.append({
            "from_user_id": debtor.user_id,
            "to_user_id": creditor.user_id,
            "amount": settled,
        })

        # Equal amounts: neither side goes back. Sub-epsilon leftovers are clamped.
        creditor_left = creditor.amount - settled
        debtor_left = debtor.amount - settled
        if creditor_left >= EPSILON:
            creditors.insert(creditor.user_id, creditor_left)
        elif creditor_left > ZERO:
            clamped[creditor.user_id] = clamped.get(creditor.user_id, ZERO) + creditor_left
        if debtor_left >= EPSILON:
            debtors.insert(debtor.user_id, debtor_left)
        elif debtor_left > ZERO:
            clamped[debtor.user_id] = clamped.get(debtor.user_id, ZERO) - debtor_left

    residual = {entry.user_id: entry.amount for entry in creditors.drain()}
    residual.update({entry.user_id: -entry.amount for entry in debtors.drain()})

    # Clamping is only allowed while the dropped amounts stay below EPSILON
    # in total.
    if not residual and is_negligible(sum(clamped.values(), ZERO)):
        return transfers

    for user_id, amount in clamped.items():
        residual[user_id] = residual.get(user_id, ZERO) + amount
    total = sum(residual.values(), ZERO)
    raise DriftError(
        f"Balances do not sum to zero: {total} left unsettled across "
        f"{len(residual)} member(s).",
        residual=residual,
    )


def get_settlement_plan(group_id: str, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/settlements from the group's
    stored balances.
    """
    balances = ledger_service.get_group_balances(group_id, session)
    transfers = plan_settlement(balances)

    return {
        "group_id": group_id,
        "transfers": [
            {
                "from_user_id": t["from_user_id"],
                "to_user_id": t["to_user_id"],
                "amount": str(t["amount"]),
            }
            for t in transfers
        ],
        "total": str(sum((t["amount"] for t in transfers), ZERO)),
    }
