"""
routes/settlements.py — Settlement plan route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - Read-only: the plan is computed from stored balances on every request
    and nothing is persisted. Paying a transfer is recorded as an expense.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/settlements  → 200  transfers that zero every balance
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from fairshare.app.extensions import db
from fairshare.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<group_id>/settlements", methods=["GET"])
def get_settlement_plan(group_id: str):
    """
    GET /groups/:id/settlements

    {"group_id", "transfers": [{"from_user_id", "to_user_id", "amount"}], "total"}
    An empty transfers list means the group is settled.
    """
    result = settlement_service.get_settlement_plan(
        group_id=group_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
