"""
routes/users.py — Per-user balance totals across every group.

Endpoints (base url_prefix=/api/v1/users):
  GET /users/:id/balances  → 200  {"user_id", "owed", "owe"}
"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify

from fairshare.app.extensions import db
from fairshare.app.services import ledger_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/<user_id>/balances", methods=["GET"])
def get_user_balances(user_id: str):
    """
    GET /users/:id/balances

    owed: what others owe this user, summed over every group.
    owe:  what this user owes others.
    A user with no balances gets "0.00" for both.
    """
    totals = ledger_service.get_user_totals(user_id=user_id, session=db.session)
    return jsonify({
        "data": {
            "user_id": totals["user_id"],
            "owed": str(totals["owed"].quantize(Decimal("0.01"))),
            "owe": str(totals["owe"].quantize(Decimal("0.01"))),
        },
        "warnings": [],
    }), 200
