"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  every nonzero balance of the group
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from fairshare.app.extensions import db
from fairshare.app.services import ledger_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<group_id>/balances", methods=["GET"])
def get_balances(group_id: str):
    """
    GET /groups/:id/balances

    The service asserts that the group's balances sum to zero and raises
    DRIFT_ERROR (500) if they do not.
    """
    result = ledger_service.get_balance_response(
        group_id=group_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
