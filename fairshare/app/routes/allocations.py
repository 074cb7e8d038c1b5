"""
routes/allocations.py — Split preview.

Lets a client show how a total would be divided before the expense is
recorded. Nothing is written; the same allocator runs again when the expense
is created with a `split` block.

Endpoints (base url_prefix=/api/v1/allocations):
  POST /allocations  → 200  {"total", "mode", "members": [{"user_id", "amount_owed"}]}
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from fairshare.app.schemas.allocation_schema import AllocationRequestSchema
from fairshare.app.services import allocation_service

allocations_bp = Blueprint("allocations", __name__)


@allocations_bp.route("/", methods=["POST"])
def preview_allocation():
    """
    POST /allocations

    Body: {"total", "mode", "member_ids", "excluded" | "shares" | "amounts"}

    Errors:
      INVALID_SPLIT_STATE (422) — nobody left to pay, or all shares are zero
      ALLOCATION_MISMATCH (422) — unequal amounts do not add up to total
    """
    data = AllocationRequestSchema().load(request.get_json(force=True) or {})
    members = allocation_service.allocate(
        data["total"],
        data["member_ids"],
        data["split"],
    )
    return jsonify({
        "data": {
            "total": str(data["total"]),
            "mode": data["split"].mode.value,
            "members": [
                {"user_id": m["user_id"], "amount_owed": str(m["amount_owed"])}
                for m in members
            ],
        },
        "warnings": [],
    }), 200
