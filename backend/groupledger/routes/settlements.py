"""
routes/settlements.py — Settlement route handlers.

Settlements are produced by POST /groups/:id/settle, never typed in by a
client. Each one is a pending transfer until one of its two parties marks
it completed (the money moved) or cancelled.

Special: settle returns (settlements, warnings[]). An already-balanced group
yields an empty list, a NOTHING_TO_SETTLE warning and HTTP 200 instead of 201.

Endpoints (url_prefix=/api/v1):
  POST   /groups/:id/settle                 → 201  plan and persist transfers
  GET    /groups/:id/settlements[?status=]  → 200  list settlements
  POST   /settlements/:id/complete          → 200  pending → completed
  POST   /settlements/:id/cancel            → 200  pending → cancelled
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.groupledger import ledger_service
from backend.groupledger.middleware.identity import require_user
from backend.groupledger.models.settlement import Settlement
from backend.groupledger.schemas.settlement_schema import SettlementFilterSchema

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_settlement(s: Settlement) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "group_id": s.group_id,
        "from_user_id": s.from_user_id,
        "to_user_id": s.to_user_id,
        "amount": s.amount,
        "status": s.status.value,
        "created_at": s.created_at.isoformat() if s.created_at else None,
        "updated_at": s.updated_at.isoformat() if s.updated_at else None,
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/groups/<int:group_id>/settle", methods=["POST"])
@require_user
def settle_group(group_id: int):
    """
    POST /groups/:id/settle: Replace any pending plan with a fresh one.

    Any member may trigger a settle. Earlier pending settlements are cancelled
    in the same transaction.
    """
    settlements, warnings = ledger_service().settle_group(group_id=group_id, caller_id=g.user_id)
    status = 201 if settlements else 200
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": warnings,
    }), status


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_user
def list_settlements(group_id: int):
    """GET /groups/:id/settlements: Newest first, optionally filtered by ?status=."""
    args = SettlementFilterSchema().load(request.args.to_dict())
    settlements = ledger_service().list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        status=args["status"],
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements/<int:settlement_id>/complete", methods=["POST"])
@require_user
def complete_settlement(settlement_id: int):
    settlement = ledger_service().complete_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/settlements/<int:settlement_id>/cancel", methods=["POST"])
@require_user
def cancel_settlement(settlement_id: int):
    settlement = ledger_service().cancel_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200
