"""
routes/balances.py — Balance and analytics route handlers.

Both endpoints are read-only: nothing is persisted, including the suggested
settlements in the balances response.

Endpoints (url_prefix=/api/v1/groups):
  GET /groups/:id/balances   → 200  per-member balances + suggested transfers
  GET /groups/:id/analytics  → 200  totals, per-member and per-category figures
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.groupledger import ledger_service
from backend.groupledger.middleware.identity import require_user

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_user
def get_balances(group_id: int):
    """
    GET /groups/:id/balances

    Only completed settlements count toward balances. balance_sum is
    "0.00" for a healthy ledger.
    """
    result = ledger_service().get_balances(group_id=group_id, caller_id=g.user_id)
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/analytics", methods=["GET"])
@require_user
def get_analytics(group_id: int):
    result = ledger_service().get_analytics(group_id=group_id, caller_id=g.user_id)
    return jsonify({"data": result, "warnings": []}), 200
