"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the expense-id
paths (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service method, return envelope.
  - _serialize_expense() is a pure data-shape helper, not business logic.

Endpoints:
  POST   /groups/:id/expenses   → 201  record expense
  GET    /groups/:id/expenses   → 200  list expenses, newest first
  GET    /expenses/:id          → 200  get expense + splits
  POST   /expenses/:id/pay      → 200  mark the caller's split paid
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.groupledger import ledger_service
from backend.groupledger.middleware.identity import require_user
from backend.groupledger.models.expense import Expense
from backend.groupledger.schemas.expense_schema import CreateExpenseSchema

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helper ───────────────────────────────────────────────────
# Amounts are strings via DecimalJSONProvider.

def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by_user_id": expense.paid_by_user_id,
        "amount": expense.amount,
        "currency": expense.currency,
        "category": expense.category,
        "description": expense.description,
        "expense_date": expense.expense_date.isoformat(),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "fully_paid": expense.is_fully_paid,
        "splits": [
            {
                "id": s.id,
                "user_id": s.user_id,
                "amount": s.amount,
                "status": s.status.value,
                "paid_at": s.paid_at.isoformat() if s.paid_at else None,
            }
            for s in expense.splits
        ],
    }


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_user
def create_expense(group_id: int):
    """
    POST /groups/:id/expenses: Record a new expense.

    Without a splits array the amount is split equally across all current
    members.
    """
    data = CreateExpenseSchema().load(request.get_json(silent=True) or {})
    expense = ledger_service().add_expense(group_id=group_id, caller_id=g.user_id, data=data)
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_user
def list_expenses(group_id: int):
    expenses = ledger_service().list_expenses(group_id=group_id, caller_id=g.user_id)
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-id routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_user
def get_expense(expense_id: int):
    expense = ledger_service().get_expense(expense_id=expense_id, caller_id=g.user_id)
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/pay", methods=["POST"])
@require_user
def pay_split(expense_id: int):
    """
    POST /expenses/:id/pay: Mark the caller's own split as paid.

    Re-marking a paid split is a no-op reported through an ALREADY_PAID
    warning; the status stays 200.
    """
    expense, warnings = ledger_service().mark_split_paid(
        expense_id=expense_id,
        caller_id=g.user_id,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": warnings}), 200
