"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service method, return envelope.
  - No business logic. No DB queries. The service owns the transaction.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group
  GET    /groups                        → 200  list caller's groups
  GET    /groups/:id                    → 200  get group + members
  PATCH  /groups/:id                    → 200  update name, description, settings (admin)
  POST   /groups/:id/members            → 201  add member
  DELETE /groups/:id/members/:user_id   → 200  remove member (admin or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.groupledger import ledger_service
from backend.groupledger.middleware.identity import require_user
from backend.groupledger.models.group import Group
from backend.groupledger.models.membership import Membership
from backend.groupledger.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
)

groups_bp = Blueprint("groups", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────

def _serialize_member(m: Membership) -> dict:
    return {
        "user_id": m.user_id,
        "role": m.role.value,
        "joined_at": m.joined_at.isoformat() if m.joined_at else None,
    }


def _serialize_group(group: Group, members: list[Membership] | None = None) -> dict:
    """Converts a Group ORM object to a plain dict; members are optional."""
    data = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "currency": group.currency,
        "owner_user_id": group.owner_user_id,
        "settings": group.settings,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }
    if members is not None:
        data["members"] = [_serialize_member(m) for m in members]
    return data


# ── Route handlers ─────────────────────────────────────────────────────────

@groups_bp.route("", methods=["POST"])
@require_user
def create_group():
    """POST /groups: Create a new group. Caller becomes its first admin."""
    data = CreateGroupSchema().load(request.get_json(silent=True) or {})
    group, members = ledger_service().create_group(owner_id=g.user_id, data=data)
    return jsonify({"data": _serialize_group(group, members), "warnings": []}), 201


@groups_bp.route("", methods=["GET"])
@require_user
def list_groups():
    """GET /groups: Groups the caller belongs to."""
    groups = ledger_service().list_groups(caller_id=g.user_id)
    return jsonify({
        "data": [_serialize_group(group) for group in groups],
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_user
def get_group(group_id: int):
    """GET /groups/:id: Group details with member list. Caller must be a member."""
    group, members = ledger_service().get_group(group_id=group_id, caller_id=g.user_id)
    return jsonify({"data": _serialize_group(group, members), "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_user
def update_group(group_id: int):
    """PATCH /groups/:id: Partial update. Only admins may change a group."""
    data = UpdateGroupSchema().load(request.get_json(silent=True) or {})
    group, members = ledger_service().update_group(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
    )
    return jsonify({"data": _serialize_group(group, members), "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_user
def add_member(group_id: int):
    """POST /groups/:id/members: Add a user to the group."""
    data = AddMemberSchema().load(request.get_json(silent=True) or {})
    membership = ledger_service().add_member(
        group_id=group_id,
        caller_id=g.user_id,
        user_id=data["user_id"].strip(),
    )
    return jsonify({
        "data": {"group_id": group_id, **_serialize_member(membership)},
        "warnings": [],
    }), 201


@groups_bp.route("/<int:group_id>/members/<string:user_id>", methods=["DELETE"])
@require_user
def remove_member(group_id: int, user_id: str):
    """
    DELETE /groups/:id/members/:user_id

    Admins remove anyone; members remove themselves. Refused with
    OUTSTANDING_BALANCE while the member's balance is not settled.
    """
    ledger_service().remove_member(group_id=group_id, caller_id=g.user_id, user_id=user_id)
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": user_id,
        },
        "warnings": [],
    }), 200
