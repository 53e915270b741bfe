"""
schemas/settlement_schema.py — Query-string schema for listing settlements.

Settlements are never user-authored; they come from POST /groups/:id/settle.
The only client input is the optional ?status= filter.
"""

from __future__ import annotations

from marshmallow import Schema, fields

from backend.groupledger.errors import ErrorCode
from backend.groupledger.models.types import SettlementStatus


class SettlementFilterSchema(Schema):
    """GET /groups/:id/settlements?status=pending|completed|cancelled"""

    status = fields.Enum(
        SettlementStatus,
        load_default=None,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_STATUS},
    )
