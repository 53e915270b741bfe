"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    ISO 4217 currency shape, settings enum values, partial updates.
  - services/ledger_service.py + membership_service.py:
      - caller must be a member / admin (FORBIDDEN), including updates
      - DUPLICATE_MEMBER (membership existence requires DB lookup)
      - GROUP_NOT_FOUND (requires DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly. Unit tests instantiate
           these schemas without a Flask app.
"""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, pre_load, validate

from backend.groupledger.errors import ErrorCode
from backend.groupledger.models.types import SplitType

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def validate_currency(value: str) -> None:
    """ISO 4217 alphabetic code: three upper-case letters."""
    if not _CURRENCY_RE.match(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


class GroupSettingsSchema(Schema):

    default_split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )
    allow_member_invites = fields.Bool(load_default=False)


class CreateGroupSchema(Schema):
    """
    POST /groups

    name:        non-empty after trim, max 100 chars
    description: optional, max 500 chars
    currency:    required ISO 4217 code; lower-case input is upper-cased
    settings:    optional; every key has a default
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    currency = fields.Str(required=True, validate=validate_currency)

    settings = fields.Nested(GroupSettingsSchema, load_default=lambda: GroupSettingsSchema().load({}))

    @pre_load
    def normalise(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if isinstance(data.get("name"), str):
                data["name"] = data["name"].strip()
            if isinstance(data.get("currency"), str):
                data["currency"] = data["currency"].strip().upper()
        return data


class UpdateGroupSettingsSchema(Schema):
    """Settings keys for PATCH /groups/:id. Omitted keys stay unchanged."""

    default_split_type = fields.Enum(
        SplitType,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )
    allow_member_invites = fields.Bool()


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    All fields are optional (partial update). Currency is fixed at creation:
    existing expenses are recorded in it.
    """

    name = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=500),
    )

    settings = fields.Nested(UpdateGroupSettingsSchema)

    @pre_load
    def normalise(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("name"), str):
            data = dict(data)
            data["name"] = data["name"].strip()
        return data


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    user_id is the opaque external identity of the user being added.
    """

    user_id = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=64, error="user_id must be between 1 and 64 characters."),
            _validate_non_empty_after_trim,
        ],
    )
