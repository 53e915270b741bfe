"""
schemas/expense_schema.py — Marshmallow schema for expense creation.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision (max 2 dp), positive amounts
      - DUPLICATE_SPLIT_USER (400): request shape rule
      - expense_date not in the future
  - services/split_service.py:
      - INVALID_SPLIT_MEMBER (422): requires current membership
      - SPLIT_SUM_MISMATCH   (422): Decimal arithmetic with 0.01 tolerance
  - services/ledger_service.py:
      - PAYER_NOT_MEMBER, CURRENCY_MISMATCH (422): require DB lookups

IMPORTANT: Inherits from marshmallow.Schema directly: never a Flask-bound
           schema class, so unit tests need no app context.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates,
    validates_schema,
)

from backend.groupledger.errors import ErrorCode
from backend.groupledger.schemas.group_schema import validate_currency


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Amounts must be strictly positive with at most 2 decimal places.
# Input with more precision is REJECTED, never rounded.
# ──────────────────────────────────────────────────────────────────────────

def validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class SplitInputSchema(Schema):
    """One entry of the `splits` array."""

    user_id = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=64),
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_monetary_amount,
    )


class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    paid_by_user_id : optional; defaults to the caller
    amount          : required, positive, max 2 dp
    currency        : optional; defaults to the group currency
    category        : optional free-text label; defaults to "other"
    description     : required, non-empty after trim, max 255
    expense_date    : optional ISO date, not in the future
    splits          : optional; omitted means an equal split across all members
    """

    paid_by_user_id = fields.Str(
        load_default=None,
        validate=validate.Length(min=1, max=64),
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_monetary_amount,
    )

    currency = fields.Str(load_default=None, validate=validate_currency)

    category = fields.Str(
        load_default=None,
        validate=validate.Length(max=50),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    expense_date = fields.Date(load_default=None)

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        load_default=None,
        validate=validate.Length(min=1, error="splits must not be empty when provided."),
    )

    @pre_load
    def normalise(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if isinstance(data.get("currency"), str):
                data["currency"] = data["currency"].strip().upper()
            if isinstance(data.get("category"), str):
                data["category"] = data["category"].strip().lower() or None
            if isinstance(data.get("description"), str):
                data["description"] = data["description"].strip()
        return data

    @validates("expense_date")
    def validate_expense_date(self, value: date | None, **kwargs) -> None:
        if value is not None and value > date.today():
            raise ValidationError(ErrorCode.FUTURE_EXPENSE_DATE)

    @validates_schema
    def validate_unique_split_users(self, data: dict, **kwargs) -> None:
        """DUPLICATE_SPLIT_USER (400): the same user_id appears twice."""
        splits = data.get("splits") or []
        seen: set[str] = set()
        for split in splits:
            if split["user_id"] in seen:
                raise ValidationError(ErrorCode.DUPLICATE_SPLIT_USER, field_name="splits")
            seen.add(split["user_id"])
