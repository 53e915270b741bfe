"""
tests/unit/test_error_envelope.py — AppError serialisation and the
marshmallow-message flattening used by the ValidationError handler.
"""

from __future__ import annotations

from decimal import Decimal

from backend.groupledger import _first_error
from backend.groupledger.errors import AppError, ErrorCode, OutstandingBalance


def test_minimal_envelope():
    err = AppError(ErrorCode.FORBIDDEN, "No.", 403)
    assert err.to_dict() == {"error": {"code": "FORBIDDEN", "message": "No."}}


def test_field_and_details_are_included():
    err = OutstandingBalance("bob", Decimal("-12.30"))
    body = err.to_dict()["error"]
    assert body["code"] == "OUTSTANDING_BALANCE"
    assert body["details"] == {"user_id": "bob", "balance": "-12.30"}
    assert "owes 12.30" in body["message"]


def test_first_error_flat():
    assert _first_error({"amount": ["INVALID_AMOUNT_PRECISION"]}) == (
        "amount", "INVALID_AMOUNT_PRECISION",
    )


def test_first_error_nested_list_field():
    messages = {"splits": {1: {"amount": ["Amount must be greater than zero."]}}}
    assert _first_error(messages) == ("splits", "Amount must be greater than zero.")


def test_first_error_schema_level():
    assert _first_error({"_schema": ["Invalid input type."]}) == (None, "Invalid input type.")
