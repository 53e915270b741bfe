"""
tests/unit/test_request_schemas.py — Marshmallow schema tests.

Schemas inherit from marshmallow.Schema directly, so no Flask app is needed.
Registered error codes surface as the ValidationError message itself.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from marshmallow import ValidationError

from backend.groupledger.errors import ErrorCode
from backend.groupledger.models.types import SettlementStatus, SplitType
from backend.groupledger.schemas.expense_schema import CreateExpenseSchema
from backend.groupledger.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
)
from backend.groupledger.schemas.settlement_schema import SettlementFilterSchema


class TestCreateGroupSchema:

    def test_minimal_payload_gets_default_settings(self):
        data = CreateGroupSchema().load({"name": "  Trip  ", "currency": "usd"})
        assert data["name"] == "Trip"
        assert data["currency"] == "USD"
        assert data["settings"]["default_split_type"] == SplitType.EQUAL
        assert data["settings"]["allow_member_invites"] is False

    def test_settings_are_parsed(self):
        data = CreateGroupSchema().load({
            "name": "Flat",
            "currency": "EUR",
            "settings": {"default_split_type": "custom", "allow_member_invites": True},
        })
        assert data["settings"]["default_split_type"] == SplitType.CUSTOM
        assert data["settings"]["allow_member_invites"] is True

    def test_bad_currency(self):
        with pytest.raises(ValidationError) as exc:
            CreateGroupSchema().load({"name": "Trip", "currency": "US"})
        assert exc.value.messages == {"currency": [ErrorCode.INVALID_CURRENCY]}

    def test_unknown_split_type(self):
        with pytest.raises(ValidationError) as exc:
            CreateGroupSchema().load({
                "name": "Trip",
                "currency": "USD",
                "settings": {"default_split_type": "shares"},
            })
        assert exc.value.messages["settings"]["default_split_type"] == [ErrorCode.INVALID_SPLIT_TYPE]

    def test_blank_name(self):
        with pytest.raises(ValidationError) as exc:
            CreateGroupSchema().load({"name": "   ", "currency": "USD"})
        assert "name" in exc.value.messages

    def test_missing_currency(self):
        with pytest.raises(ValidationError) as exc:
            CreateGroupSchema().load({"name": "Trip"})
        assert "currency" in exc.value.messages


class TestUpdateGroupSchema:

    def test_omitted_fields_are_absent(self):
        assert UpdateGroupSchema().load({}) == {}

    def test_partial_settings_get_no_defaults(self):
        data = UpdateGroupSchema().load({"settings": {"default_split_type": "custom"}})
        assert data == {"settings": {"default_split_type": SplitType.CUSTOM}}

    def test_name_is_trimmed(self):
        assert UpdateGroupSchema().load({"name": " Flat "}) == {"name": "Flat"}

    def test_description_may_be_cleared(self):
        assert UpdateGroupSchema().load({"description": None}) == {"description": None}

    def test_currency_is_not_updatable(self):
        with pytest.raises(ValidationError) as exc:
            UpdateGroupSchema().load({"currency": "EUR"})
        assert "currency" in exc.value.messages


def test_add_member_rejects_overlong_user_id():
    with pytest.raises(ValidationError):
        AddMemberSchema().load({"user_id": "x" * 65})


class TestCreateExpenseSchema:

    def _payload(self, **overrides):
        payload = {"amount": "30.00", "description": "Dinner"}
        payload.update(overrides)
        return payload

    def test_minimal_payload(self):
        data = CreateExpenseSchema().load(self._payload())
        assert data["amount"] == Decimal("30.00")
        assert data["splits"] is None
        assert data["paid_by_user_id"] is None
        assert data["currency"] is None

    def test_three_decimal_places_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(self._payload(amount="10.123"))
        assert exc.value.messages == {"amount": [ErrorCode.INVALID_AMOUNT_PRECISION]}

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(self._payload(amount=amount))
        assert "amount" in exc.value.messages

    def test_duplicate_split_user(self):
        splits = [
            {"user_id": "alice", "amount": "15.00"},
            {"user_id": "alice", "amount": "15.00"},
        ]
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(self._payload(splits=splits))
        assert exc.value.messages == {"splits": [ErrorCode.DUPLICATE_SPLIT_USER]}

    def test_future_date_rejected(self):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load(self._payload(expense_date=tomorrow))
        assert exc.value.messages == {"expense_date": [ErrorCode.FUTURE_EXPENSE_DATE]}

    def test_category_is_normalised(self):
        data = CreateExpenseSchema().load(self._payload(category="  Food "))
        assert data["category"] == "food"

    def test_missing_description(self):
        with pytest.raises(ValidationError) as exc:
            CreateExpenseSchema().load({"amount": "1.00"})
        assert "description" in exc.value.messages


class TestSettlementFilterSchema:

    def test_no_filter(self):
        assert SettlementFilterSchema().load({}) == {"status": None}

    def test_valid_status(self):
        assert SettlementFilterSchema().load({"status": "completed"}) == {
            "status": SettlementStatus.COMPLETED,
        }

    def test_invalid_status(self):
        with pytest.raises(ValidationError) as exc:
            SettlementFilterSchema().load({"status": "done"})
        assert exc.value.messages == {"status": [ErrorCode.INVALID_STATUS]}
