"""
models/types.py — Enum definitions shared by the ledger tables.

Defined here so they can be imported by schemas and services without
pulling in the full models. Do not duplicate these as plain string
constants anywhere else in the codebase.
"""

from __future__ import annotations

import enum

from sqlalchemy import Enum


class MemberRole(str, enum.Enum):
    ADMIN  = "admin"
    MEMBER = "member"


class SplitType(str, enum.Enum):
    """
    Group setting for expenses recorded without splits.

    EQUAL:  the amount is split equally across all current members.
    CUSTOM: every expense must carry explicit splits.
    """
    EQUAL  = "equal"
    CUSTOM = "custom"


class SplitStatus(str, enum.Enum):
    PENDING   = "pending"
    PAID      = "paid"
    CANCELLED = "cancelled"


class SettlementStatus(str, enum.Enum):
    PENDING   = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'paid'), not names ('PAID')."""
    return [member.value for member in enum_cls]


def value_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """
    Column type for a str-enum stored as VARCHAR.

    native_enum=False keeps the schema portable: PostgreSQL in production,
    SQLite in the integration tests.
    """
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=_enum_values,
        validate_strings=True,
    )
