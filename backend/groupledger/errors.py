"""
errors.py — AppError base class, typed ledger errors and the code registry.

Every error returned by the ledger must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Typed subclasses carry structured `details` (offending ids, numeric
    deltas) so the caller can render a precise message without parsing prose.
  - Monetary values in `details` are strings, never floats.
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details  # structured context for the caller

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CURRENCY           = "INVALID_CURRENCY"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_STATUS             = "INVALID_STATUS"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    FUTURE_EXPENSE_DATE        = "FUTURE_EXPENSE_DATE"

    # ── Identity (401) ─────────────────────────────────────────────────────
    USER_ID_MISSING            = "USER_ID_MISSING"

    # ── Authorization (403) ────────────────────────────────────────────────
    FORBIDDEN                  = "FORBIDDEN"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SPLIT_NOT_FOUND            = "SPLIT_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    ROUTE_NOT_FOUND            = "ROUTE_NOT_FOUND"

    # ── Protocol (405) ─────────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_MEMBER           = "DUPLICATE_MEMBER"
    OUTSTANDING_BALANCE        = "OUTSTANDING_BALANCE"
    INVALID_SPLIT_STATE        = "INVALID_SPLIT_STATE"
    INVALID_SETTLEMENT_STATE   = "INVALID_SETTLEMENT_STATE"
    LAST_ADMIN                 = "LAST_ADMIN"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INVALID_SPLIT_MEMBER       = "INVALID_SPLIT_MEMBER"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    INVALID_SPLIT_AMOUNT       = "INVALID_SPLIT_AMOUNT"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    CURRENCY_MISMATCH          = "CURRENCY_MISMATCH"
    SPLITS_REQUIRED            = "SPLITS_REQUIRED"
    EMPTY_GROUP                = "EMPTY_GROUP"

    # ── System Errors (500) ────────────────────────────────────────────────
    # IMBALANCED_LEDGER means upstream data corruption, not user error.
    IMBALANCED_LEDGER          = "IMBALANCED_LEDGER"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Balances already net to zero; settle was a no-op.
    NOTHING_TO_SETTLE = "NOTHING_TO_SETTLE"

    # Mark-paid on a split that was already paid; state unchanged.
    ALREADY_PAID = "ALREADY_PAID"


# ── Typed errors ───────────────────────────────────────────────────────────

class NotFound(AppError):

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 404)


class Unauthorized(AppError):
    """Non-member access or a non-admin trying to act on someone else."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class InvalidSplitMember(AppError):

    def __init__(self, user_ids: list[str]) -> None:
        self.user_ids = sorted(user_ids)
        super().__init__(
            ErrorCode.INVALID_SPLIT_MEMBER,
            f"Split users are not members of the group: {', '.join(self.user_ids)}.",
            422,
            field="splits",
            details={"user_ids": self.user_ids},
        )


class SplitSumMismatch(AppError):

    def __init__(self, split_total: Decimal, expense_amount: Decimal) -> None:
        self.split_total = split_total
        self.expense_amount = expense_amount
        self.delta = split_total - expense_amount
        super().__init__(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({split_total}) do not equal expense amount ({expense_amount}).",
            422,
            field="splits",
            details={
                "split_total": str(split_total),
                "expense_amount": str(expense_amount),
                "delta": str(self.delta),
            },
        )


class DuplicateMember(AppError):

    def __init__(self, group_id: int, user_id: str) -> None:
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(
            ErrorCode.DUPLICATE_MEMBER,
            f"User {user_id} is already a member of group {group_id}.",
            409,
            field="user_id",
            details={"group_id": group_id, "user_id": user_id},
        )


class OutstandingBalance(AppError):

    def __init__(self, user_id: str, balance: Decimal) -> None:
        self.user_id = user_id
        self.balance = balance
        direction = "is owed" if balance > 0 else "owes"
        super().__init__(
            ErrorCode.OUTSTANDING_BALANCE,
            f"User {user_id} {direction} {abs(balance)} and cannot leave the group "
            f"until the balance is settled.",
            409,
            details={"user_id": user_id, "balance": str(balance)},
        )


class ImbalancedLedger(AppError):

    def __init__(self, debit_total: Decimal, credit_total: Decimal) -> None:
        self.debit_total = debit_total
        self.credit_total = credit_total
        super().__init__(
            ErrorCode.IMBALANCED_LEDGER,
            f"Ledger integrity check failed: debts total {debit_total} but "
            f"credits total {credit_total}.",
            500,
            details={
                "debit_total": str(debit_total),
                "credit_total": str(credit_total),
            },
        )
