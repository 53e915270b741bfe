"""
services/notification_service.py — Best-effort notification hook.

The ledger emits four events: member added, expense added, expense fully
paid, group settled. Delivery (push, email, SMS) belongs to an external
collaborator; the core only calls a NotificationHook.

Notification failures are NEVER fatal. notify() is the one place in the
codebase that catches and swallows an arbitrary exception: it logs the
traceback and returns so the ledger operation can still commit.
"""

from __future__ import annotations

import logging
from decimal import Decimal

logger = logging.getLogger(__name__)


class NotificationHook:
    """Interface for delivery backends. Every method is fire-and-forget."""

    def member_added(self, group_id: int, user_id: str, added_by: str) -> None:
        raise NotImplementedError

    def expense_added(
            self,
            group_id: int,
            expense_id: int,
            paid_by: str,
            amount: Decimal,
            currency: str,
            recipients: list[str],
    ) -> None:
        raise NotImplementedError

    def expense_fully_paid(self, group_id: int, expense_id: int, paid_by: str) -> None:
        raise NotImplementedError

    def group_settled(self, group_id: int, settlement_ids: list[int], settled_by: str) -> None:
        raise NotImplementedError


class LoggingNotificationHook(NotificationHook):
    """Default hook: records each event in the application log."""

    def member_added(self, group_id, user_id, added_by):
        logger.info("notify member_added group=%s user=%s by=%s", group_id, user_id, added_by)

    def expense_added(self, group_id, expense_id, paid_by, amount, currency, recipients):
        logger.info(
            "notify expense_added group=%s expense=%s paid_by=%s amount=%s %s recipients=%d",
            group_id, expense_id, paid_by, amount, currency, len(recipients),
        )

    def expense_fully_paid(self, group_id, expense_id, paid_by):
        logger.info("notify expense_fully_paid group=%s expense=%s payer=%s", group_id, expense_id, paid_by)

    def group_settled(self, group_id, settlement_ids, settled_by):
        logger.info(
            "notify group_settled group=%s settlements=%d by=%s",
            group_id, len(settlement_ids), settled_by,
        )


class NullNotificationHook(NotificationHook):
    """Used when NOTIFICATIONS_ENABLED is off."""

    def member_added(self, group_id, user_id, added_by):
        pass

    def expense_added(self, group_id, expense_id, paid_by, amount, currency, recipients):
        pass

    def expense_fully_paid(self, group_id, expense_id, paid_by):
        pass

    def group_settled(self, group_id, settlement_ids, settled_by):
        pass


def notify(hook: NotificationHook | None, event: str, **payload) -> bool:
    """
    Calls hook.<event>(**payload), swallowing any failure.

    Returns True if the hook ran cleanly, False if it raised (or no hook is
    configured). The return value is informational; callers must not change
    ledger behaviour based on it.
    """
    if hook is None:
        return False
    try:
        getattr(hook, event)(**payload)
    except Exception:  # noqa: BLE001: best-effort side effect
        logger.warning(
            "Notification hook %r failed for event %s; ledger operation unaffected.",
            type(hook).__name__, event,
            exc_info=True,
        )
        return False
    return True
