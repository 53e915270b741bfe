"""
services/ledger_service.py — Group ledger orchestration.

GroupLedgerService is the only component with side effects. It reads state
through a LedgerStore, asks the pure modules (balance_service,
split_service, settlement_service, membership_service) for decisions, and
writes the results back, all inside ONE store transaction per public call.

Construction:
    service = GroupLedgerService(LedgerStore(db.session), LoggingNotificationHook())

There are no module-level service instances. Routes build one per request;
tests inject a store on their own session and a recording notifier.

Authorization rules:
  - Every operation requires the caller to be a group member (403).
  - Updating a group: admin only.
  - Adding a member: admin only, unless the group allows member invites.
  - Removing a member: self, or an admin removing someone else.
  - Marking a split paid: only the split's own user.
  - Completing / cancelling a settlement: only its two parties.

Notifications fire after the transaction commits and never fail the call.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ids and validated dicts; returns ORM rows or dicts, or
    raises AppError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from backend.groupledger.errors import (
    AppError,
    DuplicateMember,
    ErrorCode,
    NotFound,
    Unauthorized,
    WarningCode,
)
from backend.groupledger.models.expense import DEFAULT_CATEGORY, Expense
from backend.groupledger.models.group import Group
from backend.groupledger.models.membership import Membership
from backend.groupledger.models.settlement import Settlement
from backend.groupledger.models.split import Split
from backend.groupledger.models.types import (
    MemberRole,
    SettlementStatus,
    SplitStatus,
    SplitType,
)
from backend.groupledger.services import membership_service
from backend.groupledger.services.balance_service import (
    ZERO,
    balance_of,
    compute_balances,
    member_totals,
    round_balance,
    rounded_balances,
)
from backend.groupledger.services.notification_service import NotificationHook, notify
from backend.groupledger.services.settlement_service import plan_settlements
from backend.groupledger.services.split_service import should_mark_paid, validate_splits
from backend.groupledger.store import LedgerStore

logger = logging.getLogger(__name__)


class GroupLedgerService:

    def __init__(self, store: LedgerStore, notifier: NotificationHook | None = None) -> None:
        self.store = store
        self.notifier = notifier

    # ── Private helpers ────────────────────────────────────────────────────

    def _get_group_or_404(self, group_id: int, for_update: bool = False) -> Group:
        group = self.store.read_group(group_id, for_update=for_update)
        if group is None:
            raise NotFound(ErrorCode.GROUP_NOT_FOUND, f"Group {group_id} does not exist.")
        return group

    def _require_member(self, group_id: int, user_id: str) -> Membership:
        """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
        membership = self.store.read_membership(group_id, user_id)
        if membership is None:
            raise Unauthorized(f"You are not a member of group {group_id}.")
        return membership

    def _get_expense_or_404(self, expense_id: int, for_update: bool = False) -> Expense:
        expense = self.store.read_expense(expense_id, for_update=for_update)
        if expense is None:
            raise NotFound(ErrorCode.EXPENSE_NOT_FOUND, f"Expense {expense_id} does not exist.")
        return expense

    def _get_settlement_or_404(self, settlement_id: int) -> Settlement:
        settlement = self.store.read_settlement(settlement_id, for_update=True)
        if settlement is None:
            raise NotFound(
                ErrorCode.SETTLEMENT_NOT_FOUND,
                f"Settlement {settlement_id} does not exist.",
            )
        return settlement

    def _live_balances(self, group_id: int, member_ids: list[str]) -> dict[str, Decimal]:
        return compute_balances(
            self.store.read_expenses(group_id),
            self.store.read_settlements(group_id),
            member_ids,
        )

    # ── Groups ─────────────────────────────────────────────────────────────

    def create_group(self, owner_id: str, data: dict) -> tuple[Group, list[Membership]]:
        """
        Creates a group. The creator is inserted as its first member with
        role `admin` in the same transaction.
        """
        settings = data.get("settings") or {}
        with self.store.transaction():
            group = self.store.insert_group(Group(
                name=data["name"],
                description=data.get("description"),
                currency=data["currency"],
                owner_user_id=owner_id,
                default_split_type=settings.get("default_split_type", SplitType.EQUAL),
                allow_member_invites=settings.get("allow_member_invites", False),
            ))
            owner = self.store.insert_member(Membership(
                group_id=group.id,
                user_id=owner_id,
                role=MemberRole.ADMIN,
            ))

        logger.info("Group %s created by %s", group.id, owner_id)
        return group, [owner]

    def get_group(self, group_id: int, caller_id: str) -> tuple[Group, list[Membership]]:
        """Group details plus its member list, derived from the memberships table."""
        with self.store.transaction():
            group = self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)
            members = self.store.read_members(group_id)
        return group, members

    def list_groups(self, caller_id: str) -> list[Group]:
        with self.store.transaction():
            return self.store.read_groups_for_user(caller_id)

    def update_group(self, group_id: int, caller_id: str, data: dict) -> tuple[Group, list[Membership]]:
        """
        Partial update of name, description and settings. Admin only.

        Keys absent from `data` are left unchanged. Settings only affect
        expenses recorded afterwards.
        """
        changes = {k: data[k] for k in ("name", "description") if k in data}
        changes.update(data.get("settings") or {})

        with self.store.transaction():
            group = self._get_group_or_404(group_id, for_update=True)
            caller = self._require_member(group_id, caller_id)
            if not caller.is_admin:
                raise Unauthorized("Only a group admin may update the group.")
            if changes:
                self.store.update_group(group, changes)
            members = self.store.read_members(group_id)

        logger.info("Group %s updated by %s: %s", group_id, caller_id, sorted(changes))
        return group, members

    # ── Membership ─────────────────────────────────────────────────────────

    def add_member(self, group_id: int, caller_id: str, user_id: str) -> Membership:
        """
        Adds user_id to the group with role `member`.

        Raises:
          NotFound(GROUP_NOT_FOUND)  : group does not exist
          Unauthorized               : caller not a member / not allowed to add
          DuplicateMember            : (group, user) already exists; nothing written
        """
        with self.store.transaction():
            group = self._get_group_or_404(group_id)
            caller = self.store.read_membership(group_id, caller_id)
            membership_service.ensure_can_add(group, caller)
            membership_service.ensure_not_member(
                group_id, user_id, self.store.read_membership(group_id, user_id),
            )
            try:
                membership = self.store.insert_member(Membership(
                    group_id=group_id,
                    user_id=user_id,
                    role=MemberRole.MEMBER,
                ))
            except IntegrityError as exc:
                # A concurrent add won the race on uq_memberships_group_user.
                raise DuplicateMember(group_id, user_id) from exc

        logger.info("User %s added to group %s by %s", user_id, group_id, caller_id)
        notify(self.notifier, "member_added", group_id=group_id, user_id=user_id, added_by=caller_id)
        return membership

    def remove_member(self, group_id: int, caller_id: str, user_id: str) -> None:
        """
        Removes user_id from the group.

        The member's live balance (completed settlements only) must be within
        0.01 of zero, otherwise OutstandingBalance carries the amount back to
        the caller. The last admin cannot leave while other members remain.
        """
        with self.store.transaction():
            self._get_group_or_404(group_id, for_update=True)
            caller = self.store.read_membership(group_id, caller_id)
            target = self.store.read_membership(group_id, user_id)
            membership_service.ensure_can_remove(group_id, caller, target)

            balances = self._live_balances(group_id, [user_id])
            membership_service.ensure_settled_up(user_id, balance_of(user_id, balances))
            membership_service.ensure_admin_remains(
                group_id, target, self.store.read_members(group_id),
            )

            self.store.delete_member(target)

        logger.info("User %s removed from group %s by %s", user_id, group_id, caller_id)

    # ── Expenses ───────────────────────────────────────────────────────────

    def add_expense(self, group_id: int, caller_id: str, data: dict) -> Expense:
        """
        Records an expense and its splits.

        Args:
            data: validated dict from CreateExpenseSchema. `paid_by_user_id`
                  defaults to the caller, `currency` to the group currency.
                  Omitting `splits` splits the amount equally across all
                  current members; groups whose default split type is
                  `custom` reject that with SPLITS_REQUIRED.

        The payer's own split is recorded as already paid: nobody owes
        themselves money. Every other split starts pending.
        """
        with self.store.transaction():
            group = self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)

            paid_by = data.get("paid_by_user_id") or caller_id
            amount: Decimal = data["amount"]
            currency = data.get("currency") or group.currency

            member_ids = [m.user_id for m in self.store.read_members(group_id)]
            if paid_by not in member_ids:
                raise AppError(
                    ErrorCode.PAYER_NOT_MEMBER,
                    f"User {paid_by} is not a member of group {group_id}.",
                    422,
                    field="paid_by_user_id",
                )

            if currency != group.currency:
                raise AppError(
                    ErrorCode.CURRENCY_MISMATCH,
                    f"Expense currency {currency} does not match group currency {group.currency}.",
                    422,
                    field="currency",
                )

            if not data.get("splits") and group.default_split_type == SplitType.CUSTOM:
                raise AppError(
                    ErrorCode.SPLITS_REQUIRED,
                    f"Group {group_id} uses custom splits: every expense must list its splits.",
                    422,
                    field="splits",
                )

            shares = validate_splits(amount, data.get("splits"), member_ids)

            expense = Expense(
                group_id=group_id,
                paid_by_user_id=paid_by,
                amount=amount,
                currency=currency,
                category=data.get("category") or DEFAULT_CATEGORY,
                description=data["description"],
            )
            if data.get("expense_date") is not None:
                expense.expense_date = data["expense_date"]

            splits = []
            for share in shares:
                split = Split(user_id=share.user_id, amount=share.amount, status=SplitStatus.PENDING)
                if share.user_id == paid_by:
                    split.status = SplitStatus.PAID
                    split.paid_at = datetime.now(timezone.utc)
                splits.append(split)

            self.store.insert_expense(expense, splits)

        logger.info(
            "Expense %s (%s %s) added to group %s by %s",
            expense.id, amount, currency, group_id, caller_id,
        )
        notify(
            self.notifier, "expense_added",
            group_id=group_id,
            expense_id=expense.id,
            paid_by=paid_by,
            amount=amount,
            currency=currency,
            recipients=[s.user_id for s in splits if s.user_id != paid_by],
        )
        return expense

    def list_expenses(self, group_id: int, caller_id: str) -> list[Expense]:
        with self.store.transaction():
            self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)
            return self.store.read_expenses(group_id)

    def get_expense(self, expense_id: int, caller_id: str) -> Expense:
        with self.store.transaction():
            expense = self._get_expense_or_404(expense_id)
            self._require_member(expense.group_id, caller_id)
            return expense

    def mark_split_paid(self, expense_id: int, caller_id: str) -> tuple[Expense, list[dict]]:
        """
        Moves the caller's split on an expense from pending to paid.

        Idempotent: re-marking a paid split changes nothing and returns the
        expense with an ALREADY_PAID warning. When this call pays the last
        pending split, the expense_fully_paid hook fires.
        """
        warnings: list[dict] = []
        with self.store.transaction():
            expense = self._get_expense_or_404(expense_id, for_update=True)
            self._require_member(expense.group_id, caller_id)

            split = expense.split_for(caller_id)
            if split is None:
                raise NotFound(
                    ErrorCode.SPLIT_NOT_FOUND,
                    f"You have no share in expense {expense_id}.",
                )

            changed = should_mark_paid(split)
            if changed:
                self.store.update_split_status(split, SplitStatus.PAID)
            else:
                warnings.append({
                    "code": WarningCode.ALREADY_PAID,
                    "message": f"Your share of expense {expense_id} was already marked paid.",
                })
            fully_paid = changed and expense.is_fully_paid

        if fully_paid:
            notify(
                self.notifier, "expense_fully_paid",
                group_id=expense.group_id,
                expense_id=expense.id,
                paid_by=expense.paid_by_user_id,
            )
        return expense, warnings

    # ── Settlements ────────────────────────────────────────────────────────

    def settle_group(self, group_id: int, caller_id: str) -> tuple[list[Settlement], list[dict]]:
        """
        Plans and persists the transfers that zero out the group's debts.

        Steps, in one transaction with the group row locked:
          1. cancel still-pending settlements from an earlier plan
          2. compute live balances (completed settlements only)
          3. plan transfers; ImbalancedLedger aborts everything
          4. write all transfers as pending in one atomic insert

        Returns:
            (settlements, warnings). An empty list comes with a
            NOTHING_TO_SETTLE warning.
        """
        warnings: list[dict] = []
        with self.store.transaction():
            self._get_group_or_404(group_id, for_update=True)
            self._require_member(group_id, caller_id)

            superseded = self.store.read_settlements(group_id, SettlementStatus.PENDING)
            for stale in superseded:
                self.store.update_settlement_status(stale, SettlementStatus.CANCELLED)

            member_ids = [m.user_id for m in self.store.read_members(group_id)]
            plan = plan_settlements(self._live_balances(group_id, member_ids), group_id)

            if plan.nothing_to_settle:
                warnings.append({
                    "code": WarningCode.NOTHING_TO_SETTLE,
                    "message": f"All balances in group {group_id} are already settled.",
                })
                settlements: list[Settlement] = []
            else:
                settlements = self.store.insert_settlements_atomic([
                    Settlement(
                        group_id=group_id,
                        from_user_id=t.from_user_id,
                        to_user_id=t.to_user_id,
                        amount=t.amount,
                        status=SettlementStatus.PENDING,
                    )
                    for t in plan
                ])

        logger.info(
            "Group %s settled by %s: %d transfers totalling %s, %d superseded",
            group_id, caller_id, len(settlements), plan.total, len(superseded),
        )
        if settlements:
            notify(
                self.notifier, "group_settled",
                group_id=group_id,
                settlement_ids=[s.id for s in settlements],
                settled_by=caller_id,
            )
        return settlements, warnings

    def list_settlements(
            self,
            group_id: int,
            caller_id: str,
            status: SettlementStatus | None = None,
    ) -> list[Settlement]:
        with self.store.transaction():
            self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)
            return self.store.read_settlements(group_id, status)

    def _transition_settlement(
            self,
            settlement_id: int,
            caller_id: str,
            target: SettlementStatus,
    ) -> Settlement:
        with self.store.transaction():
            settlement = self._get_settlement_or_404(settlement_id)
            self._require_member(settlement.group_id, caller_id)

            if caller_id not in (settlement.from_user_id, settlement.to_user_id):
                raise Unauthorized("Only the payer or the recipient may update a settlement.")

            if settlement.status == target:
                return settlement
            if settlement.status != SettlementStatus.PENDING:
                raise AppError(
                    ErrorCode.INVALID_SETTLEMENT_STATE,
                    f"Settlement {settlement_id} is {settlement.status.value} "
                    f"and cannot become {target.value}.",
                    409,
                )
            self.store.update_settlement_status(settlement, target)

        logger.info("Settlement %s marked %s by %s", settlement_id, target.value, caller_id)
        return settlement

    def complete_settlement(self, settlement_id: int, caller_id: str) -> Settlement:
        """pending → completed. From this point the transfer moves balances."""
        return self._transition_settlement(settlement_id, caller_id, SettlementStatus.COMPLETED)

    def cancel_settlement(self, settlement_id: int, caller_id: str) -> Settlement:
        """pending → cancelled."""
        return self._transition_settlement(settlement_id, caller_id, SettlementStatus.CANCELLED)

    # ── Read models ────────────────────────────────────────────────────────

    def get_balances(self, group_id: int, caller_id: str) -> dict:
        """
        Per-member balances plus the plan settle_group() would produce now.

        The suggested transfers are NOT persisted.
        """
        with self.store.transaction():
            group = self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)
            member_ids = [m.user_id for m in self.store.read_members(group_id)]
            balances = self._live_balances(group_id, member_ids)
            plan = plan_settlements(balances, group_id)

        return {
            "group_id": group_id,
            "currency": group.currency,
            "balances": [
                {"user_id": uid, "balance": bal}
                for uid, bal in sorted(rounded_balances(balances).items())
            ],
            "balance_sum": round_balance(sum(balances.values(), ZERO)),
            "suggested_settlements": [
                {"from_user_id": t.from_user_id, "to_user_id": t.to_user_id, "amount": t.amount}
                for t in plan
            ],
        }

    def get_analytics(self, group_id: int, caller_id: str) -> dict:
        """
        Read-only summary: totals, per-member balances and gross paid/owed,
        per-category totals.
        """
        with self.store.transaction():
            group = self._get_group_or_404(group_id)
            self._require_member(group_id, caller_id)
            member_ids = [m.user_id for m in self.store.read_members(group_id)]
            expenses = self.store.read_expenses(group_id)
            settlements = self.store.read_settlements(group_id)

        balances = compute_balances(expenses, settlements, member_ids)

        by_category: dict[str, Decimal] = {}
        for expense in expenses:
            by_category[expense.category] = by_category.get(expense.category, ZERO) + expense.amount

        def _settlement_total(status: SettlementStatus) -> Decimal:
            return sum((s.amount for s in settlements if s.status == status), ZERO)

        return {
            "group_id": group_id,
            "currency": group.currency,
            "expense_count": len(expenses),
            "total_expenses": sum((e.amount for e in expenses), ZERO),
            "total_settlements": _settlement_total(SettlementStatus.COMPLETED),
            "pending_settlements": _settlement_total(SettlementStatus.PENDING),
            "member_balances": rounded_balances(balances),
            "member_totals": member_totals(expenses),
            "category_totals": dict(sorted(by_category.items())),
        }
