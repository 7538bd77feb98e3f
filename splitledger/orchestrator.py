"""
Main Orchestrator for Split Ledger

This module ties the computation core to storage and defines the
end-to-end flows for:
1. Groups (create, membership, delete)
2. Expenses (validate -> split -> save)
3. Settlements (validate -> save)
4. Balances (load one snapshot -> aggregate)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Validation and split allocation finish before any storage call,
  so a rejected write never leaves partial state behind
- Every flow receives an explicit LedgerContext; there is no ambient user
- Every write is audited
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, NamedTuple, Optional, TypeVar

import structlog

from splitledger.audit import AuditLogger
from splitledger.config import get_settings
from splitledger.core.allocation import split_shares_by_member
from splitledger.core.balances import summarize_groups, summarize_ledger
from splitledger.core.errors import PermissionDeniedError, ValidationError
from splitledger.core.money import quantize_amount
from splitledger.models.audit import AuditEventType
from splitledger.models.ledger import (
    Expense,
    ExpenseDraft,
    ExpenseSplit,
    Group,
    GroupBalances,
    GroupMember,
    LedgerContext,
    LedgerSummary,
    MemberRole,
    Settlement,
    SettlementDraft,
    SplitMethod,
)
from splitledger.services.backup import BackupService
from splitledger.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from splitledger.validation import LedgerValidator, ensure_valid


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _LedgerFlow:
    """Shared plumbing: storage access, membership checks, auditing."""
    
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
    
    async def _call(
        self,
        operation: str,
        pending: Awaitable[T],
        context: LedgerContext,
    ) -> T:
        """Await a storage call, auditing storage failures before re-raising."""
        try:
            return await pending
        except StorageError as e:
            if isinstance(e, NotFoundError):
                raise
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                correlation_id=context.correlation_id,
            )
            raise
    
    async def _load_group(self, group_id: str, context: LedgerContext) -> Group:
        group = await self._call("get_group", self._storage.get_group(group_id), context)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return group
    
    async def _require_member(self, group_id: str, context: LedgerContext) -> Group:
        group = await self._load_group(group_id, context)
        if not group.has_member(context.user_id):
            await self._deny("access group", "group", group.id, context)
        return group
    
    async def _require_owner(self, group_id: str, context: LedgerContext) -> Group:
        group = await self._load_group(group_id, context)
        if group.owner_id != context.user_id:
            await self._deny("manage group", "group", group.id, context)
        return group
    
    async def _deny(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        context: LedgerContext,
    ) -> None:
        await self._audit_logger.log_permission_denied(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            context=context,
        )
        raise PermissionDeniedError(
            f"User {context.user_id} may not {action} {entity_type} {entity_id}"
        )


class GroupFlow(_LedgerFlow):
    """
    Orchestrates group lifecycle and membership.
    
    The creator becomes the owner and gets an explicit owner
    membership row. Only the owner manages membership.
    """
    
    async def create_group(
        self,
        context: LedgerContext,
        name: str,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        member_ids: Optional[list[str]] = None,
    ) -> Group:
        """Create a group owned by the caller."""
        unique_members = []
        for member_id in member_ids or []:
            if member_id and member_id != context.user_id and member_id not in unique_members:
                unique_members.append(member_id)
        
        group = Group(
            owner_id=context.user_id,
            name=name,
            description=description,
            currency=currency or get_settings().ledger.default_currency,
            members=[GroupMember(member_id=context.user_id, role=MemberRole.OWNER)]
            + [GroupMember(member_id=m) for m in unique_members],
        )
        
        await self._call("save_group", self._storage.save_group(group), context)
        await self._audit_logger.log_group_created(group, context)
        for member_id in unique_members:
            await self._audit_logger.log_membership_changed(group.id, member_id, True, context)
        
        return group
    
    async def list_groups(self, context: LedgerContext) -> list[Group]:
        """Groups the caller belongs to, newest first."""
        return await self._call(
            "list_groups",
            self._storage.list_groups_for_member(context.user_id),
            context,
        )
    
    async def get_group(self, context: LedgerContext, group_id: str) -> Group:
        return await self._require_member(group_id, context)
    
    async def update_group(
        self,
        context: LedgerContext,
        group_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Group:
        """
        Change a group's name, description or currency. Owner only.
        
        Fields left as None keep their value; pass an empty description
        to clear it.
        
        Raises:
            ValidationError: If the currency changes while the group already
                             has expenses or settlements recorded in the old one
        """
        group = await self._require_owner(group_id, context)
        
        changes: dict[str, Any] = {}
        if name is not None and name.strip() != group.name:
            changes["name"] = name
        if description is not None and (description.strip() or None) != group.description:
            changes["description"] = description.strip() or None
        if currency is not None and currency.strip().upper() != group.currency:
            changes["currency"] = currency
        if not changes:
            return group
        
        if "currency" in changes:
            expenses = await self._call(
                "list_expenses", self._storage.list_expenses([group.id]), context
            )
            settlements = await self._call(
                "list_settlements", self._storage.list_settlements([group.id], limit=1), context
            )
            if expenses or settlements:
                raise ValidationError(
                    "The currency cannot change once expenses or settlements are recorded"
                )
        
        updated = Group.model_validate({
            **group.model_dump(),
            **changes,
            "updated_at": datetime.now(timezone.utc),
        })
        await self._call("save_group", self._storage.save_group(updated), context)
        await self._audit_logger.log_group_updated(
            updated.id,
            {field: getattr(updated, field) for field in changes},
            context,
        )
        return updated
    
    async def add_member(
        self,
        context: LedgerContext,
        group_id: str,
        member_id: str,
        role: MemberRole = MemberRole.MEMBER,
    ) -> Group:
        """
        Add a member to a group.
        
        Raises:
            DuplicateError: If the member is already in the group
            ValidationError: If role is OWNER; a group has exactly one owner
        """
        group = await self._require_owner(group_id, context)
        if role == MemberRole.OWNER:
            raise ValidationError("A group has exactly one owner")
        if group.has_member(member_id):
            raise DuplicateError(f"{member_id} is already a member of {group.name}")
        
        group.members.append(GroupMember(member_id=member_id, role=role))
        group.updated_at = datetime.now(timezone.utc)
        await self._call("save_group", self._storage.save_group(group), context)
        await self._audit_logger.log_membership_changed(group.id, member_id, True, context)
        return group
    
    async def remove_member(
        self,
        context: LedgerContext,
        group_id: str,
        member_id: str,
    ) -> Group:
        """
        Remove a member from a group.
        
        Their expenses and settlements stay, so they keep appearing
        in the group's balances.
        """
        group = await self._require_owner(group_id, context)
        if member_id == group.owner_id:
            raise ValidationError("The group owner cannot be removed")
        if not any(m.member_id == member_id for m in group.members):
            raise NotFoundError(f"{member_id} is not a member of {group.name}")
        
        group.members = [m for m in group.members if m.member_id != member_id]
        group.updated_at = datetime.now(timezone.utc)
        await self._call("save_group", self._storage.save_group(group), context)
        await self._audit_logger.log_membership_changed(group.id, member_id, False, context)
        return group
    
    async def delete_group(self, context: LedgerContext, group_id: str) -> bool:
        """Delete a group and everything recorded in it. Owner only."""
        await self._require_owner(group_id, context)
        deleted = await self._call("delete_group", self._storage.delete_group(group_id), context)
        if deleted:
            await self._audit_logger.log_group_deleted(group_id, context)
        return deleted


class ExpenseFlow(_LedgerFlow):
    """
    Orchestrates expense writes.
    
    Flow:
    1. Load group, check the caller belongs to it
    2. Validate the draft (two stages)
    3. Compute splits (allocator for EQUAL, given shares for CUSTOM)
    4. Save
    
    Steps 1-3 never touch storage for writing.
    """
    
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        super().__init__(storage, audit_logger)
        self._validator = validator or LedgerValidator()
    
    def _build_splits(self, draft: ExpenseDraft) -> list[ExpenseSplit]:
        if draft.split_method == SplitMethod.EQUAL:
            splits = split_shares_by_member(draft.amount, draft.participant_ids)
        else:
            splits = [
                ExpenseSplit(
                    member_id=member_id,
                    share=quantize_amount(draft.custom_shares[member_id]),
                )
                for member_id in draft.participant_ids
            ]
        
        if not splits:
            raise ValidationError("Select at least one participant")
        return splits
    
    async def _validated(
        self,
        draft: ExpenseDraft,
        group: Group,
        context: LedgerContext,
    ) -> list[ExpenseSplit]:
        result = self._validator.validate_expense(draft, group)
        if result.has_errors:
            await self._audit_logger.log_validation_failed(result, context)
        ensure_valid(result)
        
        if result.warnings:
            logger.info("expense_warnings", group_id=group.id, warnings=result.warnings)
        
        return self._build_splits(draft)
    
    async def create_expense(self, context: LedgerContext, draft: ExpenseDraft) -> Expense:
        """
        Validate, split and save a new expense.
        
        Raises:
            ValidationError: If the draft is rejected (nothing is saved)
            PermissionDeniedError: If the caller is not in the group
        """
        group = await self._require_member(draft.group_id, context)
        splits = await self._validated(draft, group, context)
        
        expense = Expense(
            group_id=group.id,
            payer_id=draft.payer_id,
            description=draft.description,
            amount=quantize_amount(draft.amount),
            expense_date=draft.expense_date,
            notes=draft.notes,
            splits=splits,
        )
        
        await self._call("save_expense", self._storage.save_expense(expense), context)
        await self._audit_logger.log_expense(
            AuditEventType.EXPENSE_CREATED, expense, context, draft.split_method.value
        )
        return expense
    
    async def update_expense(
        self,
        context: LedgerContext,
        expense_id: str,
        draft: ExpenseDraft,
    ) -> Expense:
        """
        Replace an expense and all of its splits.
        
        The expense may move to another group the caller belongs to.
        """
        existing = await self._call("get_expense", self._storage.get_expense(expense_id), context)
        if existing is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        await self._require_member(existing.group_id, context)
        
        group = await self._require_member(draft.group_id, context)
        splits = await self._validated(draft, group, context)
        
        expense = Expense(
            id=existing.id,
            group_id=group.id,
            payer_id=draft.payer_id,
            description=draft.description,
            amount=quantize_amount(draft.amount),
            expense_date=draft.expense_date,
            notes=draft.notes,
            splits=splits,
            created_at=existing.created_at,
            updated_at=datetime.now(timezone.utc),
        )
        
        await self._call("save_expense", self._storage.save_expense(expense), context)
        await self._audit_logger.log_expense(
            AuditEventType.EXPENSE_UPDATED, expense, context, draft.split_method.value
        )
        return expense
    
    async def delete_expense(self, context: LedgerContext, expense_id: str) -> bool:
        existing = await self._call("get_expense", self._storage.get_expense(expense_id), context)
        if existing is None:
            return False
        await self._require_member(existing.group_id, context)
        
        deleted = await self._call(
            "delete_expense", self._storage.delete_expense(expense_id), context
        )
        if deleted:
            await self._audit_logger.log_expense(AuditEventType.EXPENSE_DELETED, existing, context)
        return deleted
    
    async def list_expenses(
        self,
        context: LedgerContext,
        group_id: Optional[str] = None,
    ) -> list[Expense]:
        """Expenses visible to the caller, newest first, optionally one group only."""
        if group_id:
            group_ids = [(await self._require_member(group_id, context)).id]
        else:
            groups = await self._call(
                "list_groups", self._storage.list_groups_for_member(context.user_id), context
            )
            group_ids = [g.id for g in groups]
        return await self._call("list_expenses", self._storage.list_expenses(group_ids), context)


class SettlementFlow(_LedgerFlow):
    """Orchestrates settlement writes."""
    
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        super().__init__(storage, audit_logger)
        self._validator = validator or LedgerValidator()
    
    async def _check(
        self,
        draft: SettlementDraft,
        group: Group,
        context: LedgerContext,
    ) -> None:
        result = self._validator.validate_settlement(draft, group)
        if result.has_errors:
            await self._audit_logger.log_validation_failed(result, context)
        ensure_valid(result)
    
    async def create_settlement(
        self,
        context: LedgerContext,
        draft: SettlementDraft,
    ) -> Settlement:
        """
        Record a payment between two members.
        
        Raises:
            ValidationError: If amount is not positive or both members are the same
        """
        group = await self._require_member(draft.group_id, context)
        await self._check(draft, group, context)
        
        settlement = Settlement(
            group_id=group.id,
            from_member_id=draft.from_member_id,
            to_member_id=draft.to_member_id,
            amount=quantize_amount(draft.amount),
            settlement_date=draft.settlement_date or date.today(),
            notes=draft.notes,
        )
        
        await self._call("save_settlement", self._storage.save_settlement(settlement), context)
        await self._audit_logger.log_settlement(
            AuditEventType.SETTLEMENT_CREATED, settlement, context
        )
        return settlement
    
    async def update_settlement(
        self,
        context: LedgerContext,
        settlement_id: str,
        group_id: Optional[str] = None,
        from_member_id: Optional[str] = None,
        to_member_id: Optional[str] = None,
        amount: Optional[Decimal] = None,
        settlement_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Settlement:
        """
        Change some fields of a settlement; fields left as None keep their value.
        
        The merged result is validated as a whole before saving.
        """
        existing = await self._call(
            "get_settlement", self._storage.get_settlement(settlement_id), context
        )
        if existing is None:
            raise NotFoundError(f"Settlement not found: {settlement_id}")
        await self._require_member(existing.group_id, context)
        
        draft = SettlementDraft(
            group_id=group_id or existing.group_id,
            from_member_id=from_member_id or existing.from_member_id,
            to_member_id=to_member_id or existing.to_member_id,
            amount=amount if amount is not None else existing.amount,
            settlement_date=settlement_date or existing.settlement_date,
            notes=notes if notes is not None else existing.notes,
        )
        group = await self._require_member(draft.group_id, context)
        await self._check(draft, group, context)
        
        settlement = Settlement(
            id=existing.id,
            group_id=group.id,
            from_member_id=draft.from_member_id,
            to_member_id=draft.to_member_id,
            amount=quantize_amount(draft.amount),
            settlement_date=draft.settlement_date,
            notes=draft.notes,
            created_at=existing.created_at,
        )
        
        await self._call("save_settlement", self._storage.save_settlement(settlement), context)
        await self._audit_logger.log_settlement(
            AuditEventType.SETTLEMENT_UPDATED, settlement, context
        )
        return settlement
    
    async def delete_settlement(self, context: LedgerContext, settlement_id: str) -> bool:
        existing = await self._call(
            "get_settlement", self._storage.get_settlement(settlement_id), context
        )
        if existing is None:
            return False
        await self._require_member(existing.group_id, context)
        
        deleted = await self._call(
            "delete_settlement", self._storage.delete_settlement(settlement_id), context
        )
        if deleted:
            await self._audit_logger.log_settlement(
                AuditEventType.SETTLEMENT_DELETED, existing, context
            )
        return deleted
    
    async def list_settlements(
        self,
        context: LedgerContext,
        group_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Settlement]:
        if group_id:
            group_ids = [(await self._require_member(group_id, context)).id]
        else:
            groups = await self._call(
                "list_groups", self._storage.list_groups_for_member(context.user_id), context
            )
            group_ids = [g.id for g in groups]
        return await self._call(
            "list_settlements", self._storage.list_settlements(group_ids, limit), context
        )


class BalanceFlow(_LedgerFlow):
    """
    Loads one snapshot and runs the aggregator over it.
    
    Reads are taken back to back; a write landing between them is an
    accepted staleness risk, not something this flow guards against.
    """
    
    async def dashboard(self, context: LedgerContext) -> LedgerSummary:
        """Everything the caller's dashboard shows."""
        groups = await self._call(
            "list_groups", self._storage.list_groups_for_member(context.user_id), context
        )
        group_ids = [g.id for g in groups]
        expenses = await self._call("list_expenses", self._storage.list_expenses(group_ids), context)
        settlements = await self._call(
            "list_settlements", self._storage.list_settlements(group_ids), context
        )
        
        summary = summarize_ledger(context, groups, expenses, settlements)
        await self._audit_logger.log_balances_computed(summary, context)
        return summary
    
    async def group_balances(self, context: LedgerContext, group_id: str) -> GroupBalances:
        """Balances of every member in one group."""
        group = await self._require_member(group_id, context)
        expenses = await self._call("list_expenses", self._storage.list_expenses([group.id]), context)
        settlements = await self._call(
            "list_settlements", self._storage.list_settlements([group.id]), context
        )
        
        return summarize_groups([group], expenses, settlements)[0]


class AppComponents(NamedTuple):
    groups: GroupFlow
    expenses: ExpenseFlow
    settlements: SettlementFlow
    balances: BalanceFlow
    backup: BackupService
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.
    
    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to run
                    against in-memory storage.
    """
    sheets_client = None
    ledger_storage: LedgerStorageInterface
    
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())
    
    validator = LedgerValidator()
    
    return AppComponents(
        groups=GroupFlow(ledger_storage, audit_logger),
        expenses=ExpenseFlow(ledger_storage, audit_logger, validator),
        settlements=SettlementFlow(ledger_storage, audit_logger, validator),
        balances=BalanceFlow(ledger_storage, audit_logger),
        backup=BackupService(ledger_storage, audit_logger, validator),
        sheets_client=sheets_client,
    )
