"""
Audit Logger

DESIGN DECISION: Every ledger write is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability
3. Members can see who changed what

The audit logger:
- Is async to match the storage interface
- Gracefully handles storage failures (a lost audit row never blocks a write)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from splitledger.models.ledger import (
    Expense,
    Group,
    LedgerContext,
    LedgerSummary,
    Settlement,
    ValidationResult,
)
from splitledger.services.storage import AuditStorageInterface


class AuditLogger:
    """
    Central audit logging service.
    
    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and member visibility)
    """
    
    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.
        
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitledger.audit")
    
    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.
        
        Always logs locally. Persists to storage if available.
        
        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()
        
        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)
        
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
        
        return True
    
    async def log_group_created(self, group: Group, context: LedgerContext) -> None:
        await self.log(AuditEventBuilder.group_created(
            group_id=group.id,
            name=group.name,
            currency=group.currency,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_group_updated(
        self,
        group_id: str,
        changes: dict,
        context: LedgerContext,
    ) -> None:
        await self.log(AuditEventBuilder.group_updated(
            group_id=group_id,
            changes=changes,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_group_deleted(self, group_id: str, context: LedgerContext) -> None:
        await self.log(AuditEventBuilder.group_deleted(
            group_id=group_id,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_membership_changed(
        self,
        group_id: str,
        member_id: str,
        added: bool,
        context: LedgerContext,
    ) -> None:
        await self.log(AuditEventBuilder.membership_changed(
            group_id=group_id,
            member_id=member_id,
            added=added,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_expense(
        self,
        event_type: AuditEventType,
        expense: Expense,
        context: LedgerContext,
        split_method: Optional[str] = None,
    ) -> None:
        """Log an expense create, update or delete."""
        await self.log(AuditEventBuilder.expense_written(
            event_type=event_type,
            expense_id=expense.id,
            group_id=expense.group_id,
            amount=str(expense.amount),
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
            split_method=split_method,
        ))
    
    async def log_settlement(
        self,
        event_type: AuditEventType,
        settlement: Settlement,
        context: LedgerContext,
    ) -> None:
        """Log a settlement create, update or delete."""
        await self.log(AuditEventBuilder.settlement_written(
            event_type=event_type,
            settlement_id=settlement.id,
            group_id=settlement.group_id,
            amount=str(settlement.amount),
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_validation_failed(
        self,
        result: ValidationResult,
        context: LedgerContext,
    ) -> None:
        issues = [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in result.issues
            if i.severity == "error"
        ]
        await self.log(AuditEventBuilder.validation_failed(
            subject=result.subject,
            issues=issues,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_permission_denied(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        context: LedgerContext,
    ) -> None:
        await self.log(AuditEventBuilder.permission_denied(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_balances_computed(
        self,
        summary: LedgerSummary,
        context: LedgerContext,
    ) -> None:
        await self.log(AuditEventBuilder.balances_computed(
            group_count=summary.total_groups,
            expense_count=summary.total_expenses,
            currencies=[c.currency for c in summary.currencies],
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_backup_exported(self, group_count: int, context: LedgerContext) -> None:
        await self.log(AuditEventBuilder.backup_exported(
            group_count=group_count,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_backup_imported(
        self,
        imported: int,
        skipped: int,
        errors: list[str],
        context: LedgerContext,
    ) -> None:
        await self.log(AuditEventBuilder.backup_imported(
            imported=imported,
            skipped=skipped,
            errors=errors,
            actor_id=context.user_id,
            correlation_id=context.correlation_id,
        ))
    
    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))
    
    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.
    
    Use this at the start of a new user action (e.g., a backup import).
    Pass it through all subsequent operations.
    """
    return uuid4()
