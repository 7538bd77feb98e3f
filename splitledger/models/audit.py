"""
Audit Models for Split Ledger

Every ledger write is logged for audit purposes.
This provides:
1. Complete traceability of who changed which balance
2. Debugging information when a balance looks wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    
    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    
    # Settlements
    SETTLEMENT_CREATED = "settlement_created"
    SETTLEMENT_UPDATED = "settlement_updated"
    SETTLEMENT_DELETED = "settlement_deleted"
    
    # Validation
    VALIDATION_FAILED = "validation_failed"
    PERMISSION_DENIED = "permission_denied"
    
    # Reads
    BALANCES_COMPUTED = "balances_computed"
    
    # Backup
    BACKUP_EXPORTED = "backup_exported"
    BACKUP_IMPORTED = "backup_imported"
    
    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    
    This is the core unit of our audit trail.
    Every ledger write creates one of these.
    """
    
    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )
    
    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )
    
    # Who did it
    actor_id: Optional[str] = Field(
        default=None,
        description="Id of the user who triggered the event"
    )
    
    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'expense', 'settlement')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    
    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one import)"
    )
    
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    
    # Error information (if applicable)
    error_message: Optional[str] = None
    
    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }
    
    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.
        
        Returns columns in order:
        [event_id, timestamp, event_type, severity, actor_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.actor_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.
    
    Usage:
        event = AuditEventBuilder.expense_created(expense_id, group_id, ...)
        event = AuditEventBuilder.validation_failed("settlement", issues, ...)
    """
    
    @staticmethod
    def group_created(
        group_id: str,
        name: str,
        currency: str,
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group created: {name} ({currency})",
            details={
                "name": name,
                "currency": currency,
            },
        )
    
    @staticmethod
    def group_updated(
        group_id: str,
        changes: dict[str, Any],
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_UPDATED,
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group updated: {', '.join(sorted(changes))}",
            details={
                "changes": changes,
            },
        )
    
    @staticmethod
    def group_deleted(
        group_id: str,
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Group deleted",
        )
    
    @staticmethod
    def membership_changed(
        group_id: str,
        member_id: str,
        added: bool,
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.MEMBER_ADDED if added else AuditEventType.MEMBER_REMOVED
            ),
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Member {'added' if added else 'removed'}: {member_id}",
            details={
                "member_id": member_id,
            },
        )
    
    @staticmethod
    def expense_written(
        event_type: AuditEventType,
        expense_id: str,
        group_id: str,
        amount: str,
        actor_id: str,
        correlation_id: UUID,
        split_method: Optional[str] = None,
    ) -> AuditEvent:
        action = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense {action}: {amount}",
            details={
                "group_id": group_id,
                "amount": amount,
                "split_method": split_method,
            },
        )
    
    @staticmethod
    def settlement_written(
        event_type: AuditEventType,
        settlement_id: str,
        group_id: str,
        amount: str,
        actor_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        action = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            entity_type="settlement",
            entity_id=settlement_id,
            correlation_id=correlation_id,
            description=f"Settlement {action}: {amount}",
            details={
                "group_id": group_id,
                "amount": amount,
            },
        )
    
    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type=subject,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )
    
    @staticmethod
    def permission_denied(
        action: str,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Permission denied: {action}",
            details={
                "action": action,
            },
        )
    
    @staticmethod
    def balances_computed(
        group_count: int,
        expense_count: int,
        currencies: list[str],
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_COMPUTED,
            severity=AuditSeverity.DEBUG,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Balances computed over {group_count} groups",
            details={
                "group_count": group_count,
                "expense_count": expense_count,
                "currencies": currencies,
            },
        )
    
    @staticmethod
    def backup_exported(
        group_count: int,
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            actor_id=actor_id,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Backup exported with {group_count} groups",
            details={
                "group_count": group_count,
            },
        )
    
    @staticmethod
    def backup_imported(
        imported: int,
        skipped: int,
        errors: list[str],
        actor_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            actor_id=actor_id,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Backup imported: {imported} groups restored, {skipped} skipped",
            details={
                "imported": imported,
                "skipped": skipped,
                "errors": errors,
            },
        )
    
    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
    
    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
