"""
Data Models Package

This package contains all Pydantic models used in Split Ledger.
All data flowing through the system must conform to these schemas.
"""

from splitledger.models.ledger import (
    CurrencyBalance,
    Expense,
    ExpenseDraft,
    ExpenseSplit,
    Group,
    GroupBalances,
    GroupMember,
    LedgerContext,
    LedgerSummary,
    MemberBalance,
    MemberRole,
    NetStatus,
    NetTone,
    Settlement,
    SettlementDraft,
    SplitMethod,
    UserGroupBalance,
    ValidationIssue,
    ValidationResult,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.backup import (
    BackupPayload,
    ExportedGroup,
    ImportResult,
    SkippedGroup,
)

__all__ = [
    # Ledger models
    "CurrencyBalance",
    "Expense",
    "ExpenseDraft",
    "ExpenseSplit",
    "Group",
    "GroupBalances",
    "GroupMember",
    "LedgerContext",
    "LedgerSummary",
    "MemberBalance",
    "MemberRole",
    "NetStatus",
    "NetTone",
    "Settlement",
    "SettlementDraft",
    "SplitMethod",
    "UserGroupBalance",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Backup models
    "BackupPayload",
    "ExportedGroup",
    "ImportResult",
    "SkippedGroup",
]
