"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the ledger logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Writes are upserts keyed by id, which is also what backup restores need.
Reads return snapshots; mutating a returned model never changes storage.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, Group, Settlement


class LedgerStorageInterface(ABC):
    """
    Abstract interface for group, expense and settlement storage.
    
    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """
    
    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------
    
    @abstractmethod
    async def save_group(self, group: Group) -> bool:
        """
        Insert or replace a group (members included).
        
        Returns:
            True if saved successfully
            
        Raises:
            StorageError: If save fails
        """
        pass
    
    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        """Retrieve a group by id, or None."""
        pass
    
    @abstractmethod
    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group together with its expenses and settlements.
        
        Returns:
            True if a group was deleted
        """
        pass
    
    @abstractmethod
    async def list_groups_for_member(self, member_id: str) -> list[Group]:
        """
        List groups the member belongs to (owners included), newest first.
        """
        pass
    
    @abstractmethod
    async def list_groups_owned_by(self, owner_id: str) -> list[Group]:
        """List groups the user owns, oldest first."""
        pass
    
    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------
    
    @abstractmethod
    async def save_expense(self, expense: Expense) -> bool:
        """
        Insert or replace an expense. Splits are replaced wholesale.
        
        Raises:
            StorageError: If save fails
        """
        pass
    
    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        """Retrieve an expense by id, or None."""
        pass
    
    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        """Delete an expense. Returns True if one was deleted."""
        pass
    
    @abstractmethod
    async def list_expenses(self, group_ids: Iterable[str]) -> list[Expense]:
        """List expenses in the given groups, newest expense_date first."""
        pass
    
    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------
    
    @abstractmethod
    async def save_settlement(self, settlement: Settlement) -> bool:
        """Insert or replace a settlement."""
        pass
    
    @abstractmethod
    async def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        """Retrieve a settlement by id, or None."""
        pass
    
    @abstractmethod
    async def delete_settlement(self, settlement_id: str) -> bool:
        """Delete a settlement. Returns True if one was deleted."""
        pass
    
    @abstractmethod
    async def list_settlements(
        self,
        group_ids: Iterable[str],
        limit: Optional[int] = None,
    ) -> list[Settlement]:
        """List settlements in the given groups, newest settlement_date first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.
    
    Audit logs are append-only - we never delete or modify them.
    """
    
    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.
        
        Returns:
            True if logged successfully
        """
        pass
    
    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass
    
    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass
    
    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
