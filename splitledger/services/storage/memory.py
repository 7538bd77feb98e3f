"""
In-Memory Storage

Dictionary-backed implementations of the storage interfaces.
Used by the test suite and for running the flows without a backend.

Every read and write goes through model_copy(deep=True), so callers
can never reach into stored state.
"""

from typing import Iterable, Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, Group, Settlement
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage held in plain dicts keyed by id."""
    
    def __init__(self):
        self._groups: dict[str, Group] = {}
        self._expenses: dict[str, Expense] = {}
        self._settlements: dict[str, Settlement] = {}
    
    async def save_group(self, group: Group) -> bool:
        self._groups[group.id] = group.model_copy(deep=True)
        return True
    
    async def get_group(self, group_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None
    
    async def delete_group(self, group_id: str) -> bool:
        if self._groups.pop(group_id, None) is None:
            return False
        self._expenses = {
            k: v for k, v in self._expenses.items() if v.group_id != group_id
        }
        self._settlements = {
            k: v for k, v in self._settlements.items() if v.group_id != group_id
        }
        return True
    
    async def list_groups_for_member(self, member_id: str) -> list[Group]:
        groups = [g for g in self._groups.values() if g.has_member(member_id)]
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return [g.model_copy(deep=True) for g in groups]
    
    async def list_groups_owned_by(self, owner_id: str) -> list[Group]:
        groups = [g for g in self._groups.values() if g.owner_id == owner_id]
        groups.sort(key=lambda g: g.created_at)
        return [g.model_copy(deep=True) for g in groups]
    
    async def save_expense(self, expense: Expense) -> bool:
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return True
    
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None
    
    async def delete_expense(self, expense_id: str) -> bool:
        return self._expenses.pop(expense_id, None) is not None
    
    async def list_expenses(self, group_ids: Iterable[str]) -> list[Expense]:
        wanted = set(group_ids)
        expenses = [e for e in self._expenses.values() if e.group_id in wanted]
        expenses.sort(key=lambda e: e.expense_date, reverse=True)
        return [e.model_copy(deep=True) for e in expenses]
    
    async def save_settlement(self, settlement: Settlement) -> bool:
        self._settlements[settlement.id] = settlement.model_copy(deep=True)
        return True
    
    async def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        settlement = self._settlements.get(settlement_id)
        return settlement.model_copy(deep=True) if settlement else None
    
    async def delete_settlement(self, settlement_id: str) -> bool:
        return self._settlements.pop(settlement_id, None) is not None
    
    async def list_settlements(
        self,
        group_ids: Iterable[str],
        limit: Optional[int] = None,
    ) -> list[Settlement]:
        wanted = set(group_ids)
        settlements = [s for s in self._settlements.values() if s.group_id in wanted]
        settlements.sort(key=lambda s: s.settlement_date, reverse=True)
        if limit is not None:
            settlements = settlements[:limit]
        return [s.model_copy(deep=True) for s in settlements]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""
    
    def __init__(self):
        self._events: list[AuditEvent] = []
    
    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True
    
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)
    
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)
    
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
