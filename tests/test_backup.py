"""Tests for backup export and import."""

import asyncio
import json
import pytest
from decimal import Decimal

from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.core.errors import ValidationError
from splitledger.models.audit import AuditEventType, AuditSeverity
from splitledger.models.ledger import ExpenseDraft, LedgerContext, SettlementDraft
from splitledger.orchestrator import ExpenseFlow, GroupFlow, SettlementFlow
from splitledger.services.backup import BackupService
from splitledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


def run(coro):
    return asyncio.run(coro)


def ctx(user_id):
    return LedgerContext(user_id=user_id, correlation_id=create_correlation_id())


@pytest.fixture
def source():
    """A store with one group owned by alice and one owned by bob."""
    storage = InMemoryLedgerStorage()
    groups = GroupFlow(storage)
    expenses = ExpenseFlow(storage)
    settlements = SettlementFlow(storage)
    
    flat = run(groups.create_group(ctx("alice"), "Flat", member_ids=["bob"]))
    run(groups.create_group(ctx("bob"), "Band", member_ids=["alice"]))
    run(expenses.create_expense(ctx("alice"), ExpenseDraft(
        group_id=flat.id,
        description="Rent",
        amount=Decimal("1000.01"),
        payer_id="alice",
        participant_ids=["alice", "bob"],
    )))
    run(settlements.create_settlement(ctx("bob"), SettlementDraft(
        group_id=flat.id,
        from_member_id="bob",
        to_member_id="alice",
        amount=Decimal("500.00"),
    )))
    return storage, flat


def restore_target():
    storage = InMemoryLedgerStorage()
    audit_storage = InMemoryAuditStorage()
    return storage, audit_storage, BackupService(storage, AuditLogger(audit_storage))


class TestExport:
    """Tests for export_user_data."""
    
    def test_exports_owned_groups_only(self, source):
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice")))
        
        assert payload.version == 1
        assert [g.group.id for g in payload.groups] == [flat.id]
        exported = payload.groups[0]
        assert len(exported.expenses) == 1
        assert len(exported.expenses[0]["splits"]) == 2
        assert len(exported.settlements) == 1
    
    def test_export_json(self, source):
        storage, flat = source
        text = run(BackupService(storage).export_json(ctx("alice")))
        data = json.loads(text)
        assert data["groups"][0]["group"]["name"] == "Flat"


class TestImport:
    """Tests for import_user_data."""
    
    def test_round_trip(self, source):
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice")))
        
        target, _, service = restore_target()
        result = run(service.import_user_data(ctx("alice"), payload))
        
        assert result.imported == 1
        assert result.errors == []
        restored = run(target.list_expenses([flat.id]))
        assert restored[0].amount == Decimal("1000.01")
        assert [s.share for s in restored[0].splits] == [Decimal("500.01"), Decimal("500.00")]
        assert len(run(target.list_settlements([flat.id]))) == 1
    
    def test_accepts_json_text(self, source):
        storage, _ = source
        text = run(BackupService(storage).export_json(ctx("alice")))
        
        _, _, service = restore_target()
        result = run(service.import_user_data(ctx("alice"), text))
        assert result.imported == 1
    
    def test_foreign_groups_skipped(self, source):
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice")))
        
        target, _, service = restore_target()
        result = run(service.import_user_data(ctx("bob"), payload))
        
        assert result.imported == 0
        assert result.skipped[0].group_id == flat.id
        assert result.skipped[0].reason == "You can only restore groups you own."
        assert run(target.get_group(flat.id)) is None
    
    def test_bad_records_reported_individually(self, source):
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice"))).model_dump(mode="json")
        good = payload["groups"][0]["expenses"][0]
        
        bad_split = dict(good, id="bad-split", splits=[{"member_id": "alice", "share": "1.00"}])
        no_amount = {k: v for k, v in good.items() if k != "amount"}
        no_amount["id"] = "no-amount"
        payload["groups"][0]["expenses"] += [bad_split, no_amount]
        payload["groups"][0]["settlements"][0]["to_member_id"] = "bob"
        
        target, audit_storage, service = restore_target()
        result = run(service.import_user_data(ctx("alice"), payload))
        
        assert result.imported == 1
        assert len(result.errors) == 3
        assert any(e.startswith("Expense bad-split in \"Flat\"") for e in result.errors)
        assert any(e.startswith("Expense no-amount in \"Flat\"") for e in result.errors)
        assert len(run(target.list_expenses([flat.id]))) == 1
        assert run(target.list_settlements([flat.id])) == []
        
        events = run(audit_storage.get_recent_events())
        imported = [e for e in events if e.event_type == AuditEventType.BACKUP_IMPORTED]
        assert imported[0].severity == AuditSeverity.WARNING
    
    def test_stored_group_of_another_owner_not_overwritten(self, source):
        """A payload claiming someone else's group id cannot take it over."""
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice"))).model_dump(mode="json")
        payload["groups"][0]["group"]["owner_id"] = "mallory"
        payload["groups"][0]["group"]["name"] = "Taken"
        
        result = run(BackupService(storage).import_user_data(ctx("mallory"), payload))
        
        assert result.imported == 0
        assert result.skipped[0].reason == "You can only restore groups you own."
        stored = run(storage.get_group(flat.id))
        assert stored.owner_id == "alice"
        assert stored.name == "Flat"
    
    def test_records_of_other_groups_not_overwritten(self, source):
        """Expense and settlement ids already used elsewhere are reported, not moved."""
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice"))).model_dump(mode="json")
        expense_row = payload["groups"][0]["expenses"][0]
        settlement_row = payload["groups"][0]["settlements"][0]
        
        own = run(GroupFlow(storage).create_group(ctx("mallory"), "Mine", member_ids=["bob"]))
        forged = {
            "version": payload["version"],
            "groups": [{
                "group": own.model_dump(mode="json"),
                "expenses": [dict(expense_row, group_id=own.id, description="Moved")],
                "settlements": [dict(settlement_row, group_id=own.id)],
            }],
        }
        
        result = run(BackupService(storage).import_user_data(ctx("mallory"), forged))
        
        assert result.imported == 1
        assert len(result.errors) == 2
        assert all("belongs to another group" in e for e in result.errors)
        assert run(storage.get_expense(expense_row["id"])).group_id == flat.id
        assert run(storage.get_settlement(settlement_row["id"])).group_id == flat.id
        assert run(storage.list_expenses([own.id])) == []
    
    def test_restoring_own_group_over_itself(self, source):
        storage, flat = source
        payload = run(BackupService(storage).export_user_data(ctx("alice")))
        
        result = run(BackupService(storage).import_user_data(ctx("alice"), payload))
        
        assert result.imported == 1
        assert result.errors == []
        assert len(run(storage.list_expenses([flat.id]))) == 1
    
    def test_wrong_version_rejected(self, source):
        storage, _ = source
        payload = run(BackupService(storage).export_user_data(ctx("alice")))
        payload.version = 99
        
        _, _, service = restore_target()
        with pytest.raises(ValidationError):
            run(service.import_user_data(ctx("alice"), payload))
    
    def test_unreadable_payload_rejected(self):
        _, _, service = restore_target()
        with pytest.raises(ValidationError):
            run(service.import_user_data(ctx("alice"), "{not json"))
