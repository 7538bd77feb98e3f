"""
Backup Export / Import

Exports every group the caller owns, with all expenses (splits inline)
and settlements, as one JSON document; imports such a document back.

DESIGN DECISION: Import is best-effort per record.
- Groups the caller does not own, by the payload or by what is
  already stored under that id, are skipped, never overwritten
- An expense or settlement id already used in another group is
  reported, never moved
- A bad expense or settlement is reported and the rest still restore
- Every restored expense is re-validated, since its shares were not
  produced by this process
"""

from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from splitledger.audit import AuditLogger
from splitledger.config import get_settings
from splitledger.core.errors import ValidationError
from splitledger.models.backup import (
    BackupPayload,
    ExportedGroup,
    ImportResult,
    SkippedGroup,
)
from splitledger.models.ledger import Expense, Group, LedgerContext, Settlement
from splitledger.services.storage import LedgerStorageInterface, StorageError
from splitledger.validation import LedgerValidator


logger = structlog.get_logger(__name__)


def _first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


class BackupService:
    """Exports and restores the groups a user owns."""
    
    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator()
    
    async def export_user_data(self, context: LedgerContext) -> BackupPayload:
        """Build a backup of every group the caller owns."""
        groups = await self._storage.list_groups_owned_by(context.user_id)
        group_ids = [g.id for g in groups]
        expenses = await self._storage.list_expenses(group_ids)
        settlements = await self._storage.list_settlements(group_ids)
        
        exported = []
        for group in groups:
            exported.append(ExportedGroup(
                group=group,
                expenses=[
                    e.model_dump(mode="json") for e in expenses if e.group_id == group.id
                ],
                settlements=[
                    s.model_dump(mode="json") for s in settlements if s.group_id == group.id
                ],
            ))
        
        payload = BackupPayload(
            version=get_settings().ledger.backup_version,
            groups=exported,
        )
        
        await self._audit_logger.log_backup_exported(len(exported), context)
        logger.info("backup_exported", user_id=context.user_id, groups=len(exported))
        return payload
    
    async def export_json(self, context: LedgerContext) -> str:
        payload = await self.export_user_data(context)
        return payload.model_dump_json(indent=2)
    
    async def import_user_data(
        self,
        context: LedgerContext,
        payload: Union[BackupPayload, dict[str, Any], str],
    ) -> ImportResult:
        """
        Restore a backup.
        
        Args:
            payload: A BackupPayload, its dict form or its JSON text
        
        Raises:
            ValidationError: If the payload is unreadable or of another version
        """
        payload = self._parse(payload)
        
        expected = get_settings().ledger.backup_version
        if payload.version != expected:
            raise ValidationError(
                f"Unsupported backup version {payload.version}; expected {expected}"
            )
        
        result = ImportResult()
        for exported in payload.groups:
            group = exported.group
            try:
                stored = await self._storage.get_group(group.id)
            except StorageError as e:
                result.errors.append(f"Group \"{group.name}\": {e}")
                continue
            
            # The stored owner wins over whatever the payload claims
            if group.owner_id != context.user_id or (
                stored is not None and stored.owner_id != context.user_id
            ):
                result.skipped.append(SkippedGroup(
                    group_id=group.id,
                    name=group.name,
                    reason="You can only restore groups you own.",
                ))
                continue
            
            try:
                await self._storage.save_group(group)
            except StorageError as e:
                result.errors.append(f"Group \"{group.name}\": {e}")
                continue
            
            for row in exported.expenses:
                error = await self._restore_expense(group, row)
                if error:
                    result.errors.append(error)
            
            for row in exported.settlements:
                error = await self._restore_settlement(group, row)
                if error:
                    result.errors.append(error)
            
            result.imported += 1
        
        await self._audit_logger.log_backup_imported(
            imported=result.imported,
            skipped=len(result.skipped),
            errors=result.errors,
            context=context,
        )
        logger.info(
            "backup_imported",
            user_id=context.user_id,
            imported=result.imported,
            skipped=len(result.skipped),
            errors=len(result.errors),
        )
        return result
    
    def _parse(self, payload: Union[BackupPayload, dict[str, Any], str]) -> BackupPayload:
        if isinstance(payload, BackupPayload):
            return payload
        try:
            if isinstance(payload, str):
                return BackupPayload.model_validate_json(payload)
            return BackupPayload.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Backup file is not readable: {_first_error(e)}") from e
    
    async def _restore_expense(self, group: Group, row: dict[str, Any]) -> Optional[str]:
        label = f"Expense {row.get('id', '?')} in \"{group.name}\""
        try:
            expense = Expense.model_validate(row)
        except PydanticValidationError as e:
            return f"{label}: {_first_error(e)}"
        
        if expense.group_id != group.id:
            return f"{label}: belongs to another group"
        
        try:
            stored = await self._storage.get_expense(expense.id)
        except StorageError as e:
            return f"{label}: {e}"
        if stored is not None and stored.group_id != group.id:
            return f"{label}: belongs to another group"
        
        check = self._validator.validate_expense_record(expense)
        if check.has_errors:
            return f"{label}: " + "; ".join(check.error_messages)
        
        try:
            await self._storage.save_expense(expense)
        except StorageError as e:
            return f"{label}: {e}"
        return None
    
    async def _restore_settlement(self, group: Group, row: dict[str, Any]) -> Optional[str]:
        label = f"Settlement {row.get('id', '?')} in \"{group.name}\""
        try:
            settlement = Settlement.model_validate(row)
        except PydanticValidationError as e:
            return f"{label}: {_first_error(e)}"
        
        if settlement.group_id != group.id:
            return f"{label}: belongs to another group"
        
        try:
            stored = await self._storage.get_settlement(settlement.id)
        except StorageError as e:
            return f"{label}: {e}"
        if stored is not None and stored.group_id != group.id:
            return f"{label}: belongs to another group"
        
        try:
            await self._storage.save_settlement(settlement)
        except StorageError as e:
            return f"{label}: {e}"
        return None
