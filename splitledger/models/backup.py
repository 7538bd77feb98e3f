"""
Backup Models

A backup is a denormalized copy of the groups a user owns, with every
expense (splits inline) and settlement in them.

Expense and settlement rows are kept as plain dicts on the way in so
that one bad record is reported on its own instead of failing the
whole payload.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from splitledger.models.ledger import Group


class ExportedGroup(BaseModel):
    """One group with everything recorded in it."""
    
    group: Group
    expenses: list[dict[str, Any]] = Field(default_factory=list)
    settlements: list[dict[str, Any]] = Field(default_factory=list)


class BackupPayload(BaseModel):
    """Top-level backup document."""
    
    version: int
    exported_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    groups: list[ExportedGroup] = Field(default_factory=list)


class SkippedGroup(BaseModel):
    """A group the import refused to restore, and why."""
    
    group_id: str
    name: str
    reason: str


class ImportResult(BaseModel):
    """Outcome of restoring a backup."""
    
    imported: int = 0
    skipped: list[SkippedGroup] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
