"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Group members can look at the raw ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a household or trip ledger is fine)
- No transactions (one row per entity keeps each write a single call)
- Limited query capabilities (we filter in Python)

Nested data lives in JSON columns: a group's members and an expense's
splits. Amounts are written as strings so no float ever touches them.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import get_settings
from splitledger.core.errors import InputIntegrityError
from splitledger.core.money import to_decimal
from splitledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitledger.models.ledger import (
    Expense,
    ExpenseSplit,
    Group,
    GroupMember,
    Settlement,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)


GROUP_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "description",
    "currency",
    "created_at",
    "updated_at",
    "members_json",
]

EXPENSE_COLUMNS = [
    "id",
    "group_id",
    "payer_id",
    "description",
    "amount",
    "expense_date",
    "notes",
    "created_at",
    "updated_at",
    "splits_json",
]

SETTLEMENT_COLUMNS = [
    "id",
    "group_id",
    "from_member_id",
    "to_member_id",
    "amount",
    "settlement_date",
    "notes",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "actor_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _required_amount(row: list, index: int, kind: str) -> Decimal:
    raw = _cell(row, index)
    record_id = _cell(row, 0) or None
    if not raw:
        raise InputIntegrityError(
            f"{kind} {record_id} is missing required field 'amount'",
            record_id=record_id,
            field="amount",
        )
    try:
        return to_decimal(raw)
    except InputIntegrityError:
        raise InputIntegrityError(
            f"{kind} {record_id} has a non-numeric amount {raw!r}",
            record_id=record_id,
            field="amount",
        )


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.
    
    Handles authentication and provides retry logic for API calls.
    """
    
    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.
        
        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")
        
        return self._client
    
    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet
    
    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet
    
    def get_groups_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.groups_sheet_name, GROUP_COLUMNS)
    
    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)
    
    def get_settlements_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.settlements_sheet_name, SETTLEMENT_COLUMNS)
    
    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.
    
    One worksheet per entity, one entity per row, keyed by the id
    in column A. Saves are upserts.
    """
    
    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
    
    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------
    
    def _group_to_row(self, group: Group) -> list:
        return [
            group.id,
            group.owner_id,
            group.name,
            group.description or "",
            group.currency,
            group.created_at.isoformat(),
            group.updated_at.isoformat(),
            json.dumps([m.model_dump(mode="json") for m in group.members]),
        ]
    
    def _row_to_group(self, row: list) -> Group:
        members_json = _cell(row, 7)
        members = [GroupMember(**m) for m in json.loads(members_json)] if members_json else []
        return Group(
            id=_cell(row, 0),
            owner_id=_cell(row, 1),
            name=_cell(row, 2),
            description=_cell(row, 3) or None,
            currency=_cell(row, 4, "USD"),
            created_at=datetime.fromisoformat(_cell(row, 5)),
            updated_at=datetime.fromisoformat(_cell(row, 6)),
            members=members,
        )
    
    def _expense_to_row(self, expense: Expense) -> list:
        return [
            expense.id,
            expense.group_id,
            expense.payer_id or "",
            expense.description,
            str(expense.amount),
            expense.expense_date.isoformat(),
            expense.notes or "",
            expense.created_at.isoformat(),
            expense.updated_at.isoformat(),
            json.dumps([
                {"member_id": s.member_id, "share": str(s.share)}
                for s in expense.splits
            ]),
        ]
    
    def _row_to_expense(self, row: list) -> Expense:
        splits = []
        splits_json = _cell(row, 9)
        for item in json.loads(splits_json) if splits_json else []:
            if not item.get("share"):
                raise InputIntegrityError(
                    f"Expense {_cell(row, 0)} has a split without a share",
                    record_id=_cell(row, 0) or None,
                    field="share",
                )
            splits.append(ExpenseSplit(member_id=item["member_id"], share=to_decimal(item["share"])))
        
        return Expense(
            id=_cell(row, 0),
            group_id=_cell(row, 1),
            payer_id=_cell(row, 2) or None,
            description=_cell(row, 3),
            amount=_required_amount(row, 4, "Expense"),
            expense_date=date.fromisoformat(_cell(row, 5)),
            notes=_cell(row, 6) or None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
            updated_at=datetime.fromisoformat(_cell(row, 8)),
            splits=splits,
        )
    
    def _settlement_to_row(self, settlement: Settlement) -> list:
        return [
            settlement.id,
            settlement.group_id,
            settlement.from_member_id,
            settlement.to_member_id,
            str(settlement.amount),
            settlement.settlement_date.isoformat(),
            settlement.notes or "",
            settlement.created_at.isoformat(),
        ]
    
    def _row_to_settlement(self, row: list) -> Settlement:
        return Settlement(
            id=_cell(row, 0),
            group_id=_cell(row, 1),
            from_member_id=_cell(row, 2),
            to_member_id=_cell(row, 3),
            amount=_required_amount(row, 4, "Settlement"),
            settlement_date=date.fromisoformat(_cell(row, 5)),
            notes=_cell(row, 6) or None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
        )
    
    # -------------------------------------------------------------------------
    # Row access
    # -------------------------------------------------------------------------
    
    def _data_rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All non-empty rows below the header."""
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]
    
    def _upsert(self, sheet: gspread.Worksheet, row: list) -> None:
        all_rows = sheet.get_all_values()
        for idx, existing in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if existing and existing[0] == row[0]:
                sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")
                return
        sheet.append_row(row, value_input_option="RAW")
    
    def _delete_where(self, sheet: gspread.Worksheet, column: int, value: str) -> int:
        """Delete every row whose column matches; returns the count."""
        all_rows = sheet.get_all_values()
        matches = [
            idx for idx, row in enumerate(all_rows[1:], start=2)
            if len(row) > column and row[column] == value
        ]
        # Bottom-up so earlier indexes stay valid
        for idx in reversed(matches):
            sheet.delete_rows(idx)
        return len(matches)
    
    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_group(self, group: Group) -> bool:
        try:
            self._upsert(self._client.get_groups_sheet(), self._group_to_row(group))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save group: {e}")
    
    async def get_group(self, group_id: str) -> Optional[Group]:
        try:
            for row in self._data_rows(self._client.get_groups_sheet()):
                if row[0] == group_id:
                    return self._row_to_group(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get group: {e}")
    
    async def delete_group(self, group_id: str) -> bool:
        try:
            deleted = self._delete_where(self._client.get_groups_sheet(), 0, group_id)
            if deleted:
                self._delete_where(self._client.get_expenses_sheet(), 1, group_id)
                self._delete_where(self._client.get_settlements_sheet(), 1, group_id)
            return deleted > 0
        except Exception as e:
            raise StorageError(f"Failed to delete group: {e}")
    
    async def _all_groups(self) -> list[Group]:
        try:
            return [
                self._row_to_group(row)
                for row in self._data_rows(self._client.get_groups_sheet())
            ]
        except Exception as e:
            raise StorageError(f"Failed to list groups: {e}")
    
    async def list_groups_for_member(self, member_id: str) -> list[Group]:
        groups = [g for g in await self._all_groups() if g.has_member(member_id)]
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return groups
    
    async def list_groups_owned_by(self, owner_id: str) -> list[Group]:
        groups = [g for g in await self._all_groups() if g.owner_id == owner_id]
        groups.sort(key=lambda g: g.created_at)
        return groups
    
    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_expense(self, expense: Expense) -> bool:
        try:
            self._upsert(self._client.get_expenses_sheet(), self._expense_to_row(expense))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")
    
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        try:
            rows = self._data_rows(self._client.get_expenses_sheet())
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")
        for row in rows:
            if row[0] == expense_id:
                return self._row_to_expense(row)
        return None
    
    async def delete_expense(self, expense_id: str) -> bool:
        try:
            return self._delete_where(self._client.get_expenses_sheet(), 0, expense_id) > 0
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")
    
    async def list_expenses(self, group_ids: Iterable[str]) -> list[Expense]:
        wanted = set(group_ids)
        try:
            rows = self._data_rows(self._client.get_expenses_sheet())
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")
        
        # Malformed amounts raise InputIntegrityError rather than being skipped
        expenses = [
            self._row_to_expense(row)
            for row in rows
            if len(row) > 1 and row[1] in wanted
        ]
        expenses.sort(key=lambda e: e.expense_date, reverse=True)
        return expenses
    
    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_settlement(self, settlement: Settlement) -> bool:
        try:
            self._upsert(
                self._client.get_settlements_sheet(),
                self._settlement_to_row(settlement),
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save settlement: {e}")
    
    async def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        try:
            rows = self._data_rows(self._client.get_settlements_sheet())
        except Exception as e:
            raise StorageError(f"Failed to get settlement: {e}")
        for row in rows:
            if row[0] == settlement_id:
                return self._row_to_settlement(row)
        return None
    
    async def delete_settlement(self, settlement_id: str) -> bool:
        try:
            return self._delete_where(self._client.get_settlements_sheet(), 0, settlement_id) > 0
        except Exception as e:
            raise StorageError(f"Failed to delete settlement: {e}")
    
    async def list_settlements(
        self,
        group_ids: Iterable[str],
        limit: Optional[int] = None,
    ) -> list[Settlement]:
        wanted = set(group_ids)
        try:
            rows = self._data_rows(self._client.get_settlements_sheet())
        except Exception as e:
            raise StorageError(f"Failed to list settlements: {e}")
        
        settlements = [
            self._row_to_settlement(row)
            for row in rows
            if len(row) > 1 and row[1] in wanted
        ]
        settlements.sort(key=lambda s: s.settlement_date, reverse=True)
        if limit is not None:
            settlements = settlements[:limit]
        return settlements


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.
    
    Audit events are append-only.
    """
    
    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
    
    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            actor_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
        )
    
    def _load_events(self, keep) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        
        events = []
        for row in all_rows:
            if row and row[0] and keep(row):
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, json.JSONDecodeError):
                    continue  # Hand-edited rows in the sheet
        return events
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        return True
    
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = self._load_events(
            lambda row: len(row) > 7 and row[7] == str(correlation_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events
    
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = self._load_events(
            lambda row: len(row) > 6 and row[5] == entity_type and row[6] == entity_id
        )
        events.sort(key=lambda e: e.timestamp)
        return events
    
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._load_events(lambda row: True)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
