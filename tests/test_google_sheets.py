"""Tests for Google Sheets row conversion (no network access)."""

import pytest
from decimal import Decimal

from splitledger.core.errors import InputIntegrityError
from splitledger.services.storage.google_sheets import GoogleSheetsLedgerStorage


SETTLEMENT_ROW = [
    "s1", "g1", "bob", "alice", "3.33", "2026-01-05", "", "2026-01-05T10:00:00+00:00",
]


@pytest.fixture
def storage():
    # Row conversion never touches the client
    return GoogleSheetsLedgerStorage(client=object())


class TestRowConversion:
    """Tests for reading sheet rows back into models."""
    
    def test_settlement_row(self, storage):
        settlement = storage._row_to_settlement(SETTLEMENT_ROW)
        assert settlement.amount == Decimal("3.33")
        assert settlement.to_member_id == "alice"
    
    def test_blank_amount(self, storage):
        row = list(SETTLEMENT_ROW)
        row[4] = ""
        with pytest.raises(InputIntegrityError) as exc_info:
            storage._row_to_settlement(row)
        assert exc_info.value.field == "amount"
    
    def test_non_numeric_amount(self, storage):
        row = list(SETTLEMENT_ROW)
        row[4] = "three dollars"
        with pytest.raises(InputIntegrityError) as exc_info:
            storage._row_to_settlement(row)
        assert exc_info.value.record_id == "s1"
        assert exc_info.value.field == "amount"
    
    def test_expense_row_with_bad_share(self, storage):
        row = [
            "e1", "g1", "alice", "Dinner", "10.00", "2026-01-05", "",
            "2026-01-05T10:00:00+00:00", "2026-01-05T10:00:00+00:00",
            '[{"member_id": "bob", "share": "n/a"}]',
        ]
        with pytest.raises(InputIntegrityError):
            storage._row_to_expense(row)
