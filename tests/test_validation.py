"""Tests for the two-stage ledger validator."""

import pytest
from decimal import Decimal

from splitledger.core.errors import ValidationError
from splitledger.models.ledger import (
    Expense,
    ExpenseDraft,
    ExpenseSplit,
    Group,
    GroupMember,
    SettlementDraft,
    SplitMethod,
)
from splitledger.validation import LedgerValidator, ensure_valid


@pytest.fixture
def validator():
    return LedgerValidator(split_tolerance=Decimal("0.01"))


@pytest.fixture
def group():
    return Group(
        owner_id="alice",
        name="Trip",
        members=[GroupMember(member_id=m) for m in ("alice", "bob", "carol")],
    )


def custom_draft(group, shares, amount="10.00"):
    return ExpenseDraft(
        group_id=group.id,
        description="Groceries",
        amount=Decimal(amount),
        payer_id="alice",
        split_method=SplitMethod.CUSTOM,
        participant_ids=list(shares),
        custom_shares={k: Decimal(v) for k, v in shares.items()},
    )


class TestExpenseSchema:
    """Stage 1 checks."""
    
    def test_valid_equal_draft(self, validator, group):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=Decimal("12.00"),
            payer_id="bob",
            participant_ids=["alice", "bob"],
        )
        result = validator.validate_expense(draft, group)
        assert result.is_valid
        assert result.warnings == []
    
    def test_empty_participants_rejected(self, validator, group):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=Decimal("12.00"),
            participant_ids=[],
        )
        result = validator.validate_expense(draft, group)
        assert not result.schema_valid
        assert "Select at least one participant" in result.error_messages
    
    @pytest.mark.parametrize("amount", [None, Decimal("0"), Decimal("-5"), Decimal("0.004")])
    def test_non_positive_amount_rejected(self, validator, group, amount):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=amount,
            participant_ids=["alice"],
        )
        result = validator.validate_expense(draft, group)
        assert result.has_errors
        assert result.issues[0].field == "amount"
    
    def test_missing_custom_share(self, validator, group):
        draft = custom_draft(group, {"alice": "5.00"})
        draft.participant_ids.append("bob")
        result = validator.validate_expense(draft, group)
        assert not result.schema_valid
    
    def test_semantic_stage_skipped_after_schema_failure(self, validator, group):
        draft = ExpenseDraft(group_id=group.id, description="", amount=None)
        result = validator.validate_expense(draft, group)
        assert not result.schema_valid
        assert not result.semantic_valid
        assert result.error_count == 3


class TestSplitTolerance:
    """Custom shares may miss the amount by one cent, not two."""
    
    @pytest.mark.parametrize("shares", [
        {"alice": "3.33", "bob": "3.33", "carol": "3.34"},
        {"alice": "3.33", "bob": "3.33", "carol": "3.33"},
        {"alice": "3.33", "bob": "3.33", "carol": "3.35"},
    ])
    def test_within_one_cent_accepted(self, validator, group, shares):
        result = validator.validate_expense(custom_draft(group, shares), group)
        assert result.is_valid
    
    @pytest.mark.parametrize("shares", [
        {"alice": "3.33", "bob": "3.33", "carol": "3.32"},
        {"alice": "3.33", "bob": "3.33", "carol": "3.36"},
    ])
    def test_two_cents_rejected(self, validator, group, shares):
        result = validator.validate_expense(custom_draft(group, shares), group)
        assert not result.is_valid
        assert result.issues[0].issue_type == "split_mismatch"
    
    def test_sub_cent_shares_checked_as_stored(self, validator, group):
        """Three shares of 3.335 are stored as 3.34 each, 10.02 in total."""
        shares = {"alice": "3.335", "bob": "3.335", "carol": "3.335"}
        result = validator.validate_expense(custom_draft(group, shares), group)
        assert not result.is_valid
        assert result.issues[0].issue_type == "split_mismatch"
    
    def test_sub_cent_shares_within_tolerance_once_rounded(self, validator, group):
        shares = {"alice": "3.334", "bob": "3.334", "carol": "3.334"}
        result = validator.validate_expense(custom_draft(group, shares), group)
        assert result.is_valid
    
    def test_tolerance_is_configurable(self, group):
        strict = LedgerValidator(split_tolerance=Decimal("0"))
        shares = {"alice": "3.33", "bob": "3.33", "carol": "3.33"}
        assert not strict.validate_expense(custom_draft(group, shares), group).is_valid
    
    def test_shares_for_non_participants_warn(self, validator, group):
        draft = custom_draft(group, {"alice": "5.00", "bob": "5.00"})
        draft.custom_shares["carol"] = Decimal("1.00")
        result = validator.validate_expense(draft, group)
        assert result.is_valid
        assert len(result.warnings) == 1


class TestExpenseSemantic:
    """Stage 2 checks."""
    
    def test_duplicate_participant(self, validator, group):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=Decimal("12.00"),
            participant_ids=["alice", "alice"],
        )
        result = validator.validate_expense(draft, group)
        assert result.schema_valid
        assert not result.semantic_valid
    
    def test_non_member_is_warning(self, validator, group):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=Decimal("12.00"),
            payer_id="zed",
            participant_ids=["alice", "zed"],
        )
        result = validator.validate_expense(draft, group)
        assert result.is_valid
        assert len(result.warnings) == 2
    
    def test_wrong_group(self, validator, group):
        draft = ExpenseDraft(
            group_id="another-group",
            description="Taxi",
            amount=Decimal("12.00"),
            participant_ids=["alice"],
        )
        assert not validator.validate_expense(draft, group).is_valid


class TestExpenseRecord:
    """Checks on already-built expenses (backup ingest)."""
    
    def test_matching_splits(self, validator, group):
        expense = Expense(
            group_id=group.id,
            description="Hotel",
            amount=Decimal("10.00"),
            splits=[
                ExpenseSplit(member_id="alice", share=Decimal("5.00")),
                ExpenseSplit(member_id="bob", share=Decimal("5.00")),
            ],
        )
        assert validator.validate_expense_record(expense).is_valid
    
    def test_no_splits(self, validator, group):
        expense = Expense(group_id=group.id, description="Hotel", amount=Decimal("10.00"))
        assert not validator.validate_expense_record(expense).is_valid
    
    def test_mismatched_splits(self, validator, group):
        expense = Expense(
            group_id=group.id,
            description="Hotel",
            amount=Decimal("10.00"),
            splits=[ExpenseSplit(member_id="alice", share=Decimal("4.00"))],
        )
        assert not validator.validate_expense_record(expense).is_valid


class TestSettlementValidation:
    """Tests for validate_settlement."""
    
    def test_valid_settlement(self, validator, group):
        draft = SettlementDraft(
            group_id=group.id,
            from_member_id="bob",
            to_member_id="alice",
            amount=Decimal("3.33"),
        )
        assert validator.validate_settlement(draft, group).is_valid
    
    def test_amount_rounding_to_zero_rejected(self, validator, group):
        draft = SettlementDraft(
            group_id=group.id,
            from_member_id="bob",
            to_member_id="alice",
            amount=Decimal("0.004"),
        )
        result = validator.validate_settlement(draft, group)
        assert not result.schema_valid
        assert result.issues[0].field == "amount"
    
    def test_same_member_rejected(self, validator, group):
        draft = SettlementDraft(
            group_id=group.id,
            from_member_id="bob",
            to_member_id="bob",
            amount=Decimal("3.33"),
        )
        result = validator.validate_settlement(draft, group)
        assert "Members must be different for a settlement" in result.error_messages
    
    def test_zero_amount_rejected(self, validator, group):
        draft = SettlementDraft(
            group_id=group.id,
            from_member_id="bob",
            to_member_id="alice",
            amount=Decimal("0"),
        )
        assert not validator.validate_settlement(draft, group).schema_valid


class TestEnsureValid:
    """Tests for ensure_valid."""
    
    def test_raises_with_issues(self, validator, group):
        draft = ExpenseDraft(group_id=group.id, description="Taxi", amount=Decimal("5"))
        result = validator.validate_expense(draft, group)
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(result)
        assert len(exc_info.value.issues) == 1
        assert "Select at least one participant" in str(exc_info.value)
    
    def test_passes_valid_result(self, validator, group):
        draft = ExpenseDraft(
            group_id=group.id,
            description="Taxi",
            amount=Decimal("5"),
            participant_ids=["alice"],
        )
        result = validator.validate_expense(draft, group)
        assert ensure_valid(result) is result
    
    def test_friendly_summary(self, validator, group):
        draft = ExpenseDraft(group_id=group.id, description="Taxi", amount=Decimal("5"))
        summary = validator.get_user_friendly_summary(validator.validate_expense(draft, group))
        assert "was not saved" in summary
