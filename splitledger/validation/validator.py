"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages, before
any storage call:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amounts
- At least one participant

STAGE 2 - SEMANTIC VALIDATION:
- Custom split shares add up to the amount (within tolerance)
- Participants and payer belong to the group
- Settlement endpoints are distinct members
- No member appears twice in one expense

Stage 2 only runs when stage 1 passes.

Membership problems are warnings: enforcing membership is the
surrounding product's policy, and removed members legitimately
appear on historical records.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; ensure_valid() turns errors into a rejected write.
"""

from decimal import Decimal
from typing import Optional

from splitledger.config import get_settings
from splitledger.core.errors import ValidationError
from splitledger.core.money import quantize_amount, to_cents, to_decimal
from splitledger.models.ledger import (
    Expense,
    ExpenseDraft,
    Group,
    SettlementDraft,
    SplitMethod,
    ValidationIssue,
    ValidationResult,
)


def ensure_valid(result: ValidationResult) -> ValidationResult:
    """
    Raise if the result carries any error.
    
    Raises:
        ValidationError: With every error-level issue attached
    """
    if result.has_errors:
        raise ValidationError(
            f"Invalid {result.subject}: " + "; ".join(result.error_messages),
            issues=[issue for issue in result.issues if issue.severity == "error"],
        )
    return result


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


class LedgerValidator:
    """
    Validates expense and settlement writes.
    
    Stage 1: Schema validation
    Stage 2: Semantic validation (needs the group for membership checks)
    """
    
    def __init__(self, split_tolerance: Optional[Decimal] = None):
        """
        Args:
            split_tolerance: Largest accepted |sum(shares) - amount|.
                            Defaults to the configured value (0.01).
        """
        if split_tolerance is None:
            split_tolerance = get_settings().ledger.split_tolerance
        self._tolerance = to_decimal(split_tolerance)
    
    # -------------------------------------------------------------------------
    # Shared checks
    # -------------------------------------------------------------------------
    
    def check_split_total(
        self,
        amount: Decimal,
        shares: list[Decimal],
    ) -> Optional[ValidationIssue]:
        """
        Compare custom shares against the amount.

        Both sides are rounded to cents first, the same way they are
        stored, so the check holds for the saved expense. Decimal
        arithmetic is exact, so a gap of exactly one tolerance is
        accepted and anything larger is not.
        """
        amount = quantize_amount(amount)
        total = sum((quantize_amount(share) for share in shares), Decimal("0.00"))
        if abs(total - amount) > self._tolerance:
            return _error(
                "splits",
                "split_mismatch",
                f"Split shares add up to {total}, "
                f"which does not match the amount {amount}",
                "Adjust the shares so they add up to the expense amount",
            )
        return None
    
    def _finish(
        self,
        subject: str,
        schema_valid: bool,
        schema_issues: list[ValidationIssue],
        semantic_issues: list[ValidationIssue],
    ) -> ValidationResult:
        all_issues = schema_issues + semantic_issues
        semantic_valid = schema_valid and not any(
            issue.severity == "error" for issue in semantic_issues
        )
        return ValidationResult(
            subject=subject,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
        )
    
    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------
    
    def _validate_expense_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []
        
        if not draft.description:
            issues.append(_error(
                "description", "missing", "Description is required",
                "Say what the money was spent on",
            ))
        
        if draft.amount is None:
            issues.append(_error("amount", "missing", "Amount is required"))
        elif to_cents(draft.amount) <= 0:
            issues.append(_error(
                "amount", "invalid_value", "Use a positive amount of at least 0.01",
            ))
        
        if not draft.participant_ids:
            issues.append(_error(
                "participant_ids", "missing", "Select at least one participant",
            ))
        
        if draft.split_method == SplitMethod.CUSTOM:
            for member_id in draft.participant_ids:
                share = draft.custom_shares.get(member_id)
                if share is None:
                    issues.append(_error(
                        "custom_shares", "missing",
                        f"Enter an amount for participant {member_id}",
                    ))
                elif share < 0:
                    issues.append(_error(
                        "custom_shares", "invalid_value",
                        f"Share for participant {member_id} cannot be negative",
                    ))
        
        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues
    
    def _validate_expense_semantic(
        self,
        draft: ExpenseDraft,
        group: Optional[Group],
    ) -> list[ValidationIssue]:
        issues = []
        
        seen = set()
        for member_id in draft.participant_ids:
            if member_id in seen:
                issues.append(_error(
                    "participant_ids", "duplicate",
                    f"Participant {member_id} is listed more than once",
                ))
            seen.add(member_id)
        
        if draft.split_method == SplitMethod.CUSTOM:
            shares = [draft.custom_shares[m] for m in draft.participant_ids]
            mismatch = self.check_split_total(draft.amount, shares)
            if mismatch:
                issues.append(mismatch)
            
            extra = set(draft.custom_shares) - set(draft.participant_ids)
            if extra:
                issues.append(_warning(
                    "custom_shares", "ignored",
                    f"Shares for non-participants are ignored: {', '.join(sorted(extra))}",
                ))
        
        if group is not None:
            if draft.group_id != group.id:
                issues.append(_error(
                    "group_id", "inconsistent",
                    "Expense does not belong to the group it was checked against",
                ))
            if draft.payer_id and not group.has_member(draft.payer_id):
                issues.append(_warning(
                    "payer_id", "not_a_member",
                    f"Payer {draft.payer_id} is not a member of {group.name}",
                ))
            outsiders = [m for m in draft.participant_ids if not group.has_member(m)]
            if outsiders:
                issues.append(_warning(
                    "participant_ids", "not_a_member",
                    f"Not members of {group.name}: {', '.join(outsiders)}",
                ))
        
        return issues
    
    def validate_expense(
        self,
        draft: ExpenseDraft,
        group: Optional[Group] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation on an expense write.
        
        Args:
            draft: The submitted expense
            group: Group the expense belongs to; membership checks
                   are skipped when None
        """
        schema_valid, schema_issues = self._validate_expense_schema(draft)
        semantic_issues = []
        if schema_valid:
            semantic_issues = self._validate_expense_semantic(draft, group)
        return self._finish("expense", schema_valid, schema_issues, semantic_issues)
    
    def validate_expense_record(self, expense: Expense) -> ValidationResult:
        """
        Re-check invariants of an already-built expense.
        
        Used when ingesting data from outside (backups), where the
        shares were not produced by this process.
        """
        issues = []
        if not expense.splits:
            issues.append(_error(
                "splits", "missing", f"Expense {expense.id} has no splits",
            ))
        else:
            mismatch = self.check_split_total(
                expense.amount, [split.share for split in expense.splits]
            )
            if mismatch:
                issues.append(mismatch)
        
        schema_valid = not any(issue.severity == "error" for issue in issues)
        return self._finish("expense", schema_valid, issues, [])
    
    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------
    
    def validate_settlement(
        self,
        draft: SettlementDraft,
        group: Optional[Group] = None,
    ) -> ValidationResult:
        """Run full two-stage validation on a settlement write."""
        schema_issues = []
        
        if draft.amount is None:
            schema_issues.append(_error("amount", "missing", "Amount is required"))
        elif to_cents(draft.amount) <= 0:
            schema_issues.append(_error(
                "amount", "invalid_value", "Use a positive amount of at least 0.01",
            ))
        
        if not draft.from_member_id or not draft.to_member_id:
            schema_issues.append(_error(
                "members", "missing", "Both the paying and the receiving member are required",
            ))
        
        schema_valid = not any(issue.severity == "error" for issue in schema_issues)
        
        semantic_issues = []
        if schema_valid:
            if draft.from_member_id == draft.to_member_id:
                semantic_issues.append(_error(
                    "members", "same_member",
                    "Members must be different for a settlement",
                ))
            if group is not None:
                outsiders = [
                    m for m in (draft.from_member_id, draft.to_member_id)
                    if not group.has_member(m)
                ]
                if outsiders:
                    semantic_issues.append(_warning(
                        "members", "not_a_member",
                        f"Not members of {group.name}: {', '.join(outsiders)}",
                    ))
        
        return self._finish("settlement", schema_valid, schema_issues, semantic_issues)
    
    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short explanation of a rejected or accepted write."""
        if result.is_valid and not result.warnings:
            return f"The {result.subject} looks good."
        
        lines = []
        if result.has_errors:
            lines.append(f"The {result.subject} was not saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")
        
        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")
        
        return "\n".join(lines)
