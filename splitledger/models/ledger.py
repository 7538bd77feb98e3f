"""
Core Data Models for Split Ledger

These models define the schemas for everything the ledger reads and derives.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage, backups and logging

Stored entities (Group, Expense, Settlement) are owned by the storage layer.
Derived entities (MemberBalance, GroupBalances, CurrencyBalance) are
computed on demand and never persisted.

DESIGN DECISION: Derived balances hold integer cents.
The Decimal properties exist for display and for comparing against
user-facing amounts; arithmetic never happens on them.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from splitledger.core.money import format_currency, from_cents


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberRole(str, Enum):
    """Role of a member inside a group."""
    OWNER = "owner"
    MEMBER = "member"


class SplitMethod(str, Enum):
    """
    How an expense is divided between participants.
    
    EQUAL goes through the allocator; CUSTOM shares are supplied
    by the caller and checked against the expense amount.
    """
    EQUAL = "equal"
    CUSTOM = "custom"


class NetTone(str, Enum):
    """Direction of a net balance as shown to the user."""
    POSITIVE = "positive"  # is owed
    NEGATIVE = "negative"  # owes
    NEUTRAL = "neutral"    # settled


# =============================================================================
# CALLER CONTEXT
# =============================================================================

class LedgerContext(BaseModel):
    """
    Explicit identity of whoever is acting.
    
    DESIGN DECISION: There is no ambient session. Every flow and every
    summary receives the caller's id and a correlation id for auditing.
    """
    model_config = ConfigDict(frozen=True)
    
    user_id: str = Field(
        ...,
        min_length=1,
        description="Id of the acting user"
    )
    correlation_id: UUID = Field(
        default_factory=uuid4,
        description="Ties together every audit event of one user action"
    )


# =============================================================================
# STORED ENTITIES
# =============================================================================

class GroupMember(BaseModel):
    """Membership row linking a member to a group."""
    
    member_id: str = Field(..., min_length=1)
    role: MemberRole = MemberRole.MEMBER
    joined_at: datetime = Field(default_factory=_utcnow)


class Group(BaseModel):
    """
    A group of people sharing expenses in one currency.
    
    The owner is always a member, even when no membership row exists
    for them; use member_ids rather than members when you need
    everyone in the group.
    """
    model_config = ConfigDict(str_strip_whitespace=True)
    
    id: str = Field(default_factory=_new_id)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=120,
        description="Group name"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 code; fixed for every expense and settlement in the group"
    )
    members: list[GroupMember] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    
    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError(f"Currency must be an ISO 4217 code, got {v!r}")
        return v.upper()
    
    @property
    def member_ids(self) -> list[str]:
        """Every member id in membership order, owner appended if it has no row."""
        ids = []
        for member in self.members:
            if member.member_id not in ids:
                ids.append(member.member_id)
        if self.owner_id not in ids:
            ids.append(self.owner_id)
        return ids
    
    def has_member(self, member_id: str) -> bool:
        return member_id in self.member_ids
    
    def role_of(self, member_id: str) -> Optional[MemberRole]:
        if member_id == self.owner_id:
            return MemberRole.OWNER
        for member in self.members:
            if member.member_id == member_id:
                return member.role
        return None


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""
    
    member_id: str = Field(..., min_length=1)
    share: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Portion of the expense attributed to this member"
    )


class Expense(BaseModel):
    """
    An expense paid by one member and shared by several.
    
    Splits are ordered. For equal splits the order decides who
    receives the leftover cents, so it is preserved as given.
    """
    model_config = ConfigDict(str_strip_whitespace=True)
    
    id: str = Field(default_factory=_new_id)
    group_id: str = Field(..., min_length=1)
    payer_id: Optional[str] = None
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the money was spent on"
    )
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Total amount in the group currency")
    ]
    expense_date: date = Field(default_factory=date.today)
    notes: Optional[str] = Field(default=None, max_length=1000)
    splits: list[ExpenseSplit] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    
    @property
    def split_total(self) -> Decimal:
        return sum((split.share for split in self.splits), Decimal("0.00"))
    
    @property
    def participant_ids(self) -> list[str]:
        return [split.member_id for split in self.splits]


class Settlement(BaseModel):
    """A direct payment from one member to another inside a group."""
    model_config = ConfigDict(str_strip_whitespace=True)
    
    id: str = Field(default_factory=_new_id)
    group_id: str = Field(..., min_length=1)
    from_member_id: str = Field(..., min_length=1, description="Member who paid")
    to_member_id: str = Field(..., min_length=1, description="Member who received")
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount paid in the group currency")
    ]
    settlement_date: date = Field(default_factory=date.today)
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=_utcnow)
    
    @model_validator(mode='after')
    def validate_endpoints(self) -> 'Settlement':
        if self.from_member_id == self.to_member_id:
            raise ValueError("Members must be different for a settlement")
        return self


# =============================================================================
# WRITE REQUESTS
# =============================================================================

class ExpenseDraft(BaseModel):
    """
    An expense as submitted by a user, before validation.
    
    CRITICAL: Nothing here is trusted. Amounts may carry more than two
    decimal places and participants may be missing; the validator
    reports every problem before an Expense is built.
    """
    model_config = ConfigDict(str_strip_whitespace=True)
    
    group_id: str
    description: str = ""
    amount: Optional[Decimal] = None
    payer_id: Optional[str] = None
    expense_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None
    split_method: SplitMethod = SplitMethod.EQUAL
    participant_ids: list[str] = Field(
        default_factory=list,
        description="Ordered participants; order decides remainder cents for equal splits"
    )
    custom_shares: dict[str, Decimal] = Field(
        default_factory=dict,
        description="member_id -> share, used only for CUSTOM splits"
    )


class SettlementDraft(BaseModel):
    """A settlement as submitted by a user, before validation."""
    model_config = ConfigDict(str_strip_whitespace=True)
    
    group_id: str
    from_member_id: str
    to_member_id: str
    amount: Optional[Decimal] = None
    settlement_date: Optional[date] = None
    notes: Optional[str] = None


# =============================================================================
# DERIVED BALANCES (never persisted)
# =============================================================================

class NetStatus(BaseModel):
    """Tone and size of a net balance, ready for display."""
    model_config = ConfigDict(frozen=True)
    
    tone: NetTone
    magnitude: Decimal = Field(..., ge=0)
    
    def describe(self, currency: str, subject: str = "You") -> str:
        """
        Human-readable status line.
        
        Example: "You are owed $3.33", "Sam owes €12.00", "You are settled"
        """
        verb_owed, verb_owes, verb_settled = (
            ("are owed", "owe", "are settled")
            if subject == "You"
            else ("is owed", "owes", "is settled")
        )
        if self.tone == NetTone.POSITIVE:
            return f"{subject} {verb_owed} {format_currency(self.magnitude, currency)}"
        if self.tone == NetTone.NEGATIVE:
            return f"{subject} {verb_owes} {format_currency(self.magnitude, currency)}"
        return f"{subject} {verb_settled}"


class MemberBalance(BaseModel):
    """
    One member's position inside one group.
    
    net = paid - owed. Positive means the group owes this member.
    """
    model_config = ConfigDict(frozen=True)
    
    member_id: str
    paid_cents: int = 0
    owed_cents: int = 0
    
    @property
    def net_cents(self) -> int:
        return self.paid_cents - self.owed_cents
    
    @property
    def paid(self) -> Decimal:
        return from_cents(self.paid_cents)
    
    @property
    def owed(self) -> Decimal:
        return from_cents(self.owed_cents)
    
    @property
    def net(self) -> Decimal:
        return from_cents(self.net_cents)


class GroupBalances(BaseModel):
    """Every member's balance in one group, plus group totals."""
    
    group: Group
    members: list[MemberBalance] = Field(default_factory=list)
    total_spent_cents: int = 0
    expense_count: int = 0
    settlement_count: int = 0
    
    @property
    def currency(self) -> str:
        return self.group.currency
    
    @property
    def total_spent(self) -> Decimal:
        return from_cents(self.total_spent_cents)
    
    def balance_for(self, member_id: str) -> Optional[MemberBalance]:
        for balance in self.members:
            if balance.member_id == member_id:
                return balance
        return None


class CurrencyBalance(BaseModel):
    """One user's balances summed across every group in one currency."""
    
    currency: str
    paid_cents: int = 0
    owed_cents: int = 0
    net_cents: int = 0
    group_count: int = 0
    
    @property
    def paid(self) -> Decimal:
        return from_cents(self.paid_cents)
    
    @property
    def owed(self) -> Decimal:
        return from_cents(self.owed_cents)
    
    @property
    def net(self) -> Decimal:
        return from_cents(self.net_cents)


class UserGroupBalance(BaseModel):
    """The acting user's balance in one group, used for "top balances"."""
    
    group_balances: GroupBalances
    balance: MemberBalance


class LedgerSummary(BaseModel):
    """Everything the dashboard shows for one user."""
    
    user_id: str
    generated_at: datetime = Field(default_factory=_utcnow)
    groups: list[GroupBalances] = Field(default_factory=list)
    currencies: list[CurrencyBalance] = Field(default_factory=list)
    top_balances: list[UserGroupBalance] = Field(default_factory=list)
    total_groups: int = 0
    total_expenses: int = 0
    
    @property
    def has_data(self) -> bool:
        return self.total_groups > 0 and self.total_expenses > 0


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""
    
    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'split_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.
    
    Stage 1: Schema validation (required fields, positive amounts)
    Stage 2: Semantic validation (split sums, membership, endpoints)
    """
    
    subject: str = Field(
        ...,
        description="What was validated (e.g., 'expense', 'settlement')"
    )
    validated_at: datetime = Field(default_factory=_utcnow)
    
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    
    issues: list[ValidationIssue] = Field(default_factory=list)
    
    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)
    
    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)
    
    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
    
    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
