"""
Balance Aggregator

Folds a group's expenses and settlements into one balance per member,
then rolls one user's balances up per currency.

For every expense:
    payer.paid  += amount
    member.owed += share            (for each split)

For every settlement from A to B:
    A.owed -= amount
    B.paid -= amount

net = paid - owed. The settlement rule moves A's net up by the amount and
B's net down by the same amount, so the group still sums to zero. It does
make paid and owed individually harder to read once settlements exist;
only net is meant to be interpreted on its own.

DESIGN DECISION: Records can be models or plain mappings (raw storage rows,
backup rows). A record missing a number the fold needs is an input
integrity failure, never a silent zero. A payer or member with no known
profile is fine: they are accumulated under their raw id.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Iterable, Optional

import structlog

from splitledger.config import get_settings
from splitledger.core.errors import InputIntegrityError
from splitledger.core.money import MoneyInput, to_cents, to_decimal
from splitledger.models.ledger import (
    CurrencyBalance,
    Expense,
    Group,
    GroupBalances,
    LedgerContext,
    LedgerSummary,
    MemberBalance,
    NetStatus,
    NetTone,
    Settlement,
    UserGroupBalance,
)


logger = structlog.get_logger(__name__)

ExpenseLike = Expense | Mapping[str, Any]
SettlementLike = Settlement | Mapping[str, Any]


# =============================================================================
# RECORD ACCESS
# =============================================================================

def _read(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _record_id(record: Any) -> Optional[str]:
    value = _read(record, "id")
    return str(value) if value is not None else None


def _require_cents(record: Any, name: str, value: Any, kind: str) -> int:
    record_id = _record_id(record)
    if value is None:
        raise InputIntegrityError(
            f"{kind} {record_id or '<unknown>'} is missing required field '{name}'",
            record_id=record_id,
            field=name,
        )
    try:
        return to_cents(value)
    except InputIntegrityError:
        raise InputIntegrityError(
            f"{kind} {record_id or '<unknown>'} has a non-numeric '{name}': {value!r}",
            record_id=record_id,
            field=name,
        )


def _require_id(record: Any, name: str, kind: str) -> str:
    value = _read(record, name)
    if not value:
        record_id = _record_id(record)
        raise InputIntegrityError(
            f"{kind} {record_id or '<unknown>'} is missing required field '{name}'",
            record_id=record_id,
            field=name,
        )
    return str(value)


def _in_scope(record: Any, group_id: str) -> bool:
    record_group = _read(record, "group_id")
    return record_group is None or str(record_group) == group_id


def _splits_of(expense: Any) -> Iterable[Any]:
    return _read(expense, "splits") or []


# =============================================================================
# GROUP BALANCES
# =============================================================================

def compute_group_balances(
    group: Group,
    expenses: Iterable[ExpenseLike],
    settlements: Iterable[SettlementLike],
) -> list[MemberBalance]:
    """
    Compute every member's balance in one group.
    
    Covers every current member (the owner included, even without a
    membership row) plus anyone who appears as payer, split participant
    or settlement endpoint, so removed members still show up in history.
    
    Inputs are read, never modified.
    
    Returns:
        Balances sorted by net descending, then member id ascending.
    
    Raises:
        InputIntegrityError: If a record is missing amount, share or an id
    """
    return _fold_group(group, expenses, settlements).members


def _fold_group(
    group: Group,
    expenses: Iterable[ExpenseLike],
    settlements: Iterable[SettlementLike],
) -> GroupBalances:
    # member_id -> [paid_cents, owed_cents]
    tracker: dict[str, list[int]] = {
        member_id: [0, 0] for member_id in group.member_ids
    }
    
    def ensure(member_id: str) -> list[int]:
        if member_id not in tracker:
            tracker[member_id] = [0, 0]
        return tracker[member_id]
    
    total_spent = 0
    expense_count = 0
    for expense in expenses:
        if not _in_scope(expense, group.id):
            continue
        
        amount = _require_cents(expense, "amount", _read(expense, "amount"), "Expense")
        payer_id = _read(expense, "payer_id")
        if payer_id:
            ensure(str(payer_id))[0] += amount
        
        for split in _splits_of(expense):
            member_id = _require_id(split, "member_id", "Expense split")
            share = _require_cents(expense, "share", _read(split, "share"), "Expense")
            ensure(member_id)[1] += share
        
        total_spent += amount
        expense_count += 1
    
    settlement_count = 0
    for settlement in settlements:
        if not _in_scope(settlement, group.id):
            continue
        
        amount = _require_cents(settlement, "amount", _read(settlement, "amount"), "Settlement")
        from_member = _require_id(settlement, "from_member_id", "Settlement")
        to_member = _require_id(settlement, "to_member_id", "Settlement")
        ensure(from_member)[1] -= amount
        ensure(to_member)[0] -= amount
        settlement_count += 1
    
    balances = [
        MemberBalance(member_id=member_id, paid_cents=paid, owed_cents=owed)
        for member_id, (paid, owed) in tracker.items()
    ]
    balances.sort(key=lambda b: (-b.net_cents, b.member_id))
    
    logger.debug(
        "group_balances_computed",
        group_id=group.id,
        members=len(balances),
        expenses=expense_count,
        settlements=settlement_count,
    )
    
    return GroupBalances(
        group=group,
        members=balances,
        total_spent_cents=total_spent,
        expense_count=expense_count,
        settlement_count=settlement_count,
    )


def summarize_groups(
    groups: Iterable[Group],
    expenses: Iterable[ExpenseLike],
    settlements: Iterable[SettlementLike],
) -> list[GroupBalances]:
    """
    Compute GroupBalances for many groups from one snapshot.
    
    Expenses and settlements are bucketed by group_id first; records
    without a group_id cannot be attributed here and are skipped.
    """
    expenses_by_group: dict[str, list[ExpenseLike]] = {}
    for expense in expenses:
        group_id = _read(expense, "group_id")
        if group_id is not None:
            expenses_by_group.setdefault(str(group_id), []).append(expense)
    
    settlements_by_group: dict[str, list[SettlementLike]] = {}
    for settlement in settlements:
        group_id = _read(settlement, "group_id")
        if group_id is not None:
            settlements_by_group.setdefault(str(group_id), []).append(settlement)
    
    return [
        _fold_group(
            group,
            expenses_by_group.get(group.id, []),
            settlements_by_group.get(group.id, []),
        )
        for group in groups
    ]


# =============================================================================
# NET STATUS
# =============================================================================

def net_status(
    net: MoneyInput,
    threshold: Optional[Decimal] = None,
) -> NetStatus:
    """
    Classify a net balance.
    
    net >  threshold -> POSITIVE ("is owed")
    net < -threshold -> NEGATIVE ("owes")
    otherwise        -> NEUTRAL  ("settled")
    
    The threshold defaults to the configured settled_threshold (0.005,
    half a cent), which absorbs rounding noise around zero.
    """
    if threshold is None:
        threshold = get_settings().ledger.settled_threshold
    
    value = to_decimal(net)
    if value > threshold:
        tone = NetTone.POSITIVE
    elif value < -threshold:
        tone = NetTone.NEGATIVE
    else:
        tone = NetTone.NEUTRAL
    
    return NetStatus(tone=tone, magnitude=abs(value))


# =============================================================================
# PER-USER ROLLUPS
# =============================================================================

def aggregate_by_currency(
    group_balances: Iterable[GroupBalances],
    user_id: str,
) -> dict[str, CurrencyBalance]:
    """
    Sum one user's balances across groups, one bucket per currency.
    
    Groups where the user has no balance entry are left out entirely,
    not counted as zero. Currencies are never mixed.
    
    Returns:
        currency -> CurrencyBalance, in order of first appearance
    """
    totals: dict[str, CurrencyBalance] = {}
    
    for summary in group_balances:
        balance = summary.balance_for(user_id)
        if balance is None:
            continue
        
        current = totals.get(summary.currency) or CurrencyBalance(currency=summary.currency)
        totals[summary.currency] = CurrencyBalance(
            currency=summary.currency,
            paid_cents=current.paid_cents + balance.paid_cents,
            owed_cents=current.owed_cents + balance.owed_cents,
            net_cents=current.net_cents + balance.net_cents,
            group_count=current.group_count + 1,
        )
    
    return totals


def rank_user_balances(
    group_balances: Iterable[GroupBalances],
    user_id: str,
) -> list[UserGroupBalance]:
    """The user's balance per group, largest absolute net first."""
    ranked = []
    for summary in group_balances:
        balance = summary.balance_for(user_id)
        if balance is not None:
            ranked.append(UserGroupBalance(group_balances=summary, balance=balance))
    
    # sort() is stable, so equal magnitudes keep group order
    ranked.sort(key=lambda entry: abs(entry.balance.net_cents), reverse=True)
    return ranked


def summarize_ledger(
    context: LedgerContext,
    groups: Iterable[Group],
    expenses: Iterable[ExpenseLike],
    settlements: Iterable[SettlementLike],
) -> LedgerSummary:
    """
    Build the dashboard view for the acting user.
    
    The caller supplies an already-scoped snapshot; nothing here
    decides what the user may see.
    """
    groups = list(groups)
    expenses = list(expenses)
    summaries = summarize_groups(groups, expenses, settlements)
    
    return LedgerSummary(
        user_id=context.user_id,
        groups=summaries,
        currencies=list(aggregate_by_currency(summaries, context.user_id).values()),
        top_balances=rank_user_balances(summaries, context.user_id),
        total_groups=len(groups),
        total_expenses=len(expenses),
    )
