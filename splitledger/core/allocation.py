"""
Equal-Split Allocator

Partitions an amount into integer-cent shares that sum exactly to the
amount. The leftover cents go one each to the earliest participants in
the order given:

    10.00 between [a, b, c] -> [3.34, 3.33, 3.33]
    10.00 between [c, b, a] -> [3.34, 3.33, 3.33]   (c gets the extra cent)

The result is a pure function of (amount, ordered participants).
Reordering participants moves the extra cents; that is intended.
"""

from decimal import Decimal
from typing import Sequence

import structlog

from splitledger.core.money import MoneyInput, from_cents, to_cents
from splitledger.models.ledger import ExpenseSplit


logger = structlog.get_logger(__name__)


def compute_equal_split_cents(total_cents: int, participant_count: int) -> list[int]:
    """
    Integer kernel of the allocator.
    
    A participant count below one is clamped to one so the division is
    always defined; callers are expected to have rejected that case already.
    Returns one share per participant (an empty list for zero participants).
    """
    divisor = max(participant_count, 1)
    base_share = total_cents // divisor
    remainder = total_cents - base_share * divisor
    
    return [
        base_share + 1 if index < remainder else base_share
        for index in range(participant_count)
    ]


def compute_equal_split(
    amount: MoneyInput,
    participant_ids: Sequence[str],
) -> list[Decimal]:
    """
    Split an amount equally, cent-accurate, in participant order.
    
    Args:
        amount: Total to split (rounded half away from zero to cents first)
        participant_ids: Ordered participant ids
    
    Returns:
        One two-place Decimal per participant, same order as participant_ids.
        Empty when participant_ids is empty; callers must treat that as an error.
    """
    total_cents = to_cents(amount)
    shares = compute_equal_split_cents(total_cents, len(participant_ids))
    
    logger.debug(
        "equal_split_computed",
        total_cents=total_cents,
        participants=len(participant_ids),
        remainder=total_cents - (shares[-1] * len(shares) if shares else 0),
    )
    
    return [from_cents(cents) for cents in shares]


def split_shares_by_member(
    amount: MoneyInput,
    participant_ids: Sequence[str],
) -> list[ExpenseSplit]:
    """Equal split paired with member ids, ready to attach to an Expense."""
    shares = compute_equal_split(amount, participant_ids)
    return [
        ExpenseSplit(member_id=member_id, share=share)
        for member_id, share in zip(participant_ids, shares)
    ]
