"""
Tests for the equal-split allocator.

The allocator must be exact: shares always add up to the amount,
and leftover cents go to the earliest participants.
"""

import pytest
from decimal import Decimal

from splitledger.core.allocation import (
    compute_equal_split,
    compute_equal_split_cents,
    split_shares_by_member,
)


class TestEqualSplit:
    """Tests for compute_equal_split."""
    
    def test_ten_dollars_three_ways(self):
        """The first participant absorbs the extra cent."""
        shares = compute_equal_split(Decimal("10.00"), ["a", "b", "c"])
        assert shares == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
    
    def test_order_decides_who_gets_remainder(self):
        first = compute_equal_split("10.00", ["a", "b", "c"])
        second = compute_equal_split("10.00", ["c", "b", "a"])
        assert first == second == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]
    
    def test_two_cent_remainder(self):
        shares = compute_equal_split("0.05", ["a", "b", "c"])
        assert shares == [Decimal("0.02"), Decimal("0.02"), Decimal("0.01")]
    
    def test_even_division(self):
        shares = compute_equal_split("9.00", ["a", "b", "c"])
        assert shares == [Decimal("3.00")] * 3
    
    def test_amount_smaller_than_participants(self):
        shares = compute_equal_split("0.02", ["a", "b", "c"])
        assert shares == [Decimal("0.01"), Decimal("0.01"), Decimal("0.00")]
    
    def test_amount_rounded_before_split(self):
        """10.005 becomes 10.01 (half away from zero) before splitting."""
        shares = compute_equal_split("10.005", ["a", "b"])
        assert sum(shares) == Decimal("10.01")
    
    def test_empty_participants(self):
        assert compute_equal_split("10.00", []) == []
    
    @pytest.mark.parametrize("amount,count", [
        ("100.00", 3),
        ("0.01", 7),
        ("1234.56", 11),
        ("99.99", 4),
        ("1.00", 1),
    ])
    def test_shares_sum_to_amount(self, amount, count):
        ids = [f"m{i}" for i in range(count)]
        shares = compute_equal_split(amount, ids)
        assert len(shares) == count
        assert sum(shares) == Decimal(amount)
        assert max(shares) - min(shares) <= Decimal("0.01")
    
    def test_deterministic(self):
        ids = ["a", "b", "c", "d"]
        assert compute_equal_split("17.03", ids) == compute_equal_split("17.03", ids)


class TestCentsKernel:
    """Tests for the integer kernel."""
    
    def test_zero_count_is_clamped(self):
        assert compute_equal_split_cents(1000, 0) == []
    
    def test_remainder_goes_first(self):
        assert compute_equal_split_cents(1001, 4) == [251, 250, 250, 250]


class TestSplitsByMember:
    """Tests for split_shares_by_member."""
    
    def test_pairs_members_with_shares(self):
        splits = split_shares_by_member("10.00", ["a", "b", "c"])
        assert [s.member_id for s in splits] == ["a", "b", "c"]
        assert splits[0].share == Decimal("3.34")
