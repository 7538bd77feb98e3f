"""
Tests for the balance aggregator.

Scenarios use small hand-checked ledgers; every group must net to zero.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.core.allocation import split_shares_by_member
from splitledger.core.balances import (
    aggregate_by_currency,
    compute_group_balances,
    net_status,
    rank_user_balances,
    summarize_groups,
    summarize_ledger,
)
from splitledger.core.errors import InputIntegrityError
from splitledger.models.ledger import (
    Expense,
    Group,
    GroupMember,
    LedgerContext,
    NetTone,
    Settlement,
)


def make_group(owner="alice", members=("alice", "bob", "carol"), currency="USD", name="Trip"):
    return Group(
        owner_id=owner,
        name=name,
        currency=currency,
        members=[GroupMember(member_id=m) for m in members],
    )


def make_expense(group, payer, amount, participants):
    return Expense(
        group_id=group.id,
        payer_id=payer,
        description="Dinner",
        amount=Decimal(amount),
        splits=split_shares_by_member(amount, participants),
    )


def nets(balances):
    return {b.member_id: b.net for b in balances}


class TestGroupBalances:
    """Tests for compute_group_balances."""
    
    def test_three_way_dinner(self):
        """Alice pays $10 for three; the extra cent lands on Alice."""
        group = make_group()
        expense = make_expense(group, "alice", "10.00", ["alice", "bob", "carol"])
        
        balances = compute_group_balances(group, [expense], [])
        
        assert nets(balances) == {
            "alice": Decimal("6.66"),
            "bob": Decimal("-3.33"),
            "carol": Decimal("-3.33"),
        }
    
    def test_settlement_reduces_both_sides(self):
        """Bob pays Alice back 3.33."""
        group = make_group()
        expense = make_expense(group, "alice", "10.00", ["alice", "bob", "carol"])
        settlement = Settlement(
            group_id=group.id,
            from_member_id="bob",
            to_member_id="alice",
            amount=Decimal("3.33"),
        )
        
        balances = compute_group_balances(group, [expense], [settlement])
        
        assert nets(balances) == {
            "alice": Decimal("3.33"),
            "bob": Decimal("0.00"),
            "carol": Decimal("-3.33"),
        }
        alice = next(b for b in balances if b.member_id == "alice")
        assert alice.paid == Decimal("6.67")
        assert alice.owed == Decimal("3.34")
    
    def test_nets_sum_to_zero(self):
        group = make_group(members=("alice", "bob", "carol", "dave"))
        expenses = [
            make_expense(group, "alice", "17.03", ["alice", "bob", "carol", "dave"]),
            make_expense(group, "bob", "99.99", ["carol", "dave"]),
            make_expense(group, "dave", "0.07", ["alice", "bob", "carol"]),
        ]
        settlements = [
            Settlement(group_id=group.id, from_member_id="carol",
                       to_member_id="bob", amount=Decimal("20.00")),
        ]
        
        balances = compute_group_balances(group, expenses, settlements)
        
        assert sum(b.net_cents for b in balances) == 0
    
    def test_sorted_by_net_then_member(self):
        group = make_group(members=("carol", "bob", "alice"))
        expense = make_expense(group, "alice", "10.00", ["alice", "bob", "carol"])
        
        balances = compute_group_balances(group, [expense], [])
        
        assert [b.member_id for b in balances] == ["alice", "bob", "carol"]
    
    def test_members_without_activity_are_zero(self):
        group = make_group(members=("alice", "bob", "zoe"))
        balances = compute_group_balances(group, [], [])
        assert nets(balances) == {
            "alice": Decimal("0.00"),
            "bob": Decimal("0.00"),
            "zoe": Decimal("0.00"),
        }
    
    def test_owner_without_membership_row_is_seeded(self):
        group = make_group(owner="owen", members=("bob",))
        balances = compute_group_balances(group, [], [])
        assert {b.member_id for b in balances} == {"owen", "bob"}
    
    def test_removed_member_still_appears(self):
        """History keeps a removed member in the balances."""
        group = make_group(members=("alice", "bob"))
        expense = make_expense(group, "alice", "9.00", ["alice", "bob", "mallory"])
        
        balances = compute_group_balances(group, [expense], [])
        
        assert nets(balances)["mallory"] == Decimal("-3.00")
        assert sum(b.net_cents for b in balances) == 0
    
    def test_expense_without_payer_only_adds_owed(self):
        group = make_group()
        expense = make_expense(group, None, "6.00", ["bob", "carol"])
        balances = compute_group_balances(group, [expense], [])
        assert nets(balances)["bob"] == Decimal("-3.00")
    
    def test_records_of_other_groups_are_ignored(self):
        group = make_group()
        other = make_group()
        expense = make_expense(other, "alice", "10.00", ["alice", "bob"])
        
        balances = compute_group_balances(group, [expense], [])
        
        assert all(b.net_cents == 0 for b in balances)
    
    def test_accepts_mappings(self):
        group = make_group(members=("alice", "bob"))
        expense = {
            "id": "e1",
            "group_id": group.id,
            "payer_id": "alice",
            "amount": "8.00",
            "splits": [
                {"member_id": "alice", "share": "4.00"},
                {"member_id": "bob", "share": "4.00"},
            ],
        }
        balances = compute_group_balances(group, [expense], [])
        assert nets(balances) == {"alice": Decimal("4.00"), "bob": Decimal("-4.00")}
    
    def test_missing_amount_raises(self):
        group = make_group(members=("alice", "bob"))
        expense = {
            "id": "e1",
            "group_id": group.id,
            "payer_id": "alice",
            "splits": [{"member_id": "bob", "share": "4.00"}],
        }
        with pytest.raises(InputIntegrityError) as exc_info:
            compute_group_balances(group, [expense], [])
        assert exc_info.value.field == "amount"
    
    def test_missing_share_raises(self):
        group = make_group(members=("alice", "bob"))
        expense = {
            "id": "e1",
            "group_id": group.id,
            "payer_id": "alice",
            "amount": "4.00",
            "splits": [{"member_id": "bob"}],
        }
        with pytest.raises(InputIntegrityError):
            compute_group_balances(group, [expense], [])
    
    def test_inputs_not_modified(self):
        group = make_group()
        expense = make_expense(group, "alice", "10.00", ["alice", "bob", "carol"])
        before = expense.model_dump()
        compute_group_balances(group, [expense], [])
        assert expense.model_dump() == before


class TestNetStatus:
    """Tests for net_status thresholds."""
    
    @pytest.mark.parametrize("net,tone", [
        ("3.33", NetTone.POSITIVE),
        ("0.006", NetTone.POSITIVE),
        ("0.005", NetTone.NEUTRAL),
        ("0", NetTone.NEUTRAL),
        ("-0.004", NetTone.NEUTRAL),
        ("-0.006", NetTone.NEGATIVE),
        ("-12", NetTone.NEGATIVE),
    ])
    def test_tone(self, net, tone):
        assert net_status(Decimal(net)).tone == tone
    
    def test_magnitude_is_absolute(self):
        assert net_status("-3.33").magnitude == Decimal("3.33")
    
    def test_describe(self):
        assert net_status("3.33").describe("USD") == "You are owed $3.33"
        assert net_status("-3.33").describe("EUR") == "You owe €3.33"
        assert net_status("0").describe("USD") == "You are settled"
        assert net_status("-1").describe("GBP", subject="Bob") == "Bob owes £1.00"


class TestCurrencyAggregation:
    """Tests for aggregate_by_currency and rank_user_balances."""
    
    def build(self):
        usd_up = make_group(members=("alice", "bob"), name="Flat")
        usd_down = make_group(owner="bob", members=("alice", "bob"), name="Gym")
        eur = make_group(members=("alice", "carol"), currency="EUR", name="Paris")
        strangers = make_group(owner="xavier", members=("xavier", "yolanda"), name="Other")
        
        expenses = [
            make_expense(usd_up, "alice", "40.00", ["alice", "bob"]),
            make_expense(usd_down, "bob", "10.00", ["alice", "bob"]),
            make_expense(eur, "alice", "30.00", ["alice", "carol"]),
            make_expense(strangers, "xavier", "50.00", ["xavier", "yolanda"]),
        ]
        groups = [usd_up, usd_down, eur, strangers]
        return groups, summarize_groups(groups, expenses, [])
    
    def test_sums_per_currency(self):
        _, summaries = self.build()
        totals = aggregate_by_currency(summaries, "alice")
        
        assert set(totals) == {"USD", "EUR"}
        assert totals["USD"].net == Decimal("15.00")
        assert totals["USD"].group_count == 2
        assert totals["EUR"].net == Decimal("15.00")
        assert totals["EUR"].group_count == 1
    
    def test_group_without_user_excluded(self):
        _, summaries = self.build()
        totals = aggregate_by_currency(summaries, "yolanda")
        assert list(totals) == ["USD"]
        assert totals["USD"].net == Decimal("-25.00")
        assert totals["USD"].group_count == 1
    
    def test_rank_by_magnitude(self):
        _, summaries = self.build()
        ranked = rank_user_balances(summaries, "alice")
        
        assert [r.group_balances.group.name for r in ranked] == ["Flat", "Paris", "Gym"]
        assert ranked[-1].balance.net == Decimal("-5.00")
    
    def test_summarize_ledger(self):
        groups, _ = self.build()
        context = LedgerContext(user_id="alice", correlation_id=uuid4())
        expenses = [
            make_expense(groups[0], "alice", "40.00", ["alice", "bob"]),
        ]
        
        summary = summarize_ledger(context, groups[:1], expenses, [])
        
        assert summary.user_id == "alice"
        assert summary.total_groups == 1
        assert summary.total_expenses == 1
        assert summary.has_data
        assert summary.currencies[0].net == Decimal("20.00")
    
    def test_empty_ledger_has_no_data(self):
        context = LedgerContext(user_id="alice", correlation_id=uuid4())
        summary = summarize_ledger(context, [], [], [])
        assert not summary.has_data
        assert summary.currencies == []
