"""Tests for settlement aggregation and transfer suggestions."""

import itertools
import random

import pytest
from decimal import Decimal

from tripsplit.engine.settlement import SettlementAggregator, suggest_transfers
from tripsplit.models.ledger import Member, Transaction


@pytest.fixture
def members():
    return [
        Member(id="a", name="A"),
        Member(id="b", name="B"),
        Member(id="c", name="C"),
    ]


@pytest.fixture
def hotel():
    """A pays 900 shared equally by A, B and C."""
    return Transaction(
        payer_id="a",
        currency="TWD",
        original_amount=Decimal("900"),
        home_amount=Decimal("900"),
        split_with=["a", "b", "c"],
    )


@pytest.fixture
def snack():
    """B pays 300 for themselves."""
    return Transaction(
        payer_id="b",
        currency="TWD",
        original_amount=Decimal("300"),
        home_amount=Decimal("300"),
        is_split=False,
        split_with=["b"],
    )


@pytest.fixture
def train():
    """C pays 100 CHF (3550 TWD) shared by A, B and C."""
    return Transaction(
        payer_id="c",
        currency="CHF",
        original_amount=Decimal("100"),
        home_amount=Decimal("3550"),
        split_with=["a", "b", "c"],
    )


def assert_zero_sum(balances):
    assert abs(sum(balances.values(), Decimal("0"))) < Decimal("1e-20")


class TestSettlementAggregator:
    """Tests for SettlementAggregator."""

    def test_equal_split_example(self, members, hotel):
        """Test the three-member equal split."""
        summary = SettlementAggregator().aggregate([hotel], members)
        assert summary.consumption == {
            "a": Decimal("300"),
            "b": Decimal("300"),
            "c": Decimal("300"),
        }
        assert summary.balances == {
            "a": Decimal("600"),
            "b": Decimal("-300"),
            "c": Decimal("-300"),
        }
        assert summary.total_expense == Decimal("900")

    def test_personal_spending_leaves_balances(self, members, hotel, snack):
        """Test that a non-split transaction only adds consumption."""
        summary = SettlementAggregator().aggregate([hotel, snack], members)
        assert summary.balance_of("a") == Decimal("600")
        assert summary.balance_of("b") == Decimal("-300")
        assert summary.balance_of("c") == Decimal("-300")
        assert summary.consumption_of("b") == Decimal("600")
        assert summary.total_expense == Decimal("1200")

    def test_zero_sum(self, members, hotel, snack, train):
        """Test balances always add up to zero."""
        summary = SettlementAggregator().aggregate([hotel, snack, train], members)
        assert_zero_sum(summary.balances)

    def test_order_independent(self, members, hotel, snack, train):
        """Test that permuting transactions does not change the result."""
        aggregator = SettlementAggregator()
        expected = aggregator.aggregate([hotel, snack, train], members)
        for order in itertools.permutations([hotel, snack, train]):
            summary = aggregator.aggregate(list(order), members)
            assert summary.rounded_balances() == expected.rounded_balances()
            assert summary.rounded_consumption() == expected.rounded_consumption()
            for member_id, balance in summary.balances.items():
                assert abs(balance - expected.balances[member_id]) < Decimal("1e-20")

    def test_order_independent_with_large_repeating_shares(self):
        """Test large amounts split into repeating decimals give identical maps."""
        ids = ["a", "b", "c", "d", "e", "f", "g"]
        roster = [Member(id=m, name=m.upper()) for m in ids]
        transactions = [
            Transaction(
                payer_id=ids[i % len(ids)],
                currency="TWD",
                original_amount=Decimal(amount),
                home_amount=Decimal(amount),
                split_with=ids[: 2 + i % 6],
            )
            for i, amount in enumerate([
                "9999991", "8765437", "7000001", "9123457", "5555557", "6666671",
                "9876543", "3333334", "7777781", "4444447", "9999997", "1234571",
            ])
        ]
        aggregator = SettlementAggregator()
        expected = aggregator.aggregate(transactions, roster)
        shuffler = random.Random(20240501)
        for _ in range(50):
            order = list(transactions)
            shuffler.shuffle(order)
            summary = aggregator.aggregate(order, roster)
            assert summary.balances == expected.balances
            assert summary.consumption == expected.consumption
            assert summary.total_expense == expected.total_expense

    def test_no_rounding_during_aggregation(self, members, train):
        """Test shares keep full precision until presentation."""
        summary = SettlementAggregator().aggregate([train], members)
        assert summary.consumption_of("a") != Decimal("1183")
        assert summary.rounded_consumption()["a"] == Decimal("1183")

    def test_equal_division_ignores_custom_shares(self, members, hotel):
        """Test the default mode divides evenly whatever shares are stored."""
        custom = hotel.model_copy(update={
            "custom_splits": {"a": Decimal("400"), "b": Decimal("300"), "c": Decimal("200")},
        })
        summary = SettlementAggregator().aggregate([custom], members)
        assert summary.balance_of("c") == Decimal("-300")

    def test_custom_share_mode(self, members, hotel):
        """Test folding stored custom shares."""
        custom = hotel.model_copy(update={
            "custom_splits": {"a": Decimal("400"), "b": Decimal("300"), "c": Decimal("200")},
        })
        summary = SettlementAggregator(use_custom_shares=True).aggregate([custom], members)
        assert summary.balances == {
            "a": Decimal("500"),
            "b": Decimal("-300"),
            "c": Decimal("-200"),
        }
        assert summary.consumption_of("a") == Decimal("400")
        assert_zero_sum(summary.balances)

    def test_custom_share_mode_stays_zero_sum_when_shares_fall_short(self, members, hotel):
        """Test the payer is credited with what was actually debited."""
        custom = hotel.model_copy(update={
            "custom_splits": {"a": Decimal("400"), "b": Decimal("300"), "c": Decimal("199.6")},
        })
        summary = SettlementAggregator(use_custom_shares=True).aggregate([custom], members)
        assert_zero_sum(summary.balances)

    def test_dangling_reference(self, members, hotel):
        """Test unknown member ids are kept and reported, not dropped."""
        ghost = hotel.model_copy(update={"payer_id": "ghost"})
        summary = SettlementAggregator().aggregate([ghost], members)
        assert summary.unresolved_ids == ["ghost"]
        assert summary.balance_of("ghost") == Decimal("900")
        assert_zero_sum(summary.balances)

    def test_members_without_transactions(self, members):
        """Test an empty ledger."""
        summary = SettlementAggregator().aggregate([], members)
        assert summary.balances == {"a": Decimal("0"), "b": Decimal("0"), "c": Decimal("0")}
        assert summary.total_expense == Decimal("0")


class TestSuggestTransfers:
    """Tests for suggest_transfers."""

    def test_debtors_pay_creditor(self):
        """Test the basic settlement plan."""
        transfers = suggest_transfers({
            "a": Decimal("600"),
            "b": Decimal("-300"),
            "c": Decimal("-300"),
        })
        assert [(t.from_id, t.to_id, t.amount) for t in transfers] == [
            ("b", "a", Decimal("300")),
            ("c", "a", Decimal("300")),
        ]

    def test_largest_debtor_pays_first(self):
        """Test greedy matching order."""
        transfers = suggest_transfers({
            "a": Decimal("-500"),
            "b": Decimal("200"),
            "c": Decimal("300"),
        })
        assert [(t.from_id, t.to_id, t.amount) for t in transfers] == [
            ("a", "c", Decimal("300")),
            ("a", "b", Decimal("200")),
        ]

    def test_settled_ledger(self):
        """Test nothing to pay when balances are below one unit."""
        assert suggest_transfers({"a": Decimal("0.3"), "b": Decimal("-0.3")}) == []

    def test_transfers_settle_aggregated_balances(self, members, hotel, train):
        """Test transfers bring every rounded balance to zero."""
        summary = SettlementAggregator().aggregate([hotel, train], members)
        remaining = summary.rounded_balances()
        for transfer in suggest_transfers(summary.balances):
            remaining[transfer.from_id] += transfer.amount
            remaining[transfer.to_id] -= transfer.amount
        assert all(abs(amount) <= 1 for amount in remaining.values())
