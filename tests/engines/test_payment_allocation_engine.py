"""Tests for oldest-first payment allocation arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from retail_engines.allocation import (
    OpenOrder,
    calculate_payment_allocation,
    calculate_remaining_balance,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def orders(*owed):
    return [
        OpenOrder(
            order_id=f"o{i}",
            order_code=f"ORD-{i}",
            amount_owed=amount,
            created_at=T0 + timedelta(days=i),
        )
        for i, amount in enumerate(owed)
    ]


class TestCalculatePaymentAllocation:
    """Tests for the allocation walk."""

    def test_oldest_first_partial(self):
        """[300, 500, 200] owed with 650 paid gives [300, 350] and no excess."""
        plan = calculate_payment_allocation(orders=orders(300, 500, 200), payment_amount=650)

        assert [(a.order_id, a.amount_paid) for a in plan.allocations] == [("o0", 300), ("o1", 350)]
        assert plan.total_allocated == 650
        assert plan.excess_payment == 0

    def test_input_order_does_not_matter(self):
        """Orders are sorted by creation time before allocating."""
        shuffled = list(reversed(orders(300, 500, 200)))
        plan = calculate_payment_allocation(orders=shuffled, payment_amount=650)

        assert [a.order_id for a in plan.allocations] == ["o0", "o1"]

    def test_overpayment_leaves_excess(self):
        """Paying more than is owed leaves the difference as excess."""
        plan = calculate_payment_allocation(orders=orders(100, 50), payment_amount=200)

        assert plan.total_allocated == 150
        assert plan.excess_payment == 50

    def test_fully_paid_orders_skipped(self):
        """Orders owing nothing receive nothing."""
        plan = calculate_payment_allocation(orders=orders(0, 100), payment_amount=100)

        assert [a.order_id for a in plan.allocations] == ["o1"]

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_payment_rejected(self, amount):
        """A payment must be positive."""
        with pytest.raises(ValueError):
            calculate_payment_allocation(orders=orders(100), payment_amount=amount)

    def test_remaining_balance(self):
        """Remaining balance is total owed minus what was allocated."""
        owed = orders(300, 500, 200)
        plan = calculate_payment_allocation(orders=owed, payment_amount=650)

        assert calculate_remaining_balance(owed, plan) == 350


class TestAllocationInvariant:
    """sum(allocated) + excess == payment; no order over-paid."""

    @settings(max_examples=200, deadline=None)
    @given(
        owed=st.lists(st.integers(min_value=0, max_value=100_000), min_size=1, max_size=10),
        payment_amount=st.integers(min_value=1, max_value=500_000),
    )
    def test_conservation(self, owed, payment_amount):
        """Every unit of the payment is either allocated or excess."""
        open_orders = orders(*owed)
        plan = calculate_payment_allocation(orders=open_orders, payment_amount=payment_amount)
        by_id = {o.order_id: o for o in open_orders}

        assert sum(a.amount_paid for a in plan.allocations) + plan.excess_payment == payment_amount
        for a in plan.allocations:
            assert 0 < a.amount_paid <= by_id[a.order_id].amount_owed
