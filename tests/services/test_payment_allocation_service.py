"""
Tests for PaymentAllocationService.

Covers:
- Oldest-first allocation across unpaid orders
- Order payments, order custom fields, and ledger postings per order
- Credit release and last-repayment stamping
- Subset allocation, excess payments, and skipped order states
- Failure paths and all-or-nothing rollback
"""

from uuid import uuid4

import pytest

from retail_kernel.domain.ledger import AccountCode
from retail_kernel.exceptions import (
    CustomerNotFoundError,
    NoUnpaidOrdersError,
    PeriodLockedError,
    ValidationError,
)
from retail_kernel.logging_config import LogContext
from retail_kernel.models.commerce import OrderState, PaymentState
from retail_kernel.selectors.ledger_selector import LedgerSelector
from retail_services.payment_allocation_service import (
    CREDIT_PAYMENT_METHOD,
    PaymentAllocationInput,
)

CHANNEL = "1"


@pytest.fixture
def allocation(services):
    return services.payment_allocation


@pytest.fixture
def customer(make_customer, services):
    customer = make_customer({"isCreditApproved": True, "creditLimit": 5000})
    services.credit.apply_credit_charge(customer.id, 1000)
    return customer


def pay(customer, amount, order_ids=None):
    return PaymentAllocationInput(
        channel_id=CHANNEL,
        customer_id=str(customer.id),
        payment_amount=amount,
        order_ids=order_ids,
    )


def credit_payments(order):
    return [p for p in order.payments if p.method == CREDIT_PAYMENT_METHOD]


class TestAllocatePayment:
    """Tests for the successful allocation path."""

    def test_oldest_first(self, allocation, customer, make_order):
        """[300, 500, 200] owed with 650 paid settles the first and part of the second."""
        first = make_order(customer, 300)
        second = make_order(customer, 500)
        third = make_order(customer, 200)

        result = allocation.allocate_payment_to_orders(pay(customer, 650))

        assert [(a.order_id, a.amount_paid) for a in result.orders_paid] == [
            (str(first.id), 300),
            (str(second.id), 350),
        ]
        assert result.total_allocated == 650
        assert result.excess_payment == 0
        assert result.remaining_balance == 150 + 200
        assert third.amount_owed == 200

    def test_records_order_payments(self, allocation, customer, make_order):
        """Each paid order gets a settled credit-payment with allocation metadata."""
        order = make_order(customer, 300)

        allocation.allocate_payment_to_orders(pay(customer, 300))

        [payment] = credit_payments(order)
        assert payment.state == PaymentState.SETTLED
        assert payment.amount == 300
        assert payment.payment_metadata == {
            "paymentType": "credit",
            "customerId": str(customer.id),
            "allocatedAmount": 300,
        }
        assert order.amount_owed == 0
        assert order.custom_fields["lastPaymentAllocationId"] == str(payment.id)

    def test_posts_one_entry_per_order_payment(self, allocation, customer, make_order, session, query):
        """Every order payment has its own payment-allocation posting."""
        first = make_order(customer, 300)
        second = make_order(customer, 500)

        allocation.allocate_payment_to_orders(pay(customer, 800))

        selector = LedgerSelector(session)
        for order in (first, second):
            [payment] = credit_payments(order)
            entry = selector.get_entry(CHANNEL, f"payment-allocation:{payment.id}")
            assert entry.total_debit == payment.amount
        clearing = [
            r for r in query.get_trial_balance(CHANNEL) if r.account_code == AccountCode.CLEARING_CREDIT
        ]
        assert clearing[0].balance == 800

    def test_releases_customer_credit(self, allocation, services, customer, make_order, clock):
        """The total allocated is released from the outstanding amount."""
        make_order(customer, 600)

        allocation.allocate_payment_to_orders(pay(customer, 400))

        summary = services.credit.get_credit_summary(customer.id)
        assert summary.outstanding_amount == -600
        assert summary.last_repayment_amount == 400
        assert summary.last_repayment_date == clock.now()

    def test_partially_paid_order_owes_remainder(self, allocation, customer, make_order):
        """Earlier settled payments reduce what an order can absorb."""
        order = make_order(customer, 500, paid=200)

        result = allocation.allocate_payment_to_orders(pay(customer, 1000))

        assert [a.amount_paid for a in result.orders_paid] == [300]
        assert result.excess_payment == 700
        assert order.amount_owed == 0

    def test_subset_of_orders(self, allocation, customer, make_order):
        """order_ids restricts allocation to the named orders."""
        make_order(customer, 300)
        chosen = make_order(customer, 500)

        result = allocation.allocate_payment_to_orders(
            pay(customer, 200, order_ids=[str(chosen.id)])
        )

        assert [a.order_id for a in result.orders_paid] == [str(chosen.id)]

    def test_cancelled_orders_ignored(self, allocation, customer, make_order):
        """Orders outside the payable states receive nothing."""
        make_order(customer, 300, state=OrderState.CANCELLED)
        payable = make_order(customer, 100, state=OrderState.ARRANGING_PAYMENT)

        result = allocation.allocate_payment_to_orders(pay(customer, 300))

        assert [a.order_id for a in result.orders_paid] == [str(payable.id)]
        assert result.excess_payment == 200

    def test_actor_recorded_on_order(self, allocation, customer, make_order):
        """The acting user from the log context is stamped on the order."""
        order = make_order(customer, 100)
        LogContext.set(actor_id="user-7")

        allocation.allocate_payment_to_orders(pay(customer, 100))

        assert order.custom_fields["lastModifiedByUserId"] == "user-7"

    def test_logs_allocation(self, allocation, customer, make_order, captured_logs):
        """A completed allocation is logged with its totals."""
        make_order(customer, 100)

        allocation.allocate_payment_to_orders(pay(customer, 150))

        [record] = [r for r in captured_logs() if r["message"] == "payment_allocated"]
        assert record["total_allocated"] == 100
        assert record["excess_payment"] == 50


class TestAllocationFailures:
    """Tests for rejected allocations."""

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount(self, allocation, customer, amount):
        """Payments must be positive."""
        with pytest.raises(ValidationError):
            allocation.allocate_payment_to_orders(pay(customer, amount))

    @pytest.mark.parametrize("customer_id", ["not-a-uuid", str(uuid4())])
    def test_unknown_customer(self, allocation, customer_id):
        """Unknown or malformed customer ids are reported as not found."""
        with pytest.raises(CustomerNotFoundError):
            allocation.allocate_payment_to_orders(
                PaymentAllocationInput(channel_id=CHANNEL, customer_id=customer_id, payment_amount=100)
            )

    def test_no_unpaid_orders(self, allocation, customer, make_order):
        """A customer who owes nothing cannot receive an allocation."""
        make_order(customer, 300, paid=300)

        with pytest.raises(NoUnpaidOrdersError):
            allocation.allocate_payment_to_orders(pay(customer, 100))

    def test_posting_failure_rolls_back_everything(
        self, allocation, services, session, customer, make_order, clock
    ):
        """A ledger failure leaves no order payment and no credit change behind."""
        order = make_order(customer, 300)
        session.commit()
        services.period_locks.lock_through(CHANNEL, clock.now())
        session.commit()

        with pytest.raises(PeriodLockedError):
            allocation.allocate_payment_to_orders(pay(customer, 300))

        assert credit_payments(order) == []
        summary = services.credit.get_credit_summary(customer.id)
        assert summary.outstanding_amount == -1000
        assert summary.last_repayment_date is None
