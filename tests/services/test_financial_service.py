"""Tests for the FinancialService business facade."""

from decimal import Decimal

import pytest

from retail_kernel.domain.ledger import AccountCode, PostingStatus
from retail_kernel.models.commerce import OrderPaymentModel, PaymentState
from retail_services.financial_service import to_display_units

CHANNEL = "1"


@pytest.fixture
def financial(services):
    return services.financial


@pytest.fixture
def customer(make_customer):
    return make_customer()


def add_payment(session, clock, order, amount, method="cash-payment", state=PaymentState.SETTLED):
    payment = OrderPaymentModel(
        method=method,
        amount=amount,
        state=state,
        settled_at=clock.now() if state == PaymentState.SETTLED else None,
        created_at=clock.now(),
        updated_at=clock.now(),
    )
    order.payments.append(payment)
    session.flush()
    return payment


class TestDisplayUnits:
    """Tests for minor-to-display conversion."""

    @pytest.mark.parametrize(
        "minor, display",
        [(0, Decimal("0.00")), (1, Decimal("0.01")), (12345, Decimal("123.45")), (-250, Decimal("-2.50"))],
    )
    def test_conversion(self, minor, display):
        """Minor units divide by 100 with two decimal places."""
        assert to_display_units(minor) == display


class TestRecordPayment:
    """Tests for customer payments."""

    def test_settled_payment_posts_sale(self, financial, session, clock, make_order, customer):
        """A settled M-Pesa payment lands in M-Pesa clearing and sales."""
        order = make_order(customer, total=1500)
        payment = add_payment(session, clock, order, 1500, method="mpesa-payment")

        result = financial.record_payment(CHANNEL, payment, order)

        assert result.status == PostingStatus.PERSISTED
        assert result.idempotency_key == f"payment:{payment.id}"
        assert financial.get_account_balance(CHANNEL, AccountCode.CLEARING_MPESA) == Decimal("15.00")
        assert financial.get_sales_total(CHANNEL) == Decimal("15.00")

    def test_unsettled_payment_skipped(self, financial, session, clock, make_order, customer, captured_logs):
        """Authorized-only payments are not posted."""
        order = make_order(customer, total=1500)
        payment = add_payment(session, clock, order, 1500, state=PaymentState.AUTHORIZED)

        assert financial.record_payment(CHANNEL, payment, order) is None
        assert financial.get_sales_total(CHANNEL) == Decimal("0.00")
        assert any(r["message"] == "payment_not_settled_skipped" for r in captured_logs())

    def test_payment_is_idempotent(self, financial, session, clock, make_order, customer):
        """Recording the same payment twice posts once."""
        order = make_order(customer, total=800)
        payment = add_payment(session, clock, order, 800)

        financial.record_payment(CHANNEL, payment, order)
        second = financial.record_payment(CHANNEL, payment, order)

        assert second.status == PostingStatus.ALREADY_EXISTS
        assert financial.get_sales_total(CHANNEL) == Decimal("8.00")


class TestCreditFlow:
    """Tests for credit sales and repayments."""

    def test_credit_sale_then_allocation(self, financial, make_order, customer):
        """A credit sale raises the customer's balance; an allocation lowers it."""
        order = make_order(customer, total=2000)

        financial.record_credit_sale(CHANNEL, order)
        assert financial.get_customer_balance(CHANNEL, customer.id) == Decimal("20.00")

        financial.record_payment_allocation(CHANNEL, "alloc-1", order, "cash-payment", 500)
        assert financial.get_customer_balance(CHANNEL, customer.id) == Decimal("15.00")
        assert financial.get_account_balance(CHANNEL, AccountCode.CASH_ON_HAND) == Decimal("5.00")

    def test_refund(self, financial, session, clock, make_order, customer):
        """Refunds debit sales returns and credit the original method's account."""
        order = make_order(customer, total=1000)
        payment = add_payment(session, clock, order, 1000)
        financial.record_payment(CHANNEL, payment, order)

        result = financial.record_refund(CHANNEL, "refund-1", order, payment, 300)

        assert result.idempotency_key == "refund:refund-1"
        assert financial.get_account_balance(CHANNEL, AccountCode.SALES_RETURNS) == Decimal("3.00")
        assert financial.get_account_balance(CHANNEL, AccountCode.CASH_ON_HAND) == Decimal("7.00")


class TestSupplierFlow:
    """Tests for supplier purchases and payments."""

    def test_purchase_and_payment(self, financial):
        """Credit purchases are owed to the supplier until paid."""
        financial.record_purchase(CHANNEL, "po-1", "REF-1", "s1", 5000)
        assert financial.get_supplier_balance(CHANNEL, "s1") == Decimal("50.00")
        assert financial.get_purchase_total(CHANNEL) == Decimal("50.00")

        result = financial.record_supplier_payment(
            CHANNEL, "sp-1", "po-1", "REF-1", "s1", 2000, "mpesa-payment"
        )

        assert result.idempotency_key == "supplier-payment:sp-1"
        assert financial.get_supplier_balance(CHANNEL, "s1") == Decimal("30.00")
        assert financial.get_expense_total(CHANNEL) == Decimal("0.00")
