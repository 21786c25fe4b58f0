"""
retail_services.financial_service -- Business-vocabulary facade over the ledger.

Responsibility:
    Let order and purchasing code record payments, credit sales, supplier
    activity, and refunds without naming accounts, and read balances and
    totals in display units.

Architecture position:
    Services -- facade.  Writes go through LedgerPostingService, reads
    through LedgerQueryService.  Both must share one BalanceCache so a
    write here is visible to the next read.

Invariants enforced:
    - Amounts go in as integer minor units and come out as ``Decimal``
      display units (minor / 100, two places).
    - Unsettled payments are never posted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from retail_engines.posting_policy import (
    PaymentContext,
    PurchaseContext,
    RefundContext,
    SaleContext,
    SupplierPaymentContext,
)
from retail_kernel.domain.ledger import PostingResult
from retail_kernel.logging_config import get_logger
from retail_kernel.models.commerce import OrderModel, OrderPaymentModel, PaymentState
from retail_services.ledger_posting_service import LedgerPostingService
from retail_services.ledger_query_service import BalanceQuery, LedgerQueryService

logger = get_logger("services.financial")

MINOR_UNITS_PER_MAJOR = Decimal(100)
DISPLAY_QUANTUM = Decimal("0.01")


def to_display_units(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(DISPLAY_QUANTUM)


class FinancialService:
    def __init__(self, posting: LedgerPostingService, query: LedgerQueryService):
        self._posting = posting
        self._query = query

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_customer_balance(self, channel_id: str, customer_id: str) -> Decimal:
        """Amount the customer owes."""
        return to_display_units(self._query.get_customer_balance(channel_id, str(customer_id)))

    def get_supplier_balance(self, channel_id: str, supplier_id: str) -> Decimal:
        """Amount owed to the supplier."""
        return to_display_units(self._query.get_supplier_balance(channel_id, str(supplier_id)))

    def get_sales_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Decimal:
        return to_display_units(self._query.get_sales_total(channel_id, start_date, end_date))

    def get_purchase_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Decimal:
        return to_display_units(self._query.get_purchase_total(channel_id, start_date, end_date))

    def get_expense_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Decimal:
        return to_display_units(self._query.get_expense_total(channel_id, start_date, end_date))

    def get_account_balance(
        self,
        channel_id: str,
        account_code: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Decimal:
        balance = self._query.get_account_balance(
            BalanceQuery(channel_id, account_code, start_date, end_date)
        )
        return to_display_units(balance.balance)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_payment(
        self, channel_id: str, payment: OrderPaymentModel, order: OrderModel
    ) -> PostingResult | None:
        """
        Post a settled customer payment (clearing debit, sales credit).

        Credit sales use ``record_credit_sale``; repayments of credit use
        ``record_payment_allocation``.
        """
        if payment.state != PaymentState.SETTLED:
            logger.warning(
                "payment_not_settled_skipped",
                extra={"payment_id": str(payment.id), "payment_state": payment.state},
            )
            return None

        return self._posting.post_payment(
            channel_id,
            str(payment.id),
            PaymentContext(
                amount=payment.amount,
                method=payment.method,
                order_id=str(order.id),
                order_code=order.code,
                customer_id=str(order.customer_id) if order.customer_id else None,
            ),
        )

    def record_credit_sale(self, channel_id: str, order: OrderModel) -> PostingResult:
        return self._posting.post_credit_sale(
            channel_id,
            str(order.id),
            SaleContext(
                amount=order.total,
                order_id=str(order.id),
                order_code=order.code,
                customer_id=str(order.customer_id),
                is_credit_sale=True,
            ),
        )

    def record_payment_allocation(
        self,
        channel_id: str,
        payment_id: str,
        order: OrderModel,
        payment_method: str,
        amount: int,
    ) -> PostingResult:
        return self._posting.post_payment_allocation(
            channel_id,
            str(payment_id),
            PaymentContext(
                amount=amount,
                method=payment_method,
                order_id=str(order.id),
                order_code=order.code,
                customer_id=str(order.customer_id) if order.customer_id else None,
            ),
        )

    def record_purchase(
        self,
        channel_id: str,
        purchase_id: str,
        purchase_reference: str,
        supplier_id: str,
        total_cost: int,
    ) -> PostingResult:
        """Post a supplier purchase made on credit."""
        return self._posting.post_supplier_purchase(
            channel_id,
            str(purchase_id),
            PurchaseContext(
                amount=total_cost,
                purchase_id=str(purchase_id),
                purchase_reference=purchase_reference,
                supplier_id=str(supplier_id),
                is_credit_purchase=True,
            ),
        )

    def record_supplier_payment(
        self,
        channel_id: str,
        payment_id: str,
        purchase_id: str,
        purchase_reference: str,
        supplier_id: str,
        amount: int,
        payment_method: str,
    ) -> PostingResult:
        return self._posting.post_supplier_payment(
            channel_id,
            str(payment_id),
            SupplierPaymentContext(
                amount=amount,
                purchase_id=str(purchase_id),
                purchase_reference=purchase_reference,
                supplier_id=str(supplier_id),
                method=payment_method,
            ),
        )

    def record_refund(
        self,
        channel_id: str,
        refund_id: str,
        order: OrderModel,
        original_payment: OrderPaymentModel,
        amount: int,
    ) -> PostingResult:
        return self._posting.post_refund(
            channel_id,
            str(refund_id),
            RefundContext(
                amount=amount,
                order_id=str(order.id),
                order_code=order.code,
                original_payment_id=str(original_payment.id),
                method=original_payment.method,
            ),
        )
