"""
retail_services.payment_allocation_service -- Pay down customer credit.

Responsibility:
    Take one customer repayment and spread it across the customer's unpaid
    orders, oldest first.  For each order paid it records a settled
    ``credit-payment`` OrderPayment, stamps the order's custom fields, and
    posts a payment allocation to the ledger.  Finally it releases the
    total from the customer's running credit.

Architecture position:
    Services -- orchestrator.  Split arithmetic lives in
    ``retail_engines.allocation``; this module loads and writes state
    around it inside one UnitOfWork transaction.

Invariants enforced:
    - sum(allocated) + excess_payment == payment_amount.
    - No order is over-paid.
    - One ledger posting per recorded OrderPayment, keyed
      ``payment-allocation:{order_payment_id}``.

Failure modes:
    - ValidationError for a non-positive payment amount.
    - CustomerNotFoundError for unknown customers.
    - NoUnpaidOrdersError when nothing (in the requested subset) is owed.
    - Any posting error; the whole allocation rolls back.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from retail_engines.allocation import (
    OpenOrder,
    OrderAllocation,
    calculate_payment_allocation,
)
from retail_engines.posting_policy import PaymentContext
from retail_kernel.db.unit_of_work import UnitOfWork
from retail_kernel.domain.clock import Clock, SystemClock, ensure_utc
from retail_kernel.exceptions import (
    CustomerNotFoundError,
    NoUnpaidOrdersError,
    ValidationError,
)
from retail_kernel.logging_config import LogContext, get_logger
from retail_kernel.models.commerce import (
    CustomerModel,
    OrderModel,
    OrderPaymentModel,
    OrderState,
    PaymentState,
)
from retail_services.credit_service import CreditService
from retail_services.ledger_posting_service import LedgerPostingService

logger = get_logger("services.payment_allocation")

CREDIT_PAYMENT_METHOD = "credit-payment"


@dataclass(frozen=True, slots=True)
class PaymentAllocationInput:
    channel_id: str
    customer_id: str
    payment_amount: int
    order_ids: Sequence[str] | None = None


@dataclass(frozen=True, slots=True)
class PaymentAllocationResult:
    orders_paid: tuple[OrderAllocation, ...]
    remaining_balance: int
    total_allocated: int
    excess_payment: int


class PaymentAllocationService:
    """
    Oldest-first repayment allocation.

    Contract:
        Either every order payment, order update, ledger posting, and credit
        release of one call is committed, or none is.
    """

    def __init__(
        self,
        session: Session,
        posting: LedgerPostingService,
        credit: CreditService,
        clock: Clock | None = None,
        unit_of_work: UnitOfWork | None = None,
    ):
        self._session = session
        self._posting = posting
        self._credit = credit
        self._clock = clock or SystemClock()
        self._uow = unit_of_work or UnitOfWork(session)

    def get_unpaid_orders(self, channel_id: str, customer_id: str) -> list[OrderModel]:
        """Payable orders with an amount still owed, oldest first."""
        orders = self._session.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.payments))
            .where(
                OrderModel.channel_id == str(channel_id),
                OrderModel.customer_id == _as_uuid(customer_id),
                OrderModel.state.in_(OrderState.PAYABLE),
            )
            .order_by(OrderModel.created_at, OrderModel.id)
        ).scalars().all()
        return [o for o in orders if o.amount_owed > 0]

    def allocate_payment_to_orders(self, data: PaymentAllocationInput) -> PaymentAllocationResult:
        if data.payment_amount <= 0:
            raise ValidationError(
                "payment_amount", f"Payment amount must be positive, got {data.payment_amount}"
            )

        with LogContext.bind(
            channel_id=data.channel_id, source_type="PaymentAllocation", source_id=data.customer_id
        ):
            try:
                result = self._uow.with_transaction(lambda _session: self._allocate(data))
            except Exception:
                logger.error("payment_allocation_failed", exc_info=True)
                raise

            logger.info(
                "payment_allocated",
                extra={
                    "customer_id": data.customer_id,
                    "payment_amount": data.payment_amount,
                    "total_allocated": result.total_allocated,
                    "excess_payment": result.excess_payment,
                    "remaining_balance": result.remaining_balance,
                    "orders_paid": len(result.orders_paid),
                },
            )
            return result

    def _allocate(self, data: PaymentAllocationInput) -> PaymentAllocationResult:
        customer_key = _as_uuid(data.customer_id)
        if customer_key is None or self._session.get(CustomerModel, customer_key) is None:
            raise CustomerNotFoundError(str(data.customer_id))

        unpaid = self.get_unpaid_orders(data.channel_id, data.customer_id)
        if data.order_ids:
            wanted = {str(o) for o in data.order_ids}
            unpaid = [o for o in unpaid if str(o.id) in wanted]
        if not unpaid:
            raise NoUnpaidOrdersError(str(data.customer_id))

        by_id = {str(o.id): o for o in unpaid}
        plan = calculate_payment_allocation(
            orders=[
                OpenOrder(
                    order_id=str(o.id),
                    order_code=o.code,
                    amount_owed=o.amount_owed,
                    created_at=ensure_utc(o.created_at),
                )
                for o in unpaid
            ],
            payment_amount=data.payment_amount,
        )

        actor_id = LogContext.get_all().get("actor_id")
        for allocation in plan.allocations:
            order = by_id[allocation.order_id]
            payment = self._record_order_payment(order, data.customer_id, allocation.amount_paid)
            order.custom_fields = {
                **(order.custom_fields or {}),
                "lastPaymentAllocationId": str(payment.id),
                **({"lastModifiedByUserId": actor_id} if actor_id else {}),
            }
            order.updated_at = self._clock.now()

            self._posting.post_payment_allocation(
                data.channel_id,
                str(payment.id),
                PaymentContext(
                    amount=allocation.amount_paid,
                    method=CREDIT_PAYMENT_METHOD,
                    order_id=str(order.id),
                    order_code=order.code,
                    customer_id=str(data.customer_id),
                ),
            )
        self._session.flush()

        self._credit.release_credit_charge(data.customer_id, plan.total_allocated)

        remaining_balance = sum(
            o.amount_owed for o in self.get_unpaid_orders(data.channel_id, data.customer_id)
        )
        return PaymentAllocationResult(
            orders_paid=plan.allocations,
            remaining_balance=remaining_balance,
            total_allocated=plan.total_allocated,
            excess_payment=plan.excess_payment,
        )

    def _record_order_payment(
        self, order: OrderModel, customer_id: str, amount: int
    ) -> OrderPaymentModel:
        now = self._clock.now()
        payment = OrderPaymentModel(
            method=CREDIT_PAYMENT_METHOD,
            amount=amount,
            state=PaymentState.SETTLED,
            payment_metadata={
                "paymentType": "credit",
                "customerId": str(customer_id),
                "allocatedAmount": amount,
            },
            settled_at=now,
            created_at=now,
            updated_at=now,
        )
        order.payments.append(payment)
        self._session.flush()
        return payment


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
