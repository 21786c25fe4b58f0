"""
Module: retail_kernel.models.commerce
Responsibility: Minimal read-model of the surrounding commerce system:
    customers with an extensible attribute bag, orders, and order payments.
Architecture position: Kernel > Models.

Non-goals:
    - Order lifecycle, fulfillment, and catalog are owned elsewhere.  Only the
      columns payment allocation and credit tracking read or append are kept.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retail_kernel.db.base import TimestampedBase, UUIDString


class OrderState:
    """Order states the allocation algorithm treats as open for payment."""

    ARRANGING_PAYMENT = "ArrangingPayment"
    PAYMENT_AUTHORIZED = "PaymentAuthorized"
    PAYMENT_SETTLED = "PaymentSettled"
    PARTIALLY_FULFILLED = "PartiallyFulfilled"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"

    PAYABLE = (ARRANGING_PAYMENT, PAYMENT_AUTHORIZED, PARTIALLY_FULFILLED, FULFILLED)


class PaymentState:
    SETTLED = "Settled"
    AUTHORIZED = "Authorized"
    DECLINED = "Declined"


class CustomerModel(TimestampedBase):
    __tablename__ = "customers"

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    custom_fields: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class OrderModel(TimestampedBase):
    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_customer_created", "customer_id", "created_at"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    state: Mapped[str] = mapped_column(String(30), nullable=False)
    total: Mapped[int] = mapped_column(nullable=False)
    custom_fields: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payments: Mapped[list["OrderPaymentModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
    )

    @property
    def settled_total(self) -> int:
        return sum(p.amount for p in self.payments if p.state == PaymentState.SETTLED)

    @property
    def amount_owed(self) -> int:
        return self.total - self.settled_total


class OrderPaymentModel(TimestampedBase):
    __tablename__ = "order_payments"

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[OrderModel] = relationship(back_populates="payments")
