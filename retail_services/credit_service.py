"""
retail_services.credit_service -- Customer credit tracking.

Responsibility:
    Read and update the credit fields kept in a customer's ``custom_fields``
    bag: approval flag, limit, duration, outstanding amount, and last
    repayment.  ``CreditSummary`` is the derived view callers consume.

Architecture position:
    Services -- flush-only.  PaymentAllocationService calls
    ``release_credit_charge`` inside its own transaction.

Invariants enforced:
    - available_credit = max(limit - |outstanding|, 0).
    - Charges and releases with amount <= 0 change nothing.
    - Credit limit >= 0; credit duration >= 1 day.

Failure modes:
    - CustomerNotFoundError for unknown customers.
    - ValidationError for a negative limit or a duration below one day.

Audit relevance:
    The ledger's ACCOUNTS_RECEIVABLE balance is the authoritative amount
    owed.  These fields are an operational running figure for credit checks
    at the till.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from retail_kernel.domain.clock import Clock, SystemClock, ensure_utc
from retail_kernel.exceptions import CustomerNotFoundError, ValidationError
from retail_kernel.logging_config import get_logger
from retail_kernel.models.commerce import CustomerModel
from retail_kernel.services.base import BaseService

logger = get_logger("services.credit")

DEFAULT_CREDIT_DURATION_DAYS = 30


@dataclass(frozen=True, slots=True)
class CreditSummary:
    customer_id: UUID
    is_credit_approved: bool
    credit_limit: int
    outstanding_amount: int
    available_credit: int
    last_repayment_date: datetime | None
    last_repayment_amount: int
    credit_duration: int

    @classmethod
    def from_fields(cls, customer_id: UUID, fields: dict | None) -> CreditSummary:
        fields = fields or {}
        credit_limit = int(fields.get("creditLimit") or 0)
        outstanding = int(fields.get("outstandingAmount") or 0)
        last_date = fields.get("lastRepaymentDate")
        return cls(
            customer_id=customer_id,
            is_credit_approved=bool(fields.get("isCreditApproved", False)),
            credit_limit=credit_limit,
            outstanding_amount=outstanding,
            available_credit=max(credit_limit - abs(outstanding), 0),
            last_repayment_date=ensure_utc(datetime.fromisoformat(last_date)) if last_date else None,
            last_repayment_amount=int(fields.get("lastRepaymentAmount") or 0),
            credit_duration=int(fields.get("creditDuration") or DEFAULT_CREDIT_DURATION_DAYS),
        )


class CreditService(BaseService):
    """
    Credit approval, limits, and running outstanding amounts per customer.

    Contract:
        Every mutator returns or persists a fresh ``custom_fields`` dict;
        the stored bag is never mutated in place.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get_credit_summary(self, customer_id: UUID | str) -> CreditSummary:
        customer = self._get_customer(customer_id)
        return CreditSummary.from_fields(customer.id, customer.custom_fields)

    def approve_customer_credit(
        self,
        customer_id: UUID | str,
        approved: bool,
        credit_limit: int | None = None,
        credit_duration: int | None = None,
    ) -> CreditSummary:
        customer = self._get_customer(customer_id)
        fields = dict(customer.custom_fields or {})
        fields["isCreditApproved"] = approved
        fields["creditLimit"] = (
            credit_limit if credit_limit is not None else fields.get("creditLimit", 0)
        )
        fields["creditDuration"] = (
            credit_duration
            if credit_duration is not None
            else fields.get("creditDuration", DEFAULT_CREDIT_DURATION_DAYS)
        )
        self._save(customer, fields)

        logger.info(
            "customer_credit_approval_updated",
            extra={
                "customer_id": str(customer.id),
                "approved": approved,
                "credit_limit": fields["creditLimit"],
                "credit_duration": fields["creditDuration"],
            },
        )
        return CreditSummary.from_fields(customer.id, fields)

    def update_credit_limit(
        self,
        customer_id: UUID | str,
        credit_limit: int,
        credit_duration: int | None = None,
    ) -> CreditSummary:
        if credit_limit < 0:
            raise ValidationError("credit_limit", "Credit limit must be zero or positive.")
        if credit_duration is not None:
            self._check_duration(credit_duration)

        customer = self._get_customer(customer_id)
        fields = dict(customer.custom_fields or {})
        fields["creditLimit"] = credit_limit
        if credit_duration is not None:
            fields["creditDuration"] = credit_duration
        self._save(customer, fields)

        logger.info(
            "customer_credit_limit_updated",
            extra={
                "customer_id": str(customer.id),
                "credit_limit": credit_limit,
                "credit_duration": credit_duration,
            },
        )
        return CreditSummary.from_fields(customer.id, fields)

    def update_credit_duration(self, customer_id: UUID | str, credit_duration: int) -> CreditSummary:
        self._check_duration(credit_duration)
        customer = self._get_customer(customer_id)
        fields = {**(customer.custom_fields or {}), "creditDuration": credit_duration}
        self._save(customer, fields)

        logger.info(
            "customer_credit_duration_updated",
            extra={"customer_id": str(customer.id), "credit_duration": credit_duration},
        )
        return CreditSummary.from_fields(customer.id, fields)

    def apply_credit_charge(self, customer_id: UUID | str, amount: int) -> None:
        """Record a credit sale against the customer's running outstanding amount."""
        if amount <= 0:
            return
        customer = self._get_customer(customer_id)
        fields = dict(customer.custom_fields or {})
        fields["outstandingAmount"] = int(fields.get("outstandingAmount") or 0) - amount
        self._save(customer, fields)

        logger.info(
            "customer_credit_charged",
            extra={
                "customer_id": str(customer.id),
                "amount": amount,
                "outstanding_amount": fields["outstandingAmount"],
            },
        )

    def release_credit_charge(self, customer_id: UUID | str, amount: int) -> None:
        """Record a repayment and stamp the last-repayment fields."""
        if amount <= 0:
            return
        customer = self._get_customer(customer_id)
        fields = dict(customer.custom_fields or {})
        fields["outstandingAmount"] = int(fields.get("outstandingAmount") or 0) + amount
        fields["lastRepaymentDate"] = self._clock.now().isoformat()
        fields["lastRepaymentAmount"] = amount
        self._save(customer, fields)

        logger.info(
            "customer_credit_repaid",
            extra={
                "customer_id": str(customer.id),
                "amount": amount,
                "outstanding_amount": fields["outstandingAmount"],
            },
        )

    def _get_customer(self, customer_id: UUID | str) -> CustomerModel:
        try:
            key = customer_id if isinstance(customer_id, UUID) else UUID(str(customer_id))
        except ValueError:
            raise CustomerNotFoundError(str(customer_id)) from None
        customer = self.session.get(CustomerModel, key)
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def _save(self, customer: CustomerModel, fields: dict) -> None:
        customer.custom_fields = fields
        customer.updated_at = self._clock.now()
        self.session.flush()

    @staticmethod
    def _check_duration(credit_duration: int) -> None:
        if credit_duration < 1:
            raise ValidationError("credit_duration", "Credit duration must be at least 1 day.")
