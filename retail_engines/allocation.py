"""
retail_engines.allocation -- Oldest-first payment allocation arithmetic.

Responsibility:
    Split one incoming payment across a customer's open orders.  Orders are
    paid oldest-created first; each receives min(remaining, amount_owed).

Architecture position:
    Engines -- pure.  PaymentAllocationService loads orders, calls
    ``calculate_payment_allocation``, then records payments and postings.

Invariants enforced:
    - sum(allocated) + excess_payment == payment_amount.
    - No order receives more than it owes.
    - Orders with nothing owed are skipped.

Failure modes:
    - ValueError if payment_amount <= 0.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from retail_engines.tracer import traced_engine


@dataclass(frozen=True, slots=True)
class OpenOrder:
    order_id: str
    order_code: str
    amount_owed: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class OrderAllocation:
    order_id: str
    order_code: str
    amount_paid: int


@dataclass(frozen=True, slots=True)
class PaymentAllocationPlan:
    allocations: tuple[OrderAllocation, ...]
    total_allocated: int
    excess_payment: int


@traced_engine(
    "payment_allocation", "1.0", fingerprint_fields=("orders", "payment_amount")
)
def calculate_payment_allocation(
    *,
    orders: Sequence[OpenOrder],
    payment_amount: int,
) -> PaymentAllocationPlan:
    if payment_amount <= 0:
        raise ValueError(f"Payment amount must be positive, got {payment_amount}")

    ordered = sorted(orders, key=lambda o: (o.created_at, o.order_id))
    remaining = payment_amount
    allocations: list[OrderAllocation] = []

    for order in ordered:
        if remaining <= 0:
            break
        if order.amount_owed <= 0:
            continue
        paid = min(remaining, order.amount_owed)
        allocations.append(
            OrderAllocation(order_id=order.order_id, order_code=order.order_code, amount_paid=paid)
        )
        remaining -= paid

    return PaymentAllocationPlan(
        allocations=tuple(allocations),
        total_allocated=payment_amount - remaining,
        excess_payment=remaining,
    )


def calculate_remaining_balance(orders: Sequence[OpenOrder], plan: PaymentAllocationPlan) -> int:
    """Total still owed across ``orders`` after applying ``plan``."""
    return sum(max(o.amount_owed, 0) for o in orders) - plan.total_allocated
