"""
Module: retail_engines
Responsibility:
    Pure calculation engines: cost allocation strategies, expiry policies,
    journal posting templates, and payment allocation arithmetic.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import retail_kernel
    domain types and logging.  MUST NOT import retail_services.

Invariants enforced:
    - Engines never call ``datetime.now()``; expiry policies take a Clock.
    - Integer minor-unit arithmetic only.
    - Identical inputs always produce identical outputs.
"""

from retail_engines.allocation import (
    OpenOrder,
    OrderAllocation,
    PaymentAllocationPlan,
    calculate_payment_allocation,
)
from retail_engines.costing import (
    CostingStrategy,
    FefoCostingStrategy,
    FifoCostingStrategy,
    WeightedAverageCostingStrategy,
    default_costing_strategies,
)
from retail_engines.expiry import (
    DefaultExpiryPolicy,
    ExpiryPolicy,
    ExpiryValidationResult,
    StrictExpiryPolicy,
    default_expiry_policies,
)

__all__ = [
    "CostingStrategy",
    "DefaultExpiryPolicy",
    "ExpiryPolicy",
    "ExpiryValidationResult",
    "FefoCostingStrategy",
    "FifoCostingStrategy",
    "OpenOrder",
    "OrderAllocation",
    "PaymentAllocationPlan",
    "StrictExpiryPolicy",
    "WeightedAverageCostingStrategy",
    "calculate_payment_allocation",
    "default_costing_strategies",
    "default_expiry_policies",
]
