"""
retail_kernel.domain.inventory -- Inventory value objects.

Responsibility:
    Immutable DTOs for batches, movements, cost allocation requests and
    results, and valuation snapshots.  ORM rows are converted to these at
    the InventoryStore boundary so engines never touch a Session.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - CostAllocationRequest rejects quantity <= 0.
    - CostAllocationResult rejects allocations whose quantities do not sum
      to the requested quantity, or whose totals disagree with
      quantity x unit cost.
    - All value objects are frozen dataclasses.

Failure modes:
    - ValueError from __post_init__ on the checks above.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from retail_kernel.logging_config import get_logger

logger = get_logger("domain.inventory")


class MovementType(str, Enum):
    """Kinds of stock quantity change."""

    PURCHASE = "PURCHASE"
    SALE = "SALE"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    WRITE_OFF = "WRITE_OFF"
    EXPIRY = "EXPIRY"


@dataclass(frozen=True, slots=True)
class InventoryBatch:
    """
    A cost-tagged quantity of one variant received at one time and location.

    ``quantity`` is the remaining quantity; ``unit_cost`` is in minor
    currency units and never changes after creation.
    """

    id: UUID
    channel_id: str
    stock_location_id: str
    product_variant_id: str
    quantity: int
    unit_cost: int
    source_type: str
    source_id: str
    created_at: datetime
    updated_at: datetime
    expiry_date: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_exhausted(self) -> bool:
        return self.quantity == 0

    @property
    def total_value(self) -> int:
        return self.quantity * self.unit_cost

    def is_expired(self, as_of: datetime) -> bool:
        """True if the batch has an expiry date strictly before ``as_of``."""
        return self.expiry_date is not None and self.expiry_date < as_of


@dataclass(frozen=True, slots=True)
class InventoryMovement:
    """Append-only record of a signed stock quantity change."""

    id: UUID
    channel_id: str
    stock_location_id: str
    product_variant_id: str
    movement_type: MovementType
    quantity: int
    source_type: str
    source_id: str
    created_at: datetime
    batch_id: UUID | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CreateBatchInput:
    channel_id: str
    stock_location_id: str
    product_variant_id: str
    quantity: int
    unit_cost: int
    source_type: str
    source_id: str
    expiry_date: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    # Re-costed batches keep the receipt time of the batch they replace.
    received_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Batch quantity must be positive, got {self.quantity}")
        if self.unit_cost < 0:
            raise ValueError(f"Batch unit cost cannot be negative, got {self.unit_cost}")


@dataclass(frozen=True, slots=True)
class CreateMovementInput:
    channel_id: str
    stock_location_id: str
    product_variant_id: str
    movement_type: MovementType
    quantity: int
    source_type: str
    source_id: str
    batch_id: UUID | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BatchFilters:
    """Filter set for batch reads and valuation snapshots."""

    channel_id: str
    stock_location_id: str | None = None
    product_variant_id: str | None = None
    include_exhausted: bool = False


@dataclass(frozen=True, slots=True)
class MovementFilters:
    """Filter set for movement audit queries.  Date bounds are inclusive."""

    channel_id: str
    stock_location_id: str | None = None
    product_variant_id: str | None = None
    batch_id: UUID | None = None
    movement_type: MovementType | None = None
    source_type: str | None = None
    source_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True, slots=True)
class BatchValuation:
    batch_id: UUID
    product_variant_id: str
    quantity: int
    unit_cost: int
    total_value: int


@dataclass(frozen=True, slots=True)
class ValuationSnapshot:
    """Point-in-time aggregate of open-batch value.  Derived, never stored."""

    channel_id: str
    stock_location_id: str | None
    product_variant_id: str | None
    total_quantity: int
    total_value: int
    batch_count: int
    as_of: datetime
    batches: tuple[BatchValuation, ...] = ()


@dataclass(frozen=True, slots=True)
class CostAllocationRequest:
    channel_id: str
    stock_location_id: str
    product_variant_id: str
    quantity: int
    source_type: str
    source_id: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            logger.error("cost_allocation_invalid_quantity", extra={
                "product_variant_id": self.product_variant_id,
                "quantity": self.quantity,
            })
            raise ValueError(
                f"Allocation quantity must be positive, got {self.quantity}"
            )


@dataclass(frozen=True, slots=True)
class BatchAllocation:
    """Quantity drawn from one batch and its cost."""

    batch_id: UUID
    quantity: int
    unit_cost: int
    total_cost: int


@dataclass(frozen=True, slots=True)
class RecostLot:
    """Part of an open batch re-priced at ``unit_cost``."""

    batch_id: UUID
    quantity: int
    unit_cost: int


@dataclass(frozen=True, slots=True)
class CostAllocationResult:
    """
    Ordered per-batch allocations for one request.

    Allocation quantities always sum to ``requested_quantity``.
    """

    requested_quantity: int
    allocations: tuple[BatchAllocation, ...]
    total_cost: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        allocated = sum(a.quantity for a in self.allocations)
        if allocated != self.requested_quantity:
            raise ValueError(
                f"Allocations sum to {allocated}, expected {self.requested_quantity}"
            )
        for a in self.allocations:
            if a.quantity <= 0 or a.quantity * a.unit_cost != a.total_cost:
                raise ValueError(f"Invalid allocation for batch {a.batch_id}")
        cost = sum(a.total_cost for a in self.allocations)
        if cost != self.total_cost:
            raise ValueError(
                f"Allocation costs sum to {cost}, expected {self.total_cost}"
            )

    @property
    def batch_count(self) -> int:
        return len(self.allocations)
