"""
retail_engines.costing -- Pluggable cost allocation strategies.

Responsibility:
    Allocate a requested quantity across a variant's open batches and price
    each slice.  Three strategies share one contract:

    FIFO     oldest receipt first (default).
    FEFO     earliest expiry first; batches without expiry go last.
    AVERAGE  FIFO quantities over batches re-priced to the weighted average
             unit cost of all open batches (see plan_average_recost).

Architecture position:
    Engines -- pure calculation layer.  Strategies read open batches through
    the ``BatchSource`` protocol (implemented by InventoryStore) and never
    mutate anything; the orchestrator applies the result.

Invariants enforced:
    - Allocation quantities sum exactly to the requested quantity
      (checked again by CostAllocationResult.__post_init__).
    - Deterministic tie-break: equal sort keys fall back to batch id.
    - total_cost == sum(quantity x unit_cost); integer arithmetic only.
    - Re-cost plans preserve the total value of the open batches exactly.

Failure modes:
    - InsufficientStockError when open quantity < requested quantity.  No
      partial result is returned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from retail_engines.tracer import traced_engine
from retail_kernel.domain.inventory import (
    BatchAllocation,
    BatchFilters,
    CostAllocationRequest,
    CostAllocationResult,
    InventoryBatch,
    RecostLot,
)
from retail_kernel.exceptions import InsufficientStockError
from retail_kernel.logging_config import get_logger

logger = get_logger("engines.costing")

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


class BatchSource(Protocol):
    """Read access to open batches, ordered oldest-received first."""

    def get_open_batches(self, filters: BatchFilters) -> list[InventoryBatch]: ...


def fifo_sort_key(batch: InventoryBatch) -> tuple:
    return (batch.created_at, str(batch.id))


def fefo_sort_key(batch: InventoryBatch) -> tuple:
    return (
        batch.expiry_date is None,
        batch.expiry_date or _FAR_FUTURE,
        batch.created_at,
        str(batch.id),
    )


@traced_engine("cost_allocation", "1.1", fingerprint_fields=("quantity",))
def allocate_in_order(
    *,
    batches: Sequence[InventoryBatch],
    quantity: int,
) -> tuple[BatchAllocation, ...]:
    """
    Walk ``batches`` in the given order taking min(remaining, batch.quantity).

    Preconditions:
        sum of batch quantities >= quantity (callers check first).
    """
    remaining = quantity
    allocations: list[BatchAllocation] = []
    for batch in batches:
        if remaining == 0:
            break
        if batch.quantity <= 0:
            continue
        take = min(remaining, batch.quantity)
        allocations.append(
            BatchAllocation(
                batch_id=batch.id,
                quantity=take,
                unit_cost=batch.unit_cost,
                total_cost=take * batch.unit_cost,
            )
        )
        remaining -= take
    return tuple(allocations)


def weighted_average_unit_cost(batches: Sequence[InventoryBatch]) -> int:
    """Weighted average unit cost, rounded half-up.  0 when nothing is open."""
    total_quantity = sum(b.quantity for b in batches)
    if total_quantity == 0:
        return 0
    total_value = sum(b.quantity * b.unit_cost for b in batches)
    average = (Decimal(total_value) / Decimal(total_quantity)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return int(average)


@traced_engine("average_recost", "1.0")
def plan_average_recost(batches: Sequence[InventoryBatch]) -> tuple[RecostLot, ...]:
    """
    Re-price open batches so every unit carries the weighted average cost.

    Unit costs are whole minor units, so the first ``value % quantity`` units
    in receipt order cost one more than the rest.  The plan keeps the total
    value of the batches unchanged.  Returns () when every batch is already
    priced at the floor or ceiling of the average.
    """
    ordered = sorted((b for b in batches if b.quantity > 0), key=fifo_sort_key)
    total_quantity = sum(b.quantity for b in ordered)
    if total_quantity == 0:
        return ()
    total_value = sum(b.quantity * b.unit_cost for b in ordered)
    base, extra = divmod(total_value, total_quantity)
    if all(b.unit_cost in (base, base + 1) for b in ordered):
        return ()

    lots: list[RecostLot] = []
    for batch in ordered:
        high = min(extra, batch.quantity)
        extra -= high
        if high:
            lots.append(RecostLot(batch_id=batch.id, quantity=high, unit_cost=base + 1))
        if batch.quantity > high:
            lots.append(RecostLot(batch_id=batch.id, quantity=batch.quantity - high, unit_cost=base))
    return tuple(lots)


def allocate_from_lots(lots: Sequence[RecostLot], quantity: int) -> tuple[BatchAllocation, ...]:
    """Walk re-priced lots in order; a batch split into two prices yields two slices."""
    remaining = quantity
    allocations: list[BatchAllocation] = []
    for lot in lots:
        if remaining == 0:
            break
        take = min(remaining, lot.quantity)
        allocations.append(
            BatchAllocation(
                batch_id=lot.batch_id,
                quantity=take,
                unit_cost=lot.unit_cost,
                total_cost=take * lot.unit_cost,
            )
        )
        remaining -= take
    return tuple(allocations)


class CostingStrategy(ABC):
    """
    Contract shared by every costing algorithm.

    Guarantees:
        - Returned allocations sum to ``request.quantity``.
        - Same inputs always produce the same allocations.
        - InsufficientStockError when stock is short; nothing is returned.
    """

    name: str = ""

    def allocate_cost(
        self,
        source: BatchSource,
        request: CostAllocationRequest,
    ) -> CostAllocationResult:
        batches = source.get_open_batches(
            BatchFilters(
                channel_id=request.channel_id,
                stock_location_id=request.stock_location_id,
                product_variant_id=request.product_variant_id,
            )
        )
        open_batches = [b for b in batches if b.quantity > 0]
        available = sum(b.quantity for b in open_batches)

        if available < request.quantity:
            logger.warning(
                "cost_allocation_insufficient_stock",
                extra={
                    "strategy": self.name,
                    "product_variant_id": request.product_variant_id,
                    "stock_location_id": request.stock_location_id,
                    "requested": request.quantity,
                    "available": available,
                },
            )
            raise InsufficientStockError(
                product_variant_id=request.product_variant_id,
                stock_location_id=request.stock_location_id,
                requested=request.quantity,
                available=available,
            )

        allocations = self._allocate(open_batches, request)
        result = CostAllocationResult(
            requested_quantity=request.quantity,
            allocations=allocations,
            total_cost=sum(a.total_cost for a in allocations),
            metadata={
                "strategy": self.name,
                "batchCount": len(allocations),
                **self._result_metadata(open_batches),
            },
        )

        logger.debug(
            "cost_allocated",
            extra={
                "strategy": self.name,
                "product_variant_id": request.product_variant_id,
                "quantity": request.quantity,
                "total_cost": result.total_cost,
                "batch_count": result.batch_count,
            },
        )
        return result

    @abstractmethod
    def _allocate(
        self,
        batches: list[InventoryBatch],
        request: CostAllocationRequest,
    ) -> tuple[BatchAllocation, ...]:
        ...

    def _result_metadata(self, batches: list[InventoryBatch]) -> dict[str, Any]:
        return {}

    def plan_recost(self, batches: Sequence[InventoryBatch]) -> tuple[RecostLot, ...]:
        """Batches to re-price before allocating.  Only AVERAGE re-costs."""
        return ()


class _OrderedCostingStrategy(CostingStrategy):
    """Allocates by walking batches sorted with ``sort_key``."""

    sort_key: Callable[[InventoryBatch], tuple]

    def _allocate(self, batches, request):
        ordered = sorted(batches, key=self.sort_key)
        return allocate_in_order(batches=ordered, quantity=request.quantity)


class FifoCostingStrategy(_OrderedCostingStrategy):
    """First-in, first-out: oldest receipt first, ties broken by batch id."""

    name = "FIFO"
    sort_key = staticmethod(fifo_sort_key)


class FefoCostingStrategy(_OrderedCostingStrategy):
    """First-expiry, first-out.  Undated batches are consumed last."""

    name = "FEFO"
    sort_key = staticmethod(fefo_sort_key)


class WeightedAverageCostingStrategy(CostingStrategy):
    """
    Weighted average cost.

    Physical consumption follows FIFO so batch quantities stay meaningful.
    Units are priced from the re-cost plan, so what leaves the ledger is
    exactly what leaves the batches once the orchestrator has applied
    ``plan_recost``.
    """

    name = "AVERAGE"

    def plan_recost(self, batches):
        return plan_average_recost(batches)

    def _allocate(self, batches, request):
        ordered = sorted(batches, key=fifo_sort_key)
        lots = plan_average_recost(ordered)
        if not lots:
            return allocate_in_order(batches=ordered, quantity=request.quantity)
        return allocate_from_lots(lots, request.quantity)

    def _result_metadata(self, batches):
        return {"averageUnitCost": weighted_average_unit_cost(batches)}


def default_costing_strategies() -> dict[str, CostingStrategy]:
    """Registry of built-in strategies keyed by name."""
    strategies: list[CostingStrategy] = [
        FifoCostingStrategy(),
        FefoCostingStrategy(),
        WeightedAverageCostingStrategy(),
    ]
    return {s.name: s for s in strategies}
