"""
Inventory operation inputs and results.

Frozen dataclasses passed to and returned from InventoryService.  Quantities
are whole units; costs are minor currency units.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from retail_kernel.domain.inventory import BatchAllocation, InventoryBatch, InventoryMovement
from retail_kernel.domain.ledger import PostingResult


# Purchase


@dataclass(frozen=True, slots=True)
class PurchaseLine:
    product_variant_id: str
    quantity: int
    unit_cost: int
    expiry_date: datetime | None = None


@dataclass(frozen=True, slots=True)
class RecordPurchaseInput:
    purchase_id: str
    purchase_reference: str
    supplier_id: str
    channel_id: str
    stock_location_id: str
    lines: tuple[PurchaseLine, ...]
    is_credit_purchase: bool = False


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    purchase_id: str
    batches: tuple[InventoryBatch, ...]
    movements: tuple[InventoryMovement, ...]
    total_cost: int
    posting: PostingResult | None = None


# Sale


@dataclass(frozen=True, slots=True)
class SaleLine:
    product_variant_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class RecordSaleInput:
    order_id: str
    order_code: str
    channel_id: str
    stock_location_id: str
    lines: tuple[SaleLine, ...]
    customer_id: str | None = None


@dataclass(frozen=True, slots=True)
class SaleResult:
    order_id: str
    allocations: tuple[BatchAllocation, ...]
    total_cogs: int
    movements: tuple[InventoryMovement, ...]
    posting: PostingResult | None = None


# Adjustment


@dataclass(frozen=True, slots=True)
class AdjustmentLine:
    product_variant_id: str
    quantity_change: int


@dataclass(frozen=True, slots=True)
class RecordAdjustmentInput:
    adjustment_id: str
    channel_id: str
    stock_location_id: str
    reason: str
    lines: tuple[AdjustmentLine, ...]


@dataclass(frozen=True, slots=True)
class AdjustmentResult:
    adjustment_id: str
    movements: tuple[InventoryMovement, ...]


# Write-off


@dataclass(frozen=True, slots=True)
class WriteOffLine:
    product_variant_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class RecordWriteOffInput:
    adjustment_id: str
    channel_id: str
    stock_location_id: str
    reason: str
    lines: tuple[WriteOffLine, ...]


@dataclass(frozen=True, slots=True)
class WriteOffResult:
    adjustment_id: str
    allocations: tuple[BatchAllocation, ...]
    total_loss: int
    movements: tuple[InventoryMovement, ...]
    posting: PostingResult | None = None
