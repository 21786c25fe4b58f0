"""
Module: retail_kernel.models.inventory
Responsibility: ORM persistence for inventory batches and movements.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Batch quantity >= 0 (CHECK constraint, also verified by InventoryStore
      before every decrement).
    - Batch unit_cost is written once at creation; no service updates it.
    - Movements are append-only; no service updates or deletes them.

Audit relevance:
    Batches are never deleted.  An exhausted batch (quantity 0) remains for
    valuation history, and every quantity change is traceable through the
    movement rows that reference it.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from retail_kernel.db.base import Base, TimestampedBase, UUIDString


class InventoryBatchModel(TimestampedBase):
    """
    Persistent storage for one received batch of a product variant.

    Contract:
        ``quantity`` is the remaining quantity and only ever decreases after
        creation.  ``unit_cost`` is in minor currency units.

    Guarantees:
        - (channel, location, variant, created_at) index supports FIFO order.
        - expiry_date index supports FEFO order and expiry sweeps.
    """

    __tablename__ = "inventory_batches"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_batch_quantity_non_negative"),
        CheckConstraint("unit_cost >= 0", name="ck_inventory_batch_unit_cost_non_negative"),
        Index(
            "idx_inventory_batch_fifo",
            "channel_id", "stock_location_id", "product_variant_id", "created_at",
        ),
        Index("idx_inventory_batch_source", "channel_id", "source_type", "source_id"),
        Index("idx_inventory_batch_expiry", "expiry_date"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stock_location_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_cost: Mapped[int] = mapped_column(nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch {self.id} variant={self.product_variant_id} "
            f"qty={self.quantity} @ {self.unit_cost}>"
        )


class InventoryMovementModel(Base):
    """
    Append-only record of a signed stock quantity change.

    Guarantees:
        - quantity > 0 is inbound, quantity < 0 is outbound.
        - batch_id is NULL only for location-level adjustments.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index(
            "idx_inventory_movement_variant",
            "channel_id", "stock_location_id", "product_variant_id", "created_at",
        ),
        Index("idx_inventory_movement_source", "channel_id", "source_type", "source_id"),
        Index("idx_inventory_movement_batch", "batch_id"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stock_location_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_batches.id"),
        nullable=True,
    )
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(100), nullable=False)
    movement_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} {self.quantity} batch={self.batch_id}>"
