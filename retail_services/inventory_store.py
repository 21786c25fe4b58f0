"""
retail_services.inventory_store -- Persistence for batches and movements.

Responsibility:
    CRUD and verification primitives over inventory batches and movements.
    Converts ORM rows into frozen domain DTOs so engines never see a
    Session.  Implements the ``BatchSource`` protocol used by costing
    strategies.

Architecture position:
    Services -- imperative shell.  Flush-only: every call runs inside the
    caller's transaction and never commits or rolls back.

Invariants enforced:
    - Batch quantity never goes negative: update_batch_quantity re-reads
      the row under SELECT ... FOR UPDATE and raises before writing.
    - Open batches are returned oldest-received first, ties broken by id.
    - Movements are insert-only.

Failure modes:
    - InvariantViolationError for a missing batch or a negative result.

Audit relevance:
    Batches are never deleted; exhausted batches stay queryable with
    ``include_exhausted=True``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from retail_kernel.domain.clock import Clock, SystemClock, ensure_utc
from retail_kernel.domain.inventory import (
    BatchFilters,
    BatchValuation,
    CreateBatchInput,
    CreateMovementInput,
    InventoryBatch,
    InventoryMovement,
    MovementFilters,
    MovementType,
    ValuationSnapshot,
)
from retail_kernel.exceptions import InvariantViolationError
from retail_kernel.logging_config import get_logger
from retail_kernel.models.inventory import InventoryBatchModel, InventoryMovementModel
from retail_kernel.services.base import BaseService

logger = get_logger("services.inventory_store")


def batch_to_dto(model: InventoryBatchModel) -> InventoryBatch:
    return InventoryBatch(
        id=model.id,
        channel_id=model.channel_id,
        stock_location_id=model.stock_location_id,
        product_variant_id=model.product_variant_id,
        quantity=model.quantity,
        unit_cost=model.unit_cost,
        source_type=model.source_type,
        source_id=model.source_id,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
        expiry_date=ensure_utc(model.expiry_date),
        metadata=dict(model.batch_metadata or {}),
    )


def movement_to_dto(model: InventoryMovementModel) -> InventoryMovement:
    return InventoryMovement(
        id=model.id,
        channel_id=model.channel_id,
        stock_location_id=model.stock_location_id,
        product_variant_id=model.product_variant_id,
        movement_type=MovementType(model.movement_type),
        quantity=model.quantity,
        source_type=model.source_type,
        source_id=model.source_id,
        created_at=ensure_utc(model.created_at),
        batch_id=model.batch_id,
        metadata=dict(model.movement_metadata or {}),
    )


class InventoryStore(BaseService):
    """
    Batch and movement persistence within the caller's transaction.

    Contract:
        Every write is flushed so later reads in the same transaction see it.

    Non-goals:
        - No transaction management.
        - No costing or expiry decisions.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def create_batch(self, data: CreateBatchInput) -> InventoryBatch:
        now = self._clock.now()
        model = InventoryBatchModel(
            channel_id=data.channel_id,
            stock_location_id=data.stock_location_id,
            product_variant_id=data.product_variant_id,
            quantity=data.quantity,
            unit_cost=data.unit_cost,
            expiry_date=data.expiry_date,
            source_type=data.source_type,
            source_id=data.source_id,
            batch_metadata=dict(data.metadata),
            created_at=data.received_at or now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "inventory_batch_created",
            extra={
                "batch_id": str(model.id),
                "product_variant_id": data.product_variant_id,
                "stock_location_id": data.stock_location_id,
                "quantity": data.quantity,
                "unit_cost": data.unit_cost,
                "source_type": data.source_type,
                "source_id": data.source_id,
            },
        )
        return batch_to_dto(model)

    def verify_batch_exists(self, batch_id: UUID) -> bool:
        return self.session.get(InventoryBatchModel, batch_id) is not None

    def get_batch(self, batch_id: UUID) -> InventoryBatch | None:
        model = self.session.get(InventoryBatchModel, batch_id)
        return batch_to_dto(model) if model is not None else None

    def update_batch_quantity(self, batch_id: UUID, delta: int) -> InventoryBatch:
        """
        Apply ``delta`` (negative for consumption) to a batch.

        Raises:
            InvariantViolationError: batch missing or result would be negative.
        """
        model = self.session.execute(
            select(InventoryBatchModel)
            .where(InventoryBatchModel.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if model is None:
            logger.error("inventory_batch_not_found", extra={"batch_id": str(batch_id)})
            raise InvariantViolationError(f"Batch {batch_id} not found", batch_id=str(batch_id))

        new_quantity = model.quantity + delta
        if new_quantity < 0:
            logger.error(
                "inventory_batch_negative_quantity",
                extra={
                    "batch_id": str(batch_id),
                    "current_quantity": model.quantity,
                    "delta": delta,
                },
            )
            raise InvariantViolationError(
                f"Batch {batch_id} quantity would become negative: "
                f"{model.quantity} + ({delta}) = {new_quantity}",
                batch_id=str(batch_id),
            )

        model.quantity = new_quantity
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.debug(
            "inventory_batch_quantity_updated",
            extra={"batch_id": str(batch_id), "delta": delta, "quantity": new_quantity},
        )
        return batch_to_dto(model)

    def get_open_batches(self, filters: BatchFilters) -> list[InventoryBatch]:
        """Batches matching ``filters``, oldest-received first."""
        query = select(InventoryBatchModel).where(
            InventoryBatchModel.channel_id == filters.channel_id
        )
        if filters.stock_location_id is not None:
            query = query.where(InventoryBatchModel.stock_location_id == filters.stock_location_id)
        if filters.product_variant_id is not None:
            query = query.where(
                InventoryBatchModel.product_variant_id == filters.product_variant_id
            )
        if not filters.include_exhausted:
            query = query.where(InventoryBatchModel.quantity > 0)
        query = query.order_by(InventoryBatchModel.created_at, InventoryBatchModel.id)

        return [batch_to_dto(m) for m in self.session.execute(query).scalars().all()]

    def get_batches_expiring_before(
        self,
        channel_id: str,
        cutoff: datetime,
        stock_location_id: str | None = None,
    ) -> list[InventoryBatch]:
        """Open batches whose expiry date is strictly before ``cutoff``."""
        query = select(InventoryBatchModel).where(
            InventoryBatchModel.channel_id == channel_id,
            InventoryBatchModel.quantity > 0,
            InventoryBatchModel.expiry_date.is_not(None),
            InventoryBatchModel.expiry_date < cutoff,
        )
        if stock_location_id is not None:
            query = query.where(InventoryBatchModel.stock_location_id == stock_location_id)
        query = query.order_by(InventoryBatchModel.expiry_date, InventoryBatchModel.id)
        return [batch_to_dto(m) for m in self.session.execute(query).scalars().all()]

    def get_available_quantity(
        self,
        channel_id: str,
        stock_location_id: str,
        product_variant_id: str,
    ) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryBatchModel.quantity), 0)).where(
                InventoryBatchModel.channel_id == channel_id,
                InventoryBatchModel.stock_location_id == stock_location_id,
                InventoryBatchModel.product_variant_id == product_variant_id,
                InventoryBatchModel.quantity > 0,
            )
        ).scalar_one()
        return int(total)

    def verify_stock_level(
        self,
        channel_id: str,
        product_variant_id: str,
        stock_location_id: str,
        quantity: int,
    ) -> bool:
        """True when open batches hold at least ``quantity`` units."""
        return self.get_available_quantity(channel_id, stock_location_id, product_variant_id) >= quantity

    def get_valuation_snapshot(self, filters: BatchFilters) -> ValuationSnapshot:
        batches = self.get_open_batches(
            BatchFilters(
                channel_id=filters.channel_id,
                stock_location_id=filters.stock_location_id,
                product_variant_id=filters.product_variant_id,
            )
        )
        return ValuationSnapshot(
            channel_id=filters.channel_id,
            stock_location_id=filters.stock_location_id,
            product_variant_id=filters.product_variant_id,
            total_quantity=sum(b.quantity for b in batches),
            total_value=sum(b.total_value for b in batches),
            batch_count=len(batches),
            as_of=self._clock.now(),
            batches=tuple(
                BatchValuation(
                    batch_id=b.id,
                    product_variant_id=b.product_variant_id,
                    quantity=b.quantity,
                    unit_cost=b.unit_cost,
                    total_value=b.total_value,
                )
                for b in batches
            ),
        )

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def create_movement(self, data: CreateMovementInput) -> InventoryMovement:
        model = InventoryMovementModel(
            channel_id=data.channel_id,
            stock_location_id=data.stock_location_id,
            product_variant_id=data.product_variant_id,
            movement_type=MovementType(data.movement_type).value,
            quantity=data.quantity,
            batch_id=data.batch_id,
            source_type=data.source_type,
            source_id=data.source_id,
            movement_metadata=dict(data.metadata),
            created_at=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.debug(
            "inventory_movement_created",
            extra={
                "movement_id": str(model.id),
                "movement_type": model.movement_type,
                "quantity": data.quantity,
                "batch_id": str(data.batch_id) if data.batch_id else None,
            },
        )
        return movement_to_dto(model)

    def get_movements(self, filters: MovementFilters) -> list[InventoryMovement]:
        """Movements matching ``filters`` in insertion-time order."""
        query = select(InventoryMovementModel).where(
            InventoryMovementModel.channel_id == filters.channel_id
        )
        if filters.stock_location_id is not None:
            query = query.where(
                InventoryMovementModel.stock_location_id == filters.stock_location_id
            )
        if filters.product_variant_id is not None:
            query = query.where(
                InventoryMovementModel.product_variant_id == filters.product_variant_id
            )
        if filters.batch_id is not None:
            query = query.where(InventoryMovementModel.batch_id == filters.batch_id)
        if filters.movement_type is not None:
            query = query.where(
                InventoryMovementModel.movement_type == MovementType(filters.movement_type).value
            )
        if filters.source_type is not None:
            query = query.where(InventoryMovementModel.source_type == filters.source_type)
        if filters.source_id is not None:
            query = query.where(InventoryMovementModel.source_id == filters.source_id)
        if filters.start_date is not None:
            query = query.where(InventoryMovementModel.created_at >= filters.start_date)
        if filters.end_date is not None:
            query = query.where(InventoryMovementModel.created_at <= filters.end_date)
        query = query.order_by(InventoryMovementModel.created_at, InventoryMovementModel.id)

        return [movement_to_dto(m) for m in self.session.execute(query).scalars().all()]

    def sum_movements_by_batch(self, channel_id: str) -> dict[UUID, int]:
        """Net movement quantity per batch (batch-less movements excluded)."""
        rows = self.session.execute(
            select(InventoryMovementModel.batch_id, func.sum(InventoryMovementModel.quantity))
            .where(
                InventoryMovementModel.channel_id == channel_id,
                InventoryMovementModel.batch_id.is_not(None),
            )
            .group_by(InventoryMovementModel.batch_id)
        ).all()
        return {batch_id: int(total) for batch_id, total in rows}
