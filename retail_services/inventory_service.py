"""
retail_services.inventory_service -- Inventory orchestrator.

Responsibility:
    Drive purchase, sale, adjustment, write-off, and expiry-sweep
    operations end to end: batch and movement writes through
    InventoryStore, cost allocation through the channel's CostingStrategy,
    consumption checks through its ExpiryPolicy, and the financial effect
    through LedgerPostingService.

Architecture position:
    Services -- orchestrator.  Owns the transaction boundary: every public
    mutating method runs inside one UnitOfWork.with_transaction call.

Invariants enforced:
    - All-or-nothing: a failure anywhere (stock, expiry, invariant, posting)
      rolls back every batch, movement, and posting of the operation.
    - Every consumed batch is re-read and passed through the expiry policy
      before its quantity is decremented.
    - Movement quantities are signed: purchases positive, consumption
      negative, adjustments as given.
    - Before a strategy with a re-cost plan allocates, the open batches it
      names are replaced by re-priced batches of equal total value, so the
      batches always carry the cost the ledger was charged.

Failure modes:
    - InsufficientStockError, ExpiryViolationError, InvariantViolationError,
      ConfigurationError, posting errors.  All are logged with exc_info and
      re-raised unchanged.

Audit relevance:
    Adjustments are quantity-only and post nothing to the ledger.  Purchases,
    sales, write-offs, and expiry sweeps each produce exactly one journal
    entry keyed by their source document id.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session

from retail_engines.costing import CostingStrategy
from retail_engines.expiry import ExpiryPolicy
from retail_engines.posting_policy import (
    EXPIRED_WRITE_OFF_REASON,
    InventoryPurchaseContext,
    InventorySaleCogsContext,
    InventoryWriteOffContext,
)
from retail_kernel.db.unit_of_work import UnitOfWork
from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.inventory import (
    BatchAllocation,
    BatchFilters,
    CostAllocationRequest,
    CostAllocationResult,
    CreateBatchInput,
    CreateMovementInput,
    InventoryBatch,
    InventoryMovement,
    MovementType,
    ValuationSnapshot,
)
from retail_kernel.exceptions import (
    ExpiryViolationError,
    InsufficientStockError,
    InvariantViolationError,
    ValidationError,
)
from retail_kernel.logging_config import LogContext, get_logger
from retail_services.inventory_configuration_service import InventoryConfigurationService
from retail_services.inventory_dtos import (
    AdjustmentResult,
    PurchaseResult,
    RecordAdjustmentInput,
    RecordPurchaseInput,
    RecordSaleInput,
    RecordWriteOffInput,
    SaleResult,
    WriteOffResult,
)
from retail_services.inventory_store import InventoryStore
from retail_services.ledger_posting_service import LedgerPostingService

logger = get_logger("services.inventory")

T = TypeVar("T")

SOURCE_PURCHASE = "Purchase"
SOURCE_ORDER = "Order"
SOURCE_ADJUSTMENT = "Adjustment"
SOURCE_WRITE_OFF = "WriteOff"
SOURCE_EXPIRY_SWEEP = "ExpirySweep"
SOURCE_RECOST = "Recost"

RECOST_REASON = "recost"


class InventoryService:
    """
    Transactional inventory operations.

    Contract:
        Callers get either a complete result or an exception with nothing
        persisted.

    Non-goals:
        - Does not decide whether an inventory failure should block the
          caller's own business operation; wrap calls in
          InventoryConfigurationService.run_gated for that.
    """

    def __init__(
        self,
        session: Session,
        configuration: InventoryConfigurationService,
        posting: LedgerPostingService,
        clock: Clock | None = None,
        store: InventoryStore | None = None,
        unit_of_work: UnitOfWork | None = None,
    ):
        self._clock = clock or SystemClock()
        self._configuration = configuration
        self._posting = posting
        self._store = store or InventoryStore(session, self._clock)
        self._uow = unit_of_work or UnitOfWork(session)

    @property
    def store(self) -> InventoryStore:
        return self._store

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def record_purchase(self, data: RecordPurchaseInput) -> PurchaseResult:
        """
        Receive stock: one batch and one PURCHASE movement per line, then an
        inventory purchase posting for the total cost.
        """
        if not data.lines:
            raise ValidationError("lines", "Purchase must have at least one line")
        return self._run(
            "purchase", data.channel_id, SOURCE_PURCHASE, data.purchase_id,
            lambda: self._record_purchase(data),
        )

    def _record_purchase(self, data: RecordPurchaseInput) -> PurchaseResult:
        policy = self._configuration.resolve_expiry_policy(data.channel_id)
        batches: list[InventoryBatch] = []
        movements: list[InventoryMovement] = []
        allocations: list[BatchAllocation] = []

        for line in data.lines:
            batch = self._store.create_batch(
                CreateBatchInput(
                    channel_id=data.channel_id,
                    stock_location_id=data.stock_location_id,
                    product_variant_id=line.product_variant_id,
                    quantity=line.quantity,
                    unit_cost=line.unit_cost,
                    expiry_date=line.expiry_date,
                    source_type=SOURCE_PURCHASE,
                    source_id=data.purchase_id,
                    metadata={
                        "purchaseReference": data.purchase_reference,
                        "supplierId": data.supplier_id,
                    },
                )
            )
            if not self._store.verify_batch_exists(batch.id):
                raise InvariantViolationError(
                    f"Batch {batch.id} was not persisted for purchase {data.purchase_id}",
                    batch_id=str(batch.id),
                )

            movements.append(
                self._store.create_movement(
                    CreateMovementInput(
                        channel_id=data.channel_id,
                        stock_location_id=data.stock_location_id,
                        product_variant_id=line.product_variant_id,
                        movement_type=MovementType.PURCHASE,
                        quantity=line.quantity,
                        batch_id=batch.id,
                        source_type=SOURCE_PURCHASE,
                        source_id=data.purchase_id,
                        metadata={"purchaseReference": data.purchase_reference},
                    )
                )
            )
            policy.on_batch_created(batch)
            batches.append(batch)
            allocations.append(
                BatchAllocation(
                    batch_id=batch.id,
                    quantity=batch.quantity,
                    unit_cost=batch.unit_cost,
                    total_cost=batch.total_value,
                )
            )

        total_cost = sum(a.total_cost for a in allocations)
        posting = None
        if total_cost > 0:
            posting = self._posting.post_inventory_purchase(
                data.channel_id,
                data.purchase_id,
                InventoryPurchaseContext(
                    purchase_id=data.purchase_id,
                    purchase_reference=data.purchase_reference,
                    supplier_id=data.supplier_id,
                    total_cost=total_cost,
                    is_credit_purchase=data.is_credit_purchase,
                    batch_allocations=tuple(allocations),
                ),
            )

        return PurchaseResult(
            purchase_id=data.purchase_id,
            batches=tuple(batches),
            movements=tuple(movements),
            total_cost=total_cost,
            posting=posting,
        )

    # ------------------------------------------------------------------
    # Sale
    # ------------------------------------------------------------------

    def record_sale(self, data: RecordSaleInput) -> SaleResult:
        """
        Consume stock for an order and post its cost of goods sold.

        Each line is stock-checked, costed by the channel's strategy, and
        consumed batch by batch under the channel's expiry policy.
        """
        self._require_positive_lines(data.lines)
        return self._run(
            "sale", data.channel_id, SOURCE_ORDER, data.order_id,
            lambda: self._record_sale(data),
        )

    def _record_sale(self, data: RecordSaleInput) -> SaleResult:
        strategy = self._configuration.resolve_costing_strategy(data.channel_id)
        policy = self._configuration.resolve_expiry_policy(data.channel_id)
        allocations: list[BatchAllocation] = []
        movements: list[InventoryMovement] = []

        for line in data.lines:
            if not self._store.verify_stock_level(
                data.channel_id, line.product_variant_id, data.stock_location_id, line.quantity
            ):
                raise InsufficientStockError(
                    product_variant_id=line.product_variant_id,
                    stock_location_id=data.stock_location_id,
                    requested=line.quantity,
                    available=self._store.get_available_quantity(
                        data.channel_id, data.stock_location_id, line.product_variant_id
                    ),
                )

            self._apply_recost(
                strategy, data.channel_id, data.stock_location_id, line.product_variant_id, data.order_id
            )
            result = strategy.allocate_cost(
                self._store,
                CostAllocationRequest(
                    channel_id=data.channel_id,
                    stock_location_id=data.stock_location_id,
                    product_variant_id=line.product_variant_id,
                    quantity=line.quantity,
                    source_type=SOURCE_ORDER,
                    source_id=data.order_id,
                ),
            )
            movements.extend(
                self._consume(
                    result,
                    policy,
                    MovementType.SALE,
                    data.channel_id,
                    data.stock_location_id,
                    line.product_variant_id,
                    SOURCE_ORDER,
                    data.order_id,
                    {"orderCode": data.order_code, "customerId": data.customer_id},
                )
            )
            allocations.extend(result.allocations)

        total_cogs = sum(a.total_cost for a in allocations)
        posting = None
        if total_cogs > 0:
            posting = self._posting.post_inventory_sale_cogs(
                data.channel_id,
                data.order_id,
                InventorySaleCogsContext(
                    order_id=data.order_id,
                    order_code=data.order_code,
                    customer_id=data.customer_id,
                    total_cogs=total_cogs,
                    cogs_allocations=tuple(allocations),
                ),
            )

        return SaleResult(
            order_id=data.order_id,
            allocations=tuple(allocations),
            total_cogs=total_cogs,
            movements=tuple(movements),
            posting=posting,
        )

    # ------------------------------------------------------------------
    # Adjustment
    # ------------------------------------------------------------------

    def record_adjustment(self, data: RecordAdjustmentInput) -> AdjustmentResult:
        """
        Record quantity-only corrections.

        No batch is referenced, nothing is costed, and nothing is posted.
        """
        if not data.lines:
            raise ValidationError("lines", "Adjustment must have at least one line")
        for line in data.lines:
            if line.quantity_change == 0:
                raise ValidationError(
                    "quantity_change",
                    f"Adjustment for {line.product_variant_id} has zero quantity change",
                )
        return self._run(
            "adjustment", data.channel_id, SOURCE_ADJUSTMENT, data.adjustment_id,
            lambda: self._record_adjustment(data),
        )

    def _record_adjustment(self, data: RecordAdjustmentInput) -> AdjustmentResult:
        movements = tuple(
            self._store.create_movement(
                CreateMovementInput(
                    channel_id=data.channel_id,
                    stock_location_id=data.stock_location_id,
                    product_variant_id=line.product_variant_id,
                    movement_type=MovementType.ADJUSTMENT,
                    quantity=line.quantity_change,
                    batch_id=None,
                    source_type=SOURCE_ADJUSTMENT,
                    source_id=data.adjustment_id,
                    metadata={"reason": data.reason},
                )
            )
            for line in data.lines
        )
        return AdjustmentResult(adjustment_id=data.adjustment_id, movements=movements)

    # ------------------------------------------------------------------
    # Write-off
    # ------------------------------------------------------------------

    def record_write_off(self, data: RecordWriteOffInput) -> WriteOffResult:
        """
        Remove damaged, lost, or expired stock and post the loss.

        There is no separate stock pre-check; the costing strategy raises
        InsufficientStockError itself.
        """
        self._require_positive_lines(data.lines)
        return self._run(
            "write_off", data.channel_id, SOURCE_WRITE_OFF, data.adjustment_id,
            lambda: self._record_write_off(data),
        )

    def _record_write_off(self, data: RecordWriteOffInput) -> WriteOffResult:
        strategy = self._configuration.resolve_costing_strategy(data.channel_id)
        policy = self._configuration.resolve_expiry_policy(data.channel_id)
        allocations: list[BatchAllocation] = []
        movements: list[InventoryMovement] = []

        for line in data.lines:
            self._apply_recost(
                strategy, data.channel_id, data.stock_location_id, line.product_variant_id, data.adjustment_id
            )
            result = strategy.allocate_cost(
                self._store,
                CostAllocationRequest(
                    channel_id=data.channel_id,
                    stock_location_id=data.stock_location_id,
                    product_variant_id=line.product_variant_id,
                    quantity=line.quantity,
                    source_type=SOURCE_WRITE_OFF,
                    source_id=data.adjustment_id,
                ),
            )
            movements.extend(
                self._consume(
                    result,
                    policy,
                    MovementType.WRITE_OFF,
                    data.channel_id,
                    data.stock_location_id,
                    line.product_variant_id,
                    SOURCE_WRITE_OFF,
                    data.adjustment_id,
                    {"reason": data.reason},
                )
            )
            allocations.extend(result.allocations)

        total_loss = sum(a.total_cost for a in allocations)
        posting = self._post_write_off(
            data.channel_id, data.adjustment_id, data.reason, total_loss, allocations
        )
        return WriteOffResult(
            adjustment_id=data.adjustment_id,
            allocations=tuple(allocations),
            total_loss=total_loss,
            movements=tuple(movements),
            posting=posting,
        )

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def record_expiry_sweep(
        self,
        sweep_id: str,
        channel_id: str,
        stock_location_id: str | None = None,
    ) -> WriteOffResult:
        """
        Write off every open batch whose expiry date has passed.

        Each batch is emptied with an EXPIRY movement and the total is posted
        as an expiry loss under ``sweep_id``.
        """
        return self._run(
            "expiry_sweep", channel_id, SOURCE_EXPIRY_SWEEP, sweep_id,
            lambda: self._record_expiry_sweep(sweep_id, channel_id, stock_location_id),
        )

    def _record_expiry_sweep(
        self,
        sweep_id: str,
        channel_id: str,
        stock_location_id: str | None,
    ) -> WriteOffResult:
        policy = self._configuration.resolve_expiry_policy(channel_id)
        expired = self._store.get_batches_expiring_before(
            channel_id, self._clock.now(), stock_location_id
        )
        allocations: list[BatchAllocation] = []
        movements: list[InventoryMovement] = []

        for batch in expired:
            policy.on_batch_expired(batch)
            result = CostAllocationResult(
                requested_quantity=batch.quantity,
                allocations=(
                    BatchAllocation(
                        batch_id=batch.id,
                        quantity=batch.quantity,
                        unit_cost=batch.unit_cost,
                        total_cost=batch.total_value,
                    ),
                ),
                total_cost=batch.total_value,
            )
            movements.extend(
                self._consume(
                    result,
                    policy,
                    MovementType.EXPIRY,
                    channel_id,
                    batch.stock_location_id,
                    batch.product_variant_id,
                    SOURCE_EXPIRY_SWEEP,
                    sweep_id,
                    {"reason": EXPIRED_WRITE_OFF_REASON},
                )
            )
            allocations.extend(result.allocations)

        total_loss = sum(a.total_cost for a in allocations)
        posting = self._post_write_off(
            channel_id, sweep_id, EXPIRED_WRITE_OFF_REASON, total_loss, allocations
        )
        return WriteOffResult(
            adjustment_id=sweep_id,
            allocations=tuple(allocations),
            total_loss=total_loss,
            movements=tuple(movements),
            posting=posting,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_valuation(self, filters: BatchFilters) -> ValuationSnapshot:
        return self._store.get_valuation_snapshot(filters)

    def get_open_batches(self, filters: BatchFilters) -> list[InventoryBatch]:
        return self._store.get_open_batches(filters)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        channel_id: str,
        source_type: str,
        source_id: str,
        fn: Callable[[], T],
    ) -> T:
        with LogContext.bind(
            channel_id=channel_id, source_type=source_type, source_id=source_id
        ):
            logger.info(f"inventory_{operation}_started")
            try:
                result = self._uow.with_transaction(lambda _session: fn())
            except Exception:
                logger.error(f"inventory_{operation}_failed", exc_info=True)
                raise
            logger.info(f"inventory_{operation}_completed")
            return result

    def _consume(
        self,
        result: CostAllocationResult,
        policy: ExpiryPolicy,
        movement_type: MovementType,
        channel_id: str,
        stock_location_id: str,
        product_variant_id: str,
        source_type: str,
        source_id: str,
        metadata: dict,
    ) -> list[InventoryMovement]:
        movements = []
        for allocation in result.allocations:
            batch = self._store.get_batch(allocation.batch_id)
            if batch is None:
                raise InvariantViolationError(
                    f"Allocated batch {allocation.batch_id} does not exist",
                    batch_id=str(allocation.batch_id),
                )

            validation = policy.validate_before_consume(batch, allocation.quantity, movement_type)
            if not validation.allowed:
                raise ExpiryViolationError(
                    batch_id=str(batch.id),
                    movement_type=movement_type.value,
                    reason=validation.error or f"Expiry policy blocked {movement_type.value}",
                )
            if validation.warning:
                logger.warning(
                    "expiry_policy_warning",
                    extra={
                        "batch_id": str(batch.id),
                        "movement_type": movement_type.value,
                        "warning": validation.warning,
                    },
                )

            self._store.update_batch_quantity(batch.id, -allocation.quantity)
            movements.append(
                self._store.create_movement(
                    CreateMovementInput(
                        channel_id=channel_id,
                        stock_location_id=stock_location_id,
                        product_variant_id=product_variant_id,
                        movement_type=movement_type,
                        quantity=-allocation.quantity,
                        batch_id=batch.id,
                        source_type=source_type,
                        source_id=source_id,
                        metadata={
                            **{k: v for k, v in metadata.items() if v is not None},
                            "unitCost": allocation.unit_cost,
                        },
                    )
                )
            )
        return movements

    def _apply_recost(
        self,
        strategy: CostingStrategy,
        channel_id: str,
        stock_location_id: str,
        product_variant_id: str,
        source_id: str,
    ) -> None:
        """
        Replace open batches with re-priced ones when the strategy asks for it.

        Each replaced batch is emptied by a negative ADJUSTMENT movement and
        each new batch opened by a positive one, so quantities and value are
        unchanged and nothing is posted.
        """
        batches = self._store.get_open_batches(
            BatchFilters(
                channel_id=channel_id,
                stock_location_id=stock_location_id,
                product_variant_id=product_variant_id,
            )
        )
        lots = strategy.plan_recost(batches)
        if not lots:
            return

        by_id = {b.id: b for b in batches}
        for batch_id in dict.fromkeys(lot.batch_id for lot in lots):
            old = by_id[batch_id]
            self._store.update_batch_quantity(old.id, -old.quantity)
            self._store.create_movement(
                CreateMovementInput(
                    channel_id=channel_id,
                    stock_location_id=stock_location_id,
                    product_variant_id=product_variant_id,
                    movement_type=MovementType.ADJUSTMENT,
                    quantity=-old.quantity,
                    batch_id=old.id,
                    source_type=SOURCE_RECOST,
                    source_id=source_id,
                    metadata={"reason": RECOST_REASON, "unitCost": old.unit_cost},
                )
            )

        for lot in lots:
            old = by_id[lot.batch_id]
            batch = self._store.create_batch(
                CreateBatchInput(
                    channel_id=channel_id,
                    stock_location_id=stock_location_id,
                    product_variant_id=product_variant_id,
                    quantity=lot.quantity,
                    unit_cost=lot.unit_cost,
                    source_type=SOURCE_RECOST,
                    source_id=source_id,
                    expiry_date=old.expiry_date,
                    metadata={**old.metadata, "recostFrom": str(old.id)},
                    received_at=old.created_at,
                )
            )
            self._store.create_movement(
                CreateMovementInput(
                    channel_id=channel_id,
                    stock_location_id=stock_location_id,
                    product_variant_id=product_variant_id,
                    movement_type=MovementType.ADJUSTMENT,
                    quantity=lot.quantity,
                    batch_id=batch.id,
                    source_type=SOURCE_RECOST,
                    source_id=source_id,
                    metadata={"reason": RECOST_REASON, "unitCost": lot.unit_cost},
                )
            )

        logger.info(
            "inventory_batches_recosted",
            extra={
                "strategy": strategy.name,
                "product_variant_id": product_variant_id,
                "replaced_batches": len({lot.batch_id for lot in lots}),
                "new_batches": len(lots),
            },
        )

    def _post_write_off(self, channel_id, adjustment_id, reason, total_loss, allocations):
        if total_loss <= 0:
            return None
        return self._posting.post_inventory_write_off(
            channel_id,
            adjustment_id,
            InventoryWriteOffContext(
                adjustment_id=adjustment_id,
                reason=reason,
                total_loss=total_loss,
                batch_allocations=tuple(allocations),
            ),
        )

    @staticmethod
    def _require_positive_lines(lines) -> None:
        if not lines:
            raise ValidationError("lines", "Operation must have at least one line")
        for line in lines:
            if line.quantity <= 0:
                raise ValidationError(
                    "quantity",
                    f"Quantity for {line.product_variant_id} must be positive, got {line.quantity}",
                )
