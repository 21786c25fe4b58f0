"""
retail_services.inventory_reconciliation_service -- Batch, movement, and ledger cross-checks.

Responsibility:
    Compare the three independent records of inventory: batch quantities,
    the movement log, and the ledger's INVENTORY account.  Read-only.

Invariants checked:
    - Valuation of open batches equals the INVENTORY account balance
      (tolerance below one minor unit).
    - For every batch, the net of its movements equals its current quantity.

Failure modes:
    - None.  Mismatches are reported in the result and logged as warnings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.inventory import BatchFilters, InventoryMovement, MovementFilters
from retail_kernel.domain.ledger import AccountCode
from retail_kernel.logging_config import get_logger
from retail_services.inventory_store import InventoryStore
from retail_services.ledger_query_service import BalanceQuery, LedgerQueryService

logger = get_logger("services.inventory_reconciliation")


@dataclass(frozen=True, slots=True)
class ValuationReconciliation:
    channel_id: str
    stock_location_id: str | None
    inventory_valuation: int
    ledger_balance: int
    difference: int
    is_balanced: bool
    as_of: datetime


@dataclass(frozen=True, slots=True)
class MovementAuditTrail:
    movements: tuple[InventoryMovement, ...]
    total_movements: int
    date_from: datetime
    date_to: datetime


@dataclass(frozen=True, slots=True)
class BatchMovementDiscrepancy:
    batch_id: UUID
    batch_quantity: int
    movement_total: int

    @property
    def difference(self) -> int:
        return self.batch_quantity - self.movement_total


@dataclass(frozen=True, slots=True)
class BatchMovementReconciliation:
    batches_checked: int
    discrepancies: tuple[BatchMovementDiscrepancy, ...]

    @property
    def is_balanced(self) -> bool:
        return not self.discrepancies


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    valuation: ValuationReconciliation
    batch_movements: BatchMovementReconciliation
    total_open_batches: int
    total_movements: int


class InventoryReconciliationService:
    def __init__(
        self,
        store: InventoryStore,
        query: LedgerQueryService,
        clock: Clock | None = None,
    ):
        self._store = store
        self._query = query
        self._clock = clock or SystemClock()

    def get_inventory_valuation_vs_ledger(
        self, channel_id: str, stock_location_id: str | None = None
    ) -> ValuationReconciliation:
        """
        Open-batch valuation against the INVENTORY account balance.

        The ledger balance is channel-wide; narrowing by location only
        narrows the valuation side.
        """
        snapshot = self._store.get_valuation_snapshot(
            BatchFilters(channel_id=channel_id, stock_location_id=stock_location_id)
        )
        ledger_balance = self._query.get_account_balance(
            BalanceQuery(channel_id=channel_id, account_code=AccountCode.INVENTORY)
        ).balance
        difference = snapshot.total_value - ledger_balance
        is_balanced = abs(difference) < 1

        if not is_balanced:
            logger.warning(
                "inventory_valuation_mismatch",
                extra={
                    "channel_id": channel_id,
                    "inventory_valuation": snapshot.total_value,
                    "ledger_balance": ledger_balance,
                    "difference": difference,
                },
            )

        return ValuationReconciliation(
            channel_id=channel_id,
            stock_location_id=stock_location_id,
            inventory_valuation=snapshot.total_value,
            ledger_balance=ledger_balance,
            difference=difference,
            is_balanced=is_balanced,
            as_of=self._clock.now(),
        )

    def get_movement_audit_trail(self, filters: MovementFilters) -> MovementAuditTrail:
        movements = self._store.get_movements(filters)
        if movements:
            date_from = min(m.created_at for m in movements)
            date_to = max(m.created_at for m in movements)
        else:
            date_from = date_to = self._clock.now()
        return MovementAuditTrail(
            movements=tuple(movements),
            total_movements=len(movements),
            date_from=date_from,
            date_to=date_to,
        )

    def reconcile_batch_movements(self, channel_id: str) -> BatchMovementReconciliation:
        """Check every batch, exhausted ones included, against its movement log."""
        batches = self._store.get_open_batches(
            BatchFilters(channel_id=channel_id, include_exhausted=True)
        )
        totals = self._store.sum_movements_by_batch(channel_id)

        discrepancies = tuple(
            BatchMovementDiscrepancy(
                batch_id=b.id,
                batch_quantity=b.quantity,
                movement_total=totals.get(b.id, 0),
            )
            for b in batches
            if totals.get(b.id, 0) != b.quantity
        )
        for d in discrepancies:
            logger.warning(
                "batch_movement_mismatch",
                extra={
                    "batch_id": str(d.batch_id),
                    "batch_quantity": d.batch_quantity,
                    "movement_total": d.movement_total,
                },
            )
        return BatchMovementReconciliation(
            batches_checked=len(batches), discrepancies=discrepancies
        )

    def get_reconciliation_report(self, channel_id: str) -> ReconciliationReport:
        valuation = self.get_inventory_valuation_vs_ledger(channel_id)
        batch_movements = self.reconcile_batch_movements(channel_id)
        open_batches = self._store.get_open_batches(BatchFilters(channel_id=channel_id))
        movements = self._store.get_movements(MovementFilters(channel_id=channel_id))

        logger.info(
            "inventory_reconciliation_report",
            extra={
                "channel_id": channel_id,
                "valuation_balanced": valuation.is_balanced,
                "batch_discrepancies": len(batch_movements.discrepancies),
            },
        )
        return ReconciliationReport(
            valuation=valuation,
            batch_movements=batch_movements,
            total_open_batches=len(open_batches),
            total_movements=len(movements),
        )
