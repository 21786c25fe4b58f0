"""
Tests for InventoryReconciliationService.

Covers:
- Open-batch valuation agreeing with the INVENTORY account
- Detection of ledger drift and of batch/movement drift
- Movement audit trail bounds
- Combined report
- Weighted average channels: re-costed batches keep valuation equal to the ledger
"""

import pytest

from retail_config import InventoryConfiguration
from retail_kernel.domain.inventory import MovementFilters, MovementType
from retail_services.inventory_dtos import RecordWriteOffInput, WriteOffLine

from conftest import CHANNEL_ID, LOCATION_ID, VARIANT_ID


@pytest.fixture
def reconciliation(services):
    return services.reconciliation


class TestValuationVsLedger:
    """Tests for valuation against the ledger."""

    def test_balanced_after_normal_activity(self, purchase, sell, inventory, reconciliation):
        """Purchases, sales, and write-offs keep batches and ledger in step."""
        purchase(5, 100)
        purchase(5, 120)
        sell(6)
        inventory.record_write_off(
            RecordWriteOffInput(
                adjustment_id="ADJ-1",
                channel_id=CHANNEL_ID,
                stock_location_id=LOCATION_ID,
                reason="damaged",
                lines=(WriteOffLine(VARIANT_ID, 1),),
            )
        )

        result = reconciliation.get_inventory_valuation_vs_ledger(CHANNEL_ID)

        assert result.inventory_valuation == 360
        assert result.ledger_balance == 360
        assert result.difference == 0
        assert result.is_balanced

    def test_quantity_drift_detected(self, purchase, services, reconciliation, captured_logs):
        """A batch changed outside the service no longer matches the ledger."""
        batch = purchase(5, 100).batches[0]
        services.store.update_batch_quantity(batch.id, -1)

        result = reconciliation.get_inventory_valuation_vs_ledger(CHANNEL_ID)

        assert not result.is_balanced
        assert result.difference == -100
        assert any(r["message"] == "inventory_valuation_mismatch" for r in captured_logs())


class TestAverageCosting:
    """Valuation and ledger stay in step on a weighted average channel."""

    @pytest.fixture(autouse=True)
    def average_channel(self, services):
        services.configuration.set_configuration(
            InventoryConfiguration(channel_id=CHANNEL_ID, costing_strategy="AVERAGE")
        )

    def test_sale_at_average_keeps_valuation_and_ledger_equal(self, purchase, sell, reconciliation):
        """1 @ 100 and 1 @ 200, sell 1: COGS 150 and 150 left in both."""
        purchase(1, 100)
        purchase(1, 200)

        sale = sell(1)
        result = reconciliation.get_inventory_valuation_vs_ledger(CHANNEL_ID)

        assert sale.total_cogs == 150
        assert result.inventory_valuation == 150
        assert result.ledger_balance == 150
        assert result.is_balanced
        assert reconciliation.reconcile_batch_movements(CHANNEL_ID).is_balanced

    def test_repeated_sales_with_remainder(self, purchase, sell, inventory, reconciliation):
        """Uneven averages leave no drift after several sales and a write-off."""
        purchase(1, 100)
        purchase(2, 110)
        sell(1)
        purchase(4, 33)
        sell(2)
        inventory.record_write_off(
            RecordWriteOffInput(
                adjustment_id="ADJ-AVG",
                channel_id=CHANNEL_ID,
                stock_location_id=LOCATION_ID,
                reason="damaged",
                lines=(WriteOffLine(VARIANT_ID, 1),),
            )
        )

        report = reconciliation.get_reconciliation_report(CHANNEL_ID)

        assert report.valuation.is_balanced
        assert report.batch_movements.is_balanced

    def test_recost_movements_are_adjustments(self, purchase, sell, reconciliation):
        """Re-pricing shows up in the trail as paired adjustment movements."""
        purchase(1, 100)
        purchase(1, 200)
        sell(1)

        trail = reconciliation.get_movement_audit_trail(
            MovementFilters(channel_id=CHANNEL_ID, movement_type=MovementType.ADJUSTMENT)
        )

        assert sorted(m.quantity for m in trail.movements) == [-1, -1, 1, 1]
        assert all(m.metadata["reason"] == "recost" for m in trail.movements)



class TestBatchMovements:
    """Tests for batch quantities against the movement log."""

    def test_movements_explain_batches(self, purchase, sell, reconciliation):
        """Every batch, exhausted ones included, equals its net movements."""
        purchase(2, 100)
        purchase(3, 100)
        sell(4)

        result = reconciliation.reconcile_batch_movements(CHANNEL_ID)

        assert result.batches_checked == 2
        assert result.is_balanced

    def test_unlogged_change_reported(self, purchase, services, reconciliation):
        """A quantity change with no movement shows up as a discrepancy."""
        batch = purchase(5, 100).batches[0]
        services.store.update_batch_quantity(batch.id, -2)

        result = reconciliation.reconcile_batch_movements(CHANNEL_ID)

        [discrepancy] = result.discrepancies
        assert discrepancy.batch_id == batch.id
        assert discrepancy.batch_quantity == 3
        assert discrepancy.movement_total == 5
        assert discrepancy.difference == -2


class TestAuditTrail:
    """Tests for the movement audit trail."""

    def test_trail_bounds(self, purchase, sell, reconciliation):
        """The trail spans the first to last matching movement."""
        first = purchase(5, 100)
        sale = sell(2)

        trail = reconciliation.get_movement_audit_trail(MovementFilters(channel_id=CHANNEL_ID))

        assert trail.total_movements == 2
        assert trail.date_from == first.movements[0].created_at
        assert trail.date_to == sale.movements[0].created_at

    def test_empty_trail(self, reconciliation, clock):
        """With no movements the trail is empty and bounded at now."""
        trail = reconciliation.get_movement_audit_trail(
            MovementFilters(channel_id=CHANNEL_ID, movement_type=MovementType.EXPIRY)
        )

        assert trail.movements == ()
        assert trail.date_from == trail.date_to == clock.now()


class TestReport:
    """Tests for the combined report."""

    def test_report(self, purchase, sell, reconciliation):
        """The report combines both checks with open batch and movement counts."""
        purchase(5, 100)
        purchase(5, 120)
        sell(5)

        report = reconciliation.get_reconciliation_report(CHANNEL_ID)

        assert report.valuation.is_balanced
        assert report.batch_movements.is_balanced
        assert report.total_open_batches == 1
        assert report.total_movements == 3
