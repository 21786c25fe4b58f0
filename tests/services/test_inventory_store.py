"""
Tests for InventoryStore persistence primitives.

Covers:
- Batch creation and DTO conversion
- Non-negative quantity enforcement on update
- Open-batch ordering, exhausted filtering, expiry queries
- Movement filters and per-batch movement sums
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from retail_kernel.domain.inventory import (
    BatchFilters,
    CreateBatchInput,
    CreateMovementInput,
    MovementFilters,
    MovementType,
)
from retail_kernel.exceptions import InvariantViolationError

CHANNEL = "1"
LOC = "loc-main"


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def new_batch(store, clock):
    def _new(quantity=5, unit_cost=100, variant="v1", location=LOC, expiry_date=None):
        batch = store.create_batch(
            CreateBatchInput(
                channel_id=CHANNEL,
                stock_location_id=location,
                product_variant_id=variant,
                quantity=quantity,
                unit_cost=unit_cost,
                source_type="Purchase",
                source_id=f"PO-{uuid4().hex[:6]}",
                expiry_date=expiry_date,
            )
        )
        clock.advance(60)
        return batch

    return _new


def movement(batch, quantity, movement_type=MovementType.SALE, source_id="S-1"):
    return CreateMovementInput(
        channel_id=CHANNEL,
        stock_location_id=batch.stock_location_id,
        product_variant_id=batch.product_variant_id,
        movement_type=movement_type,
        quantity=quantity,
        batch_id=batch.id,
        source_type="Order",
        source_id=source_id,
    )


class TestBatches:
    """Tests for batch writes and reads."""

    def test_create_batch_round_trips(self, store, new_batch):
        """A created batch reads back with the same values."""
        batch = new_batch(quantity=7, unit_cost=250)

        loaded = store.get_batch(batch.id)

        assert loaded == batch
        assert loaded.total_value == 1750
        assert store.verify_batch_exists(batch.id)

    def test_missing_batch(self, store):
        """Unknown ids read as absent."""
        assert store.get_batch(uuid4()) is None
        assert not store.verify_batch_exists(uuid4())

    def test_create_batch_rejects_non_positive_quantity(self):
        """Batches start with at least one unit."""
        with pytest.raises(ValueError):
            CreateBatchInput(
                channel_id=CHANNEL,
                stock_location_id=LOC,
                product_variant_id="v1",
                quantity=0,
                unit_cost=1,
                source_type="Purchase",
                source_id="PO",
            )

    def test_update_quantity(self, store, new_batch):
        """Deltas apply to the stored quantity."""
        batch = new_batch(quantity=5)

        updated = store.update_batch_quantity(batch.id, -3)

        assert updated.quantity == 2
        assert store.get_batch(batch.id).quantity == 2

    def test_update_never_goes_negative(self, store, new_batch):
        """A delta that would leave a negative quantity is refused."""
        batch = new_batch(quantity=2)

        with pytest.raises(InvariantViolationError) as exc_info:
            store.update_batch_quantity(batch.id, -3)

        assert exc_info.value.batch_id == str(batch.id)
        assert store.get_batch(batch.id).quantity == 2

    def test_update_missing_batch(self, store):
        """Updating an unknown batch is an invariant violation."""
        with pytest.raises(InvariantViolationError):
            store.update_batch_quantity(uuid4(), -1)

    def test_open_batches_oldest_first(self, store, new_batch):
        """Open batches come back in receipt order."""
        first = new_batch()
        second = new_batch()
        third = new_batch()

        batches = store.get_open_batches(BatchFilters(channel_id=CHANNEL, product_variant_id="v1"))

        assert [b.id for b in batches] == [first.id, second.id, third.id]

    def test_exhausted_batches_hidden_unless_requested(self, store, new_batch):
        """Exhausted batches only appear with include_exhausted."""
        batch = new_batch(quantity=1)
        store.update_batch_quantity(batch.id, -1)

        assert store.get_open_batches(BatchFilters(channel_id=CHANNEL)) == []
        everything = store.get_open_batches(BatchFilters(channel_id=CHANNEL, include_exhausted=True))
        assert [b.id for b in everything] == [batch.id]
        assert everything[0].is_exhausted

    def test_filters_by_location_and_variant(self, store, new_batch):
        """Location and variant filters narrow the result."""
        new_batch(variant="v1", location="A")
        wanted = new_batch(variant="v2", location="B")
        new_batch(variant="v2", location="A")

        batches = store.get_open_batches(
            BatchFilters(channel_id=CHANNEL, stock_location_id="B", product_variant_id="v2")
        )

        assert [b.id for b in batches] == [wanted.id]

    def test_batches_expiring_before_is_strict(self, store, new_batch, clock):
        """Only batches expiring strictly before the cutoff are returned."""
        cutoff = clock.now() + timedelta(days=5)
        early = new_batch(expiry_date=cutoff - timedelta(days=1))
        new_batch(expiry_date=cutoff)
        new_batch()

        expiring = store.get_batches_expiring_before(CHANNEL, cutoff)

        assert [b.id for b in expiring] == [early.id]

    def test_available_quantity_and_stock_check(self, store, new_batch):
        """Available quantity sums open batches for one variant and location."""
        new_batch(quantity=3)
        new_batch(quantity=4)
        new_batch(quantity=10, variant="other")

        assert store.get_available_quantity(CHANNEL, LOC, "v1") == 7
        assert store.verify_stock_level(CHANNEL, "v1", LOC, 7)
        assert not store.verify_stock_level(CHANNEL, "v1", LOC, 8)

    def test_valuation_snapshot(self, store, new_batch):
        """Snapshot totals match the open batches."""
        new_batch(quantity=2, unit_cost=100)
        new_batch(quantity=3, unit_cost=10)

        snapshot = store.get_valuation_snapshot(BatchFilters(channel_id=CHANNEL))

        assert snapshot.total_quantity == 5
        assert snapshot.total_value == 230
        assert snapshot.batch_count == 2
        assert len(snapshot.batches) == 2


class TestMovements:
    """Tests for movement writes and audit queries."""

    def test_create_and_filter_movements(self, store, new_batch):
        """Movements can be filtered by type, batch, and source."""
        batch = new_batch()
        other = new_batch(variant="v2")
        store.create_movement(movement(batch, -1, source_id="S-1"))
        store.create_movement(movement(other, -2, source_id="S-2"))
        store.create_movement(movement(batch, 1, MovementType.TRANSFER, source_id="T-1"))

        sales = store.get_movements(MovementFilters(channel_id=CHANNEL, movement_type=MovementType.SALE))
        for_batch = store.get_movements(MovementFilters(channel_id=CHANNEL, batch_id=batch.id))
        by_source = store.get_movements(MovementFilters(channel_id=CHANNEL, source_id="S-2"))

        assert [m.quantity for m in sales] == [-1, -2]
        assert len(for_batch) == 2
        assert [m.batch_id for m in by_source] == [other.id]

    def test_date_bounds_are_inclusive(self, store, new_batch, clock):
        """start_date and end_date include movements at the boundary."""
        batch = new_batch()
        at = clock.now()
        store.create_movement(movement(batch, -1))
        clock.advance(3600)
        store.create_movement(movement(batch, -1))

        found = store.get_movements(
            MovementFilters(channel_id=CHANNEL, start_date=at, end_date=at)
        )

        assert len(found) == 1

    def test_sum_movements_by_batch(self, store, new_batch):
        """Net movement per batch ignores batch-less movements."""
        batch = new_batch(quantity=5)
        store.create_movement(movement(batch, 5, MovementType.PURCHASE))
        store.create_movement(movement(batch, -2))
        store.create_movement(
            CreateMovementInput(
                channel_id=CHANNEL,
                stock_location_id=LOC,
                product_variant_id="v1",
                movement_type=MovementType.ADJUSTMENT,
                quantity=9,
                source_type="Adjustment",
                source_id="ADJ",
            )
        )

        assert store.sum_movements_by_batch(CHANNEL) == {batch.id: 3}
