"""
Tests for cost allocation strategies.

Covers:
- FIFO ordering and receipt-time tie-break by batch id
- FEFO ordering with undated batches last
- Weighted average pricing and half-up rounding
- Average re-cost plans: value preserved, split lots, no-op when levelled
- Insufficient stock failure (no partial result)
- Conservation property: allocations always sum to the requested quantity
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from retail_engines.costing import (
    FefoCostingStrategy,
    FifoCostingStrategy,
    WeightedAverageCostingStrategy,
    default_costing_strategies,
    plan_average_recost,
    weighted_average_unit_cost,
)
from retail_kernel.domain.inventory import (
    BatchFilters,
    CostAllocationRequest,
    InventoryBatch,
)
from retail_kernel.exceptions import InsufficientStockError

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_batch(quantity, unit_cost, minutes=0, expiry_days=None, batch_id=None):
    return InventoryBatch(
        id=batch_id or uuid4(),
        channel_id="1",
        stock_location_id="loc",
        product_variant_id="v1",
        quantity=quantity,
        unit_cost=unit_cost,
        source_type="Purchase",
        source_id="PO-1",
        created_at=T0 + timedelta(minutes=minutes),
        updated_at=T0 + timedelta(minutes=minutes),
        expiry_date=T0 + timedelta(days=expiry_days) if expiry_days is not None else None,
    )


class FakeBatchSource:
    """In-memory BatchSource returning batches in receipt order."""

    def __init__(self, batches):
        self.batches = list(batches)
        self.calls = []

    def get_open_batches(self, filters: BatchFilters):
        self.calls.append(filters)
        return sorted(
            (b for b in self.batches if b.quantity > 0),
            key=lambda b: (b.created_at, str(b.id)),
        )


def request(quantity):
    return CostAllocationRequest(
        channel_id="1",
        stock_location_id="loc",
        product_variant_id="v1",
        quantity=quantity,
        source_type="Order",
        source_id="order-1",
    )


class TestFifoCostingStrategy:
    """Tests for first-in, first-out allocation."""

    def test_takes_oldest_batch_first(self):
        """Batch received at t1 is consumed before batch received at t2."""
        b1 = make_batch(5, 100, minutes=0)
        b2 = make_batch(5, 120, minutes=1)
        source = FakeBatchSource([b2, b1])

        result = FifoCostingStrategy().allocate_cost(source, request(6))

        assert [a.batch_id for a in result.allocations] == [b1.id, b2.id]
        assert [a.quantity for a in result.allocations] == [5, 1]
        assert result.total_cost == 5 * 100 + 1 * 120

    def test_single_batch_partial(self):
        """A request smaller than the oldest batch stays inside it."""
        b1 = make_batch(10, 50)
        result = FifoCostingStrategy().allocate_cost(FakeBatchSource([b1]), request(3))

        assert len(result.allocations) == 1
        assert result.allocations[0].quantity == 3
        assert result.total_cost == 150

    def test_equal_receipt_time_breaks_tie_by_id(self):
        """Equal receipt times fall back to batch id order."""
        low = make_batch(2, 10, batch_id=UUID("00000000-0000-0000-0000-000000000001"))
        high = make_batch(2, 20, batch_id=UUID("00000000-0000-0000-0000-000000000002"))

        result = FifoCostingStrategy().allocate_cost(FakeBatchSource([high, low]), request(3))

        assert [a.batch_id for a in result.allocations] == [low.id, high.id]

    def test_insufficient_stock_raises(self):
        """Requesting more than is open raises with both quantities."""
        source = FakeBatchSource([make_batch(2, 10), make_batch(1, 10, minutes=1)])

        with pytest.raises(InsufficientStockError) as exc_info:
            FifoCostingStrategy().allocate_cost(source, request(4))

        assert exc_info.value.requested == 4
        assert exc_info.value.available == 3

    def test_metadata_names_strategy(self):
        """Result metadata carries strategy name and batch count."""
        source = FakeBatchSource([make_batch(1, 10), make_batch(1, 10, minutes=1)])
        result = FifoCostingStrategy().allocate_cost(source, request(2))

        assert result.metadata["strategy"] == "FIFO"
        assert result.metadata["batchCount"] == 2

    def test_reads_with_request_scope(self):
        """The source is queried for the request's channel, location, and variant."""
        source = FakeBatchSource([make_batch(1, 10)])
        FifoCostingStrategy().allocate_cost(source, request(1))

        assert source.calls == [BatchFilters(channel_id="1", stock_location_id="loc", product_variant_id="v1")]

    def test_zero_quantity_request_rejected(self):
        """Requests must ask for at least one unit."""
        with pytest.raises(ValueError, match="must be positive"):
            request(0)


class TestFefoCostingStrategy:
    """Tests for first-expiry, first-out allocation."""

    def test_earliest_expiry_first(self):
        """A newer batch expiring sooner is consumed before an older one."""
        older_late = make_batch(5, 100, minutes=0, expiry_days=30)
        newer_soon = make_batch(5, 90, minutes=5, expiry_days=3)

        result = FefoCostingStrategy().allocate_cost(
            FakeBatchSource([older_late, newer_soon]), request(5)
        )

        assert [a.batch_id for a in result.allocations] == [newer_soon.id]
        assert result.total_cost == 450

    def test_undated_batches_last(self):
        """Batches without expiry are consumed after every dated batch."""
        undated = make_batch(3, 10, minutes=0)
        dated = make_batch(3, 20, minutes=10, expiry_days=100)

        result = FefoCostingStrategy().allocate_cost(FakeBatchSource([undated, dated]), request(4))

        assert [a.batch_id for a in result.allocations] == [dated.id, undated.id]
        assert [a.quantity for a in result.allocations] == [3, 1]

    def test_same_expiry_falls_back_to_receipt_time(self):
        """Equal expiry dates are ordered by receipt time."""
        first = make_batch(2, 10, minutes=0, expiry_days=7)
        second = make_batch(2, 10, minutes=1, expiry_days=7)

        result = FefoCostingStrategy().allocate_cost(FakeBatchSource([second, first]), request(3))

        assert [a.batch_id for a in result.allocations] == [first.id, second.id]


class TestWeightedAverageCostingStrategy:
    """Tests for weighted average pricing."""

    def test_prices_every_unit_at_average(self):
        """5 @ 100 and 5 @ 200 price every unit at 150."""
        source = FakeBatchSource([make_batch(5, 100), make_batch(5, 200, minutes=1)])

        result = WeightedAverageCostingStrategy().allocate_cost(source, request(6))

        assert all(a.unit_cost == 150 for a in result.allocations)
        assert result.total_cost == 900
        assert result.metadata["averageUnitCost"] == 150

    def test_quantities_follow_fifo(self):
        """Physical consumption still drains the oldest batch first."""
        b1 = make_batch(2, 100)
        b2 = make_batch(8, 200, minutes=1)

        result = WeightedAverageCostingStrategy().allocate_cost(FakeBatchSource([b1, b2]), request(3))

        assert [(a.batch_id, a.quantity) for a in result.allocations] == [(b1.id, 2), (b2.id, 1)]

    def test_average_rounds_half_up(self):
        """(1 x 1 + 1 x 2) / 2 = 1.5 rounds to 2."""
        assert weighted_average_unit_cost([make_batch(1, 1), make_batch(1, 2, minutes=1)]) == 2

    def test_average_of_nothing_is_zero(self):
        """No open batches gives an average of 0."""
        assert weighted_average_unit_cost([]) == 0


class TestAverageRecostPlan:
    """Tests for plan_average_recost."""

    def test_levels_batches_to_average(self):
        b1 = make_batch(1, 100)
        b2 = make_batch(1, 200, minutes=1)

        lots = plan_average_recost([b2, b1])

        assert [(lot.batch_id, lot.quantity, lot.unit_cost) for lot in lots] == [
            (b1.id, 1, 150),
            (b2.id, 1, 150),
        ]

    def test_remainder_goes_to_oldest_units(self):
        """320 over 3 units: the first two cost 107, the last 106."""
        b1 = make_batch(1, 100)
        b2 = make_batch(2, 101, minutes=1)

        lots = plan_average_recost([b1, b2])

        # Already within one minor unit of the average, nothing to do.
        assert lots == ()

        b3 = make_batch(2, 110, minutes=1)
        lots = plan_average_recost([b1, b3])

        assert [(lot.batch_id, lot.quantity, lot.unit_cost) for lot in lots] == [
            (b1.id, 1, 107),
            (b3.id, 1, 107),
            (b3.id, 1, 106),
        ]

    def test_preserves_value(self):
        batches = [make_batch(3, 17), make_batch(4, 250, minutes=1), make_batch(2, 9, minutes=2)]

        lots = plan_average_recost(batches)

        assert sum(lot.quantity * lot.unit_cost for lot in lots) == sum(
            b.quantity * b.unit_cost for b in batches
        )
        assert sum(lot.quantity for lot in lots) == 9

    def test_allocation_uses_planned_prices(self):
        """Selling from unlevelled batches is priced from the plan."""
        source = FakeBatchSource([make_batch(1, 100), make_batch(2, 110, minutes=1)])

        result = WeightedAverageCostingStrategy().allocate_cost(source, request(2))

        assert [a.unit_cost for a in result.allocations] == [107, 107]
        assert result.total_cost == 214

    def test_empty(self):
        assert plan_average_recost([]) == ()


class TestStrategyRegistry:
    """Tests for the built-in strategy registry."""

    def test_registry_names(self):
        """All three built-in strategies are registered by name."""
        assert set(default_costing_strategies()) == {"FIFO", "FEFO", "AVERAGE"}


batch_specs = st.lists(
    st.tuples(
        st.integers(min_value=1, max_value=50),
        st.integers(min_value=0, max_value=10_000),
        st.one_of(st.none(), st.integers(min_value=-10, max_value=60)),
    ),
    min_size=1,
    max_size=8,
)


class TestConservationProperty:
    """Allocations always sum to the requested quantity, for every strategy."""

    @settings(max_examples=200, deadline=None)
    @given(specs=batch_specs, data=st.data())
    def test_allocations_sum_to_request(self, specs, data):
        """Any satisfiable request is allocated exactly and never over-draws a batch."""
        batches = [
            make_batch(q, cost, minutes=i, expiry_days=expiry)
            for i, (q, cost, expiry) in enumerate(specs)
        ]
        available = sum(b.quantity for b in batches)
        quantity = data.draw(st.integers(min_value=1, max_value=available))
        by_id = {b.id: b for b in batches}

        for strategy in default_costing_strategies().values():
            result = strategy.allocate_cost(FakeBatchSource(batches), request(quantity))

            assert sum(a.quantity for a in result.allocations) == quantity
            assert result.total_cost == sum(a.total_cost for a in result.allocations)
            for a in result.allocations:
                assert 0 < a.quantity <= by_id[a.batch_id].quantity

    @settings(max_examples=100, deadline=None)
    @given(specs=batch_specs, extra=st.integers(min_value=1, max_value=20))
    def test_short_stock_always_raises(self, specs, extra):
        """Asking for more than is open always fails."""
        batches = [make_batch(q, cost, minutes=i) for i, (q, cost, _) in enumerate(specs)]
        quantity = sum(b.quantity for b in batches) + extra

        for strategy in default_costing_strategies().values():
            with pytest.raises(InsufficientStockError):
                strategy.allocate_cost(FakeBatchSource(batches), request(quantity))
