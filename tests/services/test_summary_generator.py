"""
Tests for SummaryGenerator.

Single-SKU summaries never raise; they degrade field by field.  The batch
mode computes every ledger SKU with at most ``batch_size`` in flight.
"""

import threading
import time

import pytest

from stock_kernel.domain.types import MovementType, StockMovement
from stock_kernel.exceptions import UpstreamError
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.services.movement_reader import MovementReader
from stock_kernel.services.movement_store import MovementStore
from stock_kernel.services.reconciliation_executor import ReconciliationExecutor
from stock_services.summary_generator import SummaryGenerator
from tests.fakes import FailingInventorySource, FakeInventorySource, make_order


@pytest.fixture
def ledger(session_factory, settings_store, order_source, inventory, clock):
    """Commit ledger rows through a short-lived store, like the facade does."""

    class _Ledger:
        def __call__(self, *movements: StockMovement) -> None:
            session = session_factory()
            try:
                reader = MovementReader(session, settings_store, order_source)
                store = MovementStore(session, reader, clock=clock)
                for movement in movements:
                    store.add_movement(movement)
                session.commit()
            finally:
                session.close()

        def reconcile(self, sku: str, count: int) -> None:
            session = session_factory()
            try:
                reader = MovementReader(session, settings_store, order_source)
                store = MovementStore(session, reader, clock=clock)
                ReconciliationExecutor(
                    session, reader, store, inventory, clock=clock,
                ).perform_reconciliation(sku, count)
                session.commit()
            finally:
                session.close()

    return _Ledger()


def _mv(sku: str, quantity: int, movement_type: str, reference: str | None = None):
    return StockMovement(
        sku=sku, quantity=quantity, movement_type=movement_type, reference_id=reference,
    )


def _generator(session_factory, inventory, order_source, settings_store, clock, **kwargs):
    return SummaryGenerator(
        session_factory,
        inventory_source=inventory,
        order_source=order_source,
        settings_store_factory=lambda session: settings_store,
        clock=clock,
        **kwargs,
    )


@pytest.fixture
def generator(session_factory, inventory, order_source, settings_store, clock):
    return _generator(
        session_factory, inventory, order_source, settings_store, clock,
        batch_size=2, item_timeout_seconds=5,
    )


class TestGenerateSummary:
    def test_worked_example(self, generator, ledger, inventory):
        inventory.add_product(7, "TEA-001", "Green Tea", stock=80)
        ledger(
            _mv("TEA-001", 100, "initial"),
            _mv("TEA-001", -30, "sale", "1042"),
            _mv("TEA-001", -5, "adjustment"),
            _mv("TEA-001", 20, "purchase", "PO-1"),
        )

        summary = generator.generate_summary("TEA-001")

        assert summary.product_name == "Green Tea"
        assert summary.product_id == 7
        assert summary.initial_stock == 100
        assert summary.total_sales == 30
        assert summary.total_adjustments == -5
        assert summary.total_purchases == 20
        assert summary.expected_stock == 85
        assert summary.actual_stock == 80
        assert summary.discrepancy == -5
        assert summary.last_reconciled is None
        assert not summary.is_error

    def test_variation_name_and_ids(self, generator, ledger, inventory):
        inventory.add_product(7, "TEA", "Green Tea")
        inventory.add_variation(71, 7, "TEA-250", options=("250g", "Tin"), stock=4)
        ledger(_mv("TEA-250", 4, "initial"))

        summary = generator.generate_summary("TEA-250")
        assert summary.product_name == "Green Tea - 250g, Tin"
        assert summary.product_id == 7
        assert summary.variation_id == 71
        assert summary.discrepancy == 0

    def test_unknown_product(self, generator, ledger):
        ledger(_mv("GHOST-1", 3, "initial"))
        summary = generator.generate_summary("GHOST-1")
        assert summary.product_name == "Unknown Product (GHOST-1)"
        assert summary.actual_stock == 0
        assert summary.discrepancy == -3

    def test_catalog_failure_degrades_without_error(
        self, session_factory, order_source, settings_store, clock, ledger,
    ):
        ledger(_mv("TEA-001", 10, "initial"))
        generator = _generator(
            session_factory, FailingInventorySource(), order_source, settings_store, clock,
        )

        summary = generator.generate_summary("TEA-001")
        assert not summary.is_error
        assert summary.expected_stock == 10
        assert summary.actual_stock == 0
        assert summary.product_name == "Unknown Product (TEA-001)"

    def test_last_reconciled(self, generator, ledger, clock):
        ledger(_mv("TEA-001", 10, "initial"))
        ledger.reconcile("TEA-001", 8)

        summary = generator.generate_summary("TEA-001")
        assert summary.last_reconciled == clock.now()
        assert summary.expected_stock == 8

    def test_ledger_failure_yields_error_summary(
        self, generator, ledger, order_source, settings_store, captured_logs,
    ):
        ledger(_mv("TEA-001", 10, "initial"))
        settings_store.exclude_on_hold = True
        order_source.fail = True

        summary = generator.generate_summary("TEA-001")
        assert summary.is_error
        assert summary.product_name == "Error: TEA-001"
        assert summary.expected_stock == 0
        assert "order_source" in summary.error
        assert any(r["message"] == "summary_failed" for r in captured_logs())

    def test_on_hold_orders_excluded_from_sales(
        self, generator, ledger, order_source, settings_store, inventory,
    ):
        inventory.add_product(7, "TEA-001", "Green Tea", stock=95)
        ledger(_mv("TEA-001", 100, "initial"))
        settings_store.exclude_on_hold = True
        order_source.orders = [
            make_order(1, [("TEA-001", 5)]),
            make_order(2, [("TEA-001", 50)], status="on-hold"),
        ]

        summary = generator.generate_summary("TEA-001")
        assert summary.total_sales == 5
        assert summary.expected_stock == 95
        assert summary.discrepancy == 0


class _SlowInventory(FakeInventorySource):
    """Tracks how many lookups run at once; one SKU can be made to hang."""

    def __init__(self, delay: float = 0.05, hang_sku: str | None = None, hang: float = 0):
        super().__init__()
        self.delay = delay
        self.hang_sku = hang_sku
        self.hang = hang
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def get_actual_stock_by_sku(self, sku: str) -> int:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.hang if sku == self.hang_sku else self.delay)
            return super().get_actual_stock_by_sku(sku)
        finally:
            with self._lock:
                self.active -= 1


class TestGenerateAll:
    def test_every_ledger_sku_sorted(self, generator, ledger, clock):
        ledger(
            _mv("MUG-01", 1, "initial"),
            _mv("TEA-001", 2, "initial"),
            _mv("CUP-9", 3, "initial"),
        )
        batch = generator.generate_all()

        assert [s.sku for s in batch.summaries] == ["CUP-9", "MUG-01", "TEA-001"]
        assert batch.computed_at == clock.now()
        assert batch.errors == ()

    def test_empty_ledger(self, generator):
        batch = generator.generate_all()
        assert batch.summaries == ()
        assert batch.errors == ()

    def test_concurrency_bounded_by_batch_size(
        self, session_factory, order_source, settings_store, clock, ledger,
    ):
        inventory = _SlowInventory()
        ledger(*[_mv(f"SKU-{i}", i, "initial") for i in range(7)])
        generator = _generator(
            session_factory, inventory, order_source, settings_store, clock, batch_size=3,
        )

        batch = generator.generate_all()
        assert len(batch.summaries) == 7
        assert inventory.peak <= 3

    def test_error_summaries_kept_and_reported(
        self, generator, ledger, order_source, settings_store,
    ):
        ledger(_mv("A", 1, "initial"), _mv("B", 2, "initial"))
        settings_store.exclude_on_hold = True
        order_source.fail = True

        batch = generator.generate_all()
        assert [s.sku for s in batch.summaries] == ["A", "B"]
        assert all(s.is_error for s in batch.summaries)
        assert [(e.key, e.code) for e in batch.errors] == [
            ("A", "SUMMARY_ERROR"),
            ("B", "SUMMARY_ERROR"),
        ]

    @pytest.mark.slow
    def test_timed_out_sku_reported_and_skipped(
        self, session_factory, order_source, settings_store, clock, ledger,
    ):
        inventory = _SlowInventory(delay=0, hang_sku="B", hang=1.0)
        ledger(_mv("A", 1, "initial"), _mv("B", 2, "initial"), _mv("C", 3, "initial"))
        generator = _generator(
            session_factory, inventory, order_source, settings_store, clock,
            batch_size=2, item_timeout_seconds=0.2,
        )

        batch = generator.generate_all()
        assert [s.sku for s in batch.summaries] == ["A", "C"]
        assert [(e.key, e.code) for e in batch.errors] == [("B", "TIMEOUT")]

    def test_unreadable_sku_list_raises(self, generator, db_engine):
        StockMovementModel.__table__.drop(db_engine, checkfirst=True)
        with pytest.raises(UpstreamError) as exc_info:
            generator.generate_all()
        assert exc_info.value.source == "store"
        assert exc_info.value.operation == "list_skus"

    def test_batch_size_must_be_positive(
        self, session_factory, inventory, order_source, settings_store, clock,
    ):
        with pytest.raises(ValueError):
            _generator(
                session_factory, inventory, order_source, settings_store, clock, batch_size=0,
            )

    def test_ledger_sale_type_enum_in_summary_fold(self, generator, ledger):
        ledger(_mv("A", 10, MovementType.INITIAL), _mv("A", -4, MovementType.SALE, "1"))
        summary = generator.generate_summary("A")
        assert summary.total_sales == 4
        assert summary.expected_stock == 6
