"""
stock_services.reconciliation_service -- consumer-facing facade.

Responsibility:
    The one object a reporting UI or CLI talks to.  Builds the kernel
    services per transaction, owns the transaction boundary of every call
    (commit on success, rollback and re-raise on failure) and owns the single
    ``SummaryCache`` that every ledger mutator invalidates.

Architecture position:
    Services -- above ``stock_kernel`` (flush-only services, selectors) and
    ``stock_config`` (``from_config``).

Invariants enforced:
    - Each public method runs in exactly one ``session_scope``.
    - Every mutating call invalidates the summary cache inside the
      transaction and once more after commit, so a summary computed while
      the write was in flight never survives it.
    - Reconciliations of the same SKU are serialized within this process.
      Separate processes still race; the later correction wins.
    - Constructing the facade registers the ORM immutability listeners.

Usage:
    service = StockReconciliationService(
        session_factory, inventory_source=catalog, order_source=orders,
    )
    service.add_movement(StockMovement(sku="TEA-001", quantity=100,
                                       movement_type=MovementType.INITIAL))
    summaries = service.generate_all_summaries()
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import StockConfig
from stock_kernel.db.engine import build_engine, session_scope
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.collaborators import (
    InventorySource,
    OrderSource,
    SettingsStore,
    SyncWatermarkStore,
)
from stock_kernel.domain.results import CleanupResult, NewOrdersResult, OrderBatchResult
from stock_kernel.domain.types import (
    AdjustmentMetadata,
    MovementReason,
    MovementType,
    Order,
    PurchaseOrder,
    StockMovement,
    StockReconciliation,
    StockReconciliationSummary,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.duplicate_cleaner import DuplicateCleaner
from stock_kernel.services.movement_reader import MovementReader
from stock_kernel.services.movement_store import MovementStore
from stock_kernel.services.order_translator import DEFAULT_SYNC_KEY, OrderTranslator
from stock_kernel.services.reconciliation_executor import ReconciliationExecutor
from stock_kernel.services.settings_store import SqlSettingsStore
from stock_kernel.services.sync_watermark_store import SqlSyncWatermarkStore
from stock_services.summary_cache import DEFAULT_TTL_SECONDS, SummaryCache
from stock_services.summary_generator import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_ITEM_TIMEOUT_SECONDS,
    SummaryGenerator,
)

logger = get_logger("services.reconciliation_service")

WatermarkStoreFactory = Callable[[Session], SyncWatermarkStore]


@dataclass(frozen=True)
class _Kernel:
    """Kernel services bound to one session."""

    session: Session
    reader: MovementReader
    store: MovementStore
    translator: OrderTranslator
    executor: ReconciliationExecutor
    cleaner: DuplicateCleaner
    settings: SettingsStore


class StockReconciliationService:
    """
    Facade over the stock ledger, its summaries and its reconciliation.

    Args:
        session_factory: Session factory bound to the ledger database.
        inventory_source: Live stock and catalog.
        order_source: External orders.
        clock: Time source for ledger timestamps, watermark and cache TTL.
        settings_store_factory: Per-session settings store; defaults to the
            ``app_settings`` table.
        watermark_store_factory: Per-session watermark store; defaults to the
            ``sync_records`` table.
        exclude_on_hold_default: Flag value before anything was stored.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        inventory_source: InventorySource,
        order_source: OrderSource,
        clock: Clock | None = None,
        settings_store_factory: Callable[[Session], SettingsStore] | None = None,
        watermark_store_factory: WatermarkStoreFactory | None = None,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        summary_batch_size: int = DEFAULT_BATCH_SIZE,
        summary_item_timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
        exclude_on_hold_default: bool = True,
        sync_key: str = DEFAULT_SYNC_KEY,
    ):
        self.session_factory = session_factory
        self.inventory_source = inventory_source
        self.order_source = order_source
        self.clock = clock or SystemClock()
        self.sync_key = sync_key
        self.exclude_on_hold_default = exclude_on_hold_default

        self._settings_store_factory = settings_store_factory or self._sql_settings
        self._watermark_store_factory = watermark_store_factory or SqlSyncWatermarkStore

        self.generator = SummaryGenerator(
            session_factory,
            inventory_source=inventory_source,
            order_source=order_source,
            settings_store_factory=self._settings_store_factory,
            clock=self.clock,
            batch_size=summary_batch_size,
            item_timeout_seconds=summary_item_timeout_seconds,
        )
        self.cache = SummaryCache(
            self.generator.generate_all,
            clock=self.clock,
            ttl_seconds=cache_ttl_seconds,
        )

        # A SKU's lock lives only while some call holds it.
        self._sku_locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._sku_locks_guard = threading.Lock()

        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: StockConfig,
        inventory_source: InventorySource,
        order_source: OrderSource,
        clock: Clock | None = None,
    ) -> StockReconciliationService:
        """Build the facade and its engine from a ``StockConfig``."""
        engine = build_engine(
            config.database_url,
            store_timeout_seconds=config.store_timeout_seconds,
        )
        return cls(
            sessionmaker(bind=engine, expire_on_commit=False),
            inventory_source=inventory_source,
            order_source=order_source,
            clock=clock,
            cache_ttl_seconds=config.summary_cache_ttl_seconds,
            summary_batch_size=config.summary_batch_size,
            summary_item_timeout_seconds=config.summary_item_timeout_seconds,
            exclude_on_hold_default=config.exclude_on_hold_orders_default,
            sync_key=config.sync_key,
        )

    @property
    def engine(self) -> Engine | None:
        """Engine the session factory is bound to."""
        return self.session_factory.kw.get("bind")

    # -----------------------------------------------------------------
    # Wiring
    # -----------------------------------------------------------------

    def _sql_settings(self, session: Session) -> SettingsStore:
        return SqlSettingsStore(
            session,
            default_exclude_on_hold=self.exclude_on_hold_default,
            invalidator=self.cache,
        )

    def _kernel(self, session: Session) -> _Kernel:
        settings = self._settings_store_factory(session)
        reader = MovementReader(session, settings, self.order_source)
        store = MovementStore(session, reader, clock=self.clock, invalidator=self.cache)
        return _Kernel(
            session=session,
            reader=reader,
            store=store,
            translator=OrderTranslator(
                session,
                reader,
                store,
                watermark_store=self._watermark_store_factory(session),
                order_source=self.order_source,
                clock=self.clock,
                sync_key=self.sync_key,
            ),
            executor=ReconciliationExecutor(
                session,
                reader,
                store,
                self.inventory_source,
                clock=self.clock,
                invalidator=self.cache,
            ),
            cleaner=DuplicateCleaner(session, invalidator=self.cache),
            settings=settings,
        )

    @contextmanager
    def _read(self) -> Iterator[_Kernel]:
        with session_scope(self.session_factory) as session:
            yield self._kernel(session)

    @contextmanager
    def _write(self, operation: str) -> Iterator[_Kernel]:
        with LogContext.bind(operation=operation):
            with session_scope(self.session_factory) as session:
                yield self._kernel(session)
            self.cache.invalidate()

    def _sku_lock(self, sku: str) -> threading.Lock:
        with self._sku_locks_guard:
            lock = self._sku_locks.get(sku)
            if lock is None:
                lock = threading.Lock()
                self._sku_locks[sku] = lock
            return lock

    # -----------------------------------------------------------------
    # Movement store
    # -----------------------------------------------------------------

    def add_movement(
        self,
        movement: StockMovement,
        metadata: AdjustmentMetadata | None = None,
    ) -> int:
        with self._write("add_movement") as k:
            return k.store.add_movement(movement, metadata=metadata)

    def record_initial_stock(
        self,
        sku: str,
        quantity: int,
        notes: str | None = None,
        movement_date: datetime | None = None,
    ) -> int:
        with self._write("record_initial_stock") as k:
            return k.store.record_initial_stock(sku, quantity, notes, movement_date)

    def record_adjustment(
        self,
        sku: str,
        quantity: int,
        reason: MovementReason | str,
        notes: str | None = None,
        batch_number: str | None = None,
        movement_date: datetime | None = None,
        metadata: AdjustmentMetadata | None = None,
    ) -> int:
        with self._write("record_adjustment") as k:
            return k.store.record_adjustment(
                sku,
                quantity,
                reason,
                notes=notes,
                batch_number=batch_number,
                movement_date=movement_date,
                metadata=metadata,
            )

    def get_movement(self, movement_id: int) -> StockMovement:
        with self._read() as k:
            return k.store.get_by_id(movement_id)

    def get_movements_by_sku(self, sku: str) -> list[StockMovement]:
        with self._read() as k:
            return k.store.get_by_sku(sku)

    def get_movements_by_type(self, movement_type: MovementType | str) -> list[StockMovement]:
        with self._read() as k:
            return k.store.get_by_type(movement_type)

    def get_all_movements(self) -> list[StockMovement]:
        with self._read() as k:
            return k.store.get_all()

    def get_movement_metadata(self, movement_id: int) -> AdjustmentMetadata | None:
        with self._read() as k:
            return k.store.get_metadata(movement_id)

    def update_movement(self, movement_id: int, changes: Mapping[str, Any]) -> StockMovement:
        with self._write("update_movement") as k:
            return k.store.update(movement_id, changes)

    def delete_movement(self, movement_id: int) -> None:
        with self._write("delete_movement") as k:
            k.store.delete(movement_id)

    def calculate_expected_stock(self, sku: str) -> int:
        with self._read() as k:
            return k.store.calculate_expected_stock(sku)

    def purge_sale_movements(self) -> int:
        with self._write("purge_sale_movements") as k:
            return k.store.purge_sale_movements()

    # -----------------------------------------------------------------
    # Order ingestion
    # -----------------------------------------------------------------

    def process_order(self, order: Order) -> int:
        with self._write("process_order") as k:
            return k.translator.process_order(order)

    def process_orders(self, orders: Sequence[Order]) -> OrderBatchResult:
        with self._write("process_orders") as k:
            return k.translator.process_orders(orders)

    def process_new_orders(self, orders: Sequence[Order] | None = None) -> NewOrdersResult:
        with self._write("process_new_orders") as k:
            return k.translator.process_new_orders(orders)

    def refresh_from_orders(self, orders: Sequence[Order] | None = None) -> NewOrdersResult:
        """Incremental ingestion; the cache is dropped only if anything was processed."""
        with LogContext.bind(operation="refresh_from_orders"):
            with session_scope(self.session_factory) as session:
                result = self._kernel(session).translator.process_new_orders(orders)
            if result.processed > 0:
                self.cache.invalidate()
        return result

    def process_purchase_order(self, purchase_order: PurchaseOrder) -> int:
        with self._write("process_purchase_order") as k:
            return k.translator.process_purchase_order(purchase_order)

    def process_purchase_orders(
        self, purchase_orders: Sequence[PurchaseOrder],
    ) -> OrderBatchResult:
        with self._write("process_purchase_orders") as k:
            return k.translator.process_purchase_orders(purchase_orders)

    # -----------------------------------------------------------------
    # Summaries
    # -----------------------------------------------------------------

    def generate_summary(self, sku: str) -> StockReconciliationSummary:
        """Uncached summary of one SKU; never raises."""
        return self.generator.generate_summary(sku)

    def generate_all_summaries(
        self, force_refresh: bool = False,
    ) -> list[StockReconciliationSummary]:
        return self.cache.get_all(force_refresh=force_refresh)

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def last_cache_time(self) -> datetime | None:
        return self.cache.last_computed_at

    # -----------------------------------------------------------------
    # Reconciliation
    # -----------------------------------------------------------------

    def perform_reconciliation(
        self,
        sku: str,
        actual_quantity: int,
        notes: str | None = None,
    ) -> StockReconciliation:
        with self._sku_lock(sku):
            with self._write("perform_reconciliation") as k:
                return k.executor.perform_reconciliation(sku, actual_quantity, notes)

    def get_reconciliation(self, reconciliation_id: int) -> StockReconciliation:
        with self._read() as k:
            return k.executor.get_reconciliation(reconciliation_id)

    def get_reconciliations_by_sku(self, sku: str) -> list[StockReconciliation]:
        with self._read() as k:
            return k.executor.get_reconciliations_by_sku(sku)

    def get_latest_reconciliation(self, sku: str) -> StockReconciliation | None:
        with self._read() as k:
            return k.executor.get_latest_reconciliation(sku)

    def update_reconciliation_notes(
        self, reconciliation_id: int, notes: str | None,
    ) -> StockReconciliation:
        with self._write("update_reconciliation_notes") as k:
            return k.executor.update_notes(reconciliation_id, notes)

    # -----------------------------------------------------------------
    # Duplicates
    # -----------------------------------------------------------------

    def cleanup_duplicates(self, movement_type: MovementType | str) -> CleanupResult:
        with LogContext.bind(operation="cleanup_duplicates"):
            with session_scope(self.session_factory) as session:
                result = self._kernel(session).cleaner.cleanup_duplicates(movement_type)
            if result.removed > 0:
                self.cache.invalidate()
        return result

    # -----------------------------------------------------------------
    # Settings
    # -----------------------------------------------------------------

    def get_exclude_on_hold_orders(self) -> bool:
        with self._read() as k:
            return k.reader.exclude_on_hold()

    def set_exclude_on_hold_orders(self, exclude: bool) -> None:
        with self._write("set_exclude_on_hold_orders") as k:
            k.settings.set_exclude_on_hold_orders(exclude)
        logger.info("exclude_on_hold_orders_set", extra={"exclude": exclude})
