"""
stock_services.summary_generator -- per-SKU expected-vs-actual summaries.

Responsibility:
    Folds a SKU's ledger (read through the MovementReader, so the on-hold
    policy applies), joins it with the inventory source's live stock and
    product catalog, and produces a ``StockReconciliationSummary``.  The
    batch mode computes every ledger SKU in sequential batches on a bounded
    thread pool.

Architecture position:
    Services -- orchestration over kernel selectors/readers and external
    collaborators.  Each SKU is computed in its own session so worker threads
    never share one.

Invariants enforced:
    - expected_stock is exactly the signed sum of the SKU's movements.
    - ``generate_summary`` never raises: failures degrade field by field
      (no reconciliation -> last_reconciled None, no stock -> 0, no catalog
      entry -> ``Unknown Product (sku)``) and a failed ledger read yields a
      zeroed ``Error: sku`` summary.
    - At most ``batch_size`` summaries are in flight; batches run strictly
      one after another.

Failure modes:
    - ``generate_all`` raises UpstreamError only when the SKU list itself
      cannot be read; per-SKU failures land in ``SummaryBatch.errors``.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.collaborators import InventorySource, OrderSource, SettingsStore
from stock_kernel.domain.ledger import (
    UNKNOWN_PRODUCT,
    build_summary,
    error_summary,
    fold_movements,
    product_display_name,
    variation_display_name,
)
from stock_kernel.domain.results import BatchItemError, SummaryBatch
from stock_kernel.domain.types import StockReconciliationSummary
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.reconciliation_selector import ReconciliationSelector
from stock_kernel.services.base import STORE, upstream_errors
from stock_kernel.services.movement_reader import MovementReader

logger = get_logger("services.summary_generator")

SettingsStoreFactory = Callable[[Session], SettingsStore]

DEFAULT_BATCH_SIZE = 5
DEFAULT_ITEM_TIMEOUT_SECONDS = 30.0


class SummaryGenerator:
    """
    Computes reconciliation summaries.

    Args:
        session_factory: Opens one session per SKU.
        inventory_source: Live stock and catalog lookups.
        order_source: Orders, for the order-derived sales read path.
        settings_store_factory: Builds the settings store for a session.
        clock: Timestamps ``SummaryBatch.computed_at``.
        batch_size: Concurrent summaries per batch.
        item_timeout_seconds: How long a batch waits for one SKU.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        inventory_source: InventorySource,
        order_source: OrderSource,
        settings_store_factory: SettingsStoreFactory,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        item_timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.session_factory = session_factory
        self.inventory_source = inventory_source
        self.order_source = order_source
        self.settings_store_factory = settings_store_factory
        self.clock = clock or SystemClock()
        self.batch_size = batch_size
        self.item_timeout_seconds = item_timeout_seconds

    # -----------------------------------------------------------------
    # Single SKU
    # -----------------------------------------------------------------

    def generate_summary(self, sku: str) -> StockReconciliationSummary:
        """Summary for ``sku``; never raises."""
        with LogContext.bind(sku=sku, operation="generate_summary"):
            session = self.session_factory()
            try:
                return self._compute(session, sku)
            except Exception as exc:
                logger.warning(
                    "summary_failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                return error_summary(sku, str(exc))
            finally:
                session.close()

    def _compute(self, session: Session, sku: str) -> StockReconciliationSummary:
        reader = MovementReader(
            session, self.settings_store_factory(session), self.order_source,
        )
        totals = fold_movements(reader.by_sku(sku))

        last_reconciled = self._last_reconciled(session, sku)
        actual_stock = self._actual_stock(sku)
        product_name, product_id, variation_id = self._resolve_product(sku)

        summary = build_summary(
            sku,
            totals,
            actual_stock=actual_stock,
            product_name=product_name,
            product_id=product_id,
            variation_id=variation_id,
            last_reconciled=last_reconciled,
        )
        logger.debug(
            "summary_computed",
            extra={
                "movement_count": totals.movement_count,
                "expected_stock": summary.expected_stock,
                "actual_stock": summary.actual_stock,
                "discrepancy": summary.discrepancy,
            },
        )
        return summary

    def _last_reconciled(self, session: Session, sku: str) -> datetime | None:
        try:
            with upstream_errors(STORE, "get_latest_reconciliation"):
                latest = ReconciliationSelector(session).latest(sku)
        except Exception as exc:
            logger.warning("summary_reconciliation_lookup_failed", extra={"error": str(exc)})
            return None
        return latest.reconciliation_date if latest is not None else None

    def _actual_stock(self, sku: str) -> int:
        try:
            with upstream_errors("inventory_source", "get_actual_stock_by_sku"):
                return int(self.inventory_source.get_actual_stock_by_sku(sku) or 0)
        except Exception as exc:
            logger.warning("summary_stock_lookup_failed", extra={"error": str(exc)})
            return 0

    def _resolve_product(self, sku: str) -> tuple[str, int | None, int | None]:
        """Display name and ids: variation first, then simple product."""
        try:
            with upstream_errors("inventory_source", "resolve_product"):
                variation = self.inventory_source.get_variation_by_sku(sku)
                if variation is not None:
                    parent_name = self.inventory_source.get_product_name_by_id(
                        variation.parent_id
                    )
                    return (
                        variation_display_name(variation, parent_name, sku),
                        variation.parent_id,
                        variation.id,
                    )
                product = self.inventory_source.get_product_by_sku(sku)
                if product is not None:
                    return product_display_name(product, sku), product.id, None
                return product_display_name(None, sku), None, None
        except Exception as exc:
            logger.warning("summary_name_lookup_failed", extra={"error": str(exc)})
            return f"{UNKNOWN_PRODUCT} ({sku})", None, None

    # -----------------------------------------------------------------
    # All SKUs
    # -----------------------------------------------------------------

    def list_skus(self) -> list[str]:
        """Distinct SKUs present in the ledger, sorted."""
        session = self.session_factory()
        try:
            with upstream_errors(STORE, "list_skus"):
                return MovementSelector(session).distinct_skus()
        finally:
            session.close()

    def generate_all(self) -> SummaryBatch:
        """
        Summaries for every ledger SKU.

        Error-flagged summaries are returned and also listed in ``errors``;
        SKUs that time out or crash a worker are only listed in ``errors``.
        """
        computed_at = self.clock.now()
        skus = self.list_skus()

        summaries: list[StockReconciliationSummary] = []
        errors: list[BatchItemError] = []

        executor = ThreadPoolExecutor(
            max_workers=self.batch_size,
            thread_name_prefix="stock-summary",
        )
        try:
            for start in range(0, len(skus), self.batch_size):
                batch = skus[start:start + self.batch_size]
                futures = [(sku, executor.submit(self.generate_summary, sku)) for sku in batch]
                for sku, future in futures:
                    try:
                        summary = future.result(timeout=self.item_timeout_seconds)
                    except FutureTimeout:
                        future.cancel()
                        errors.append(
                            BatchItemError(
                                key=sku,
                                error=f"timed out after {self.item_timeout_seconds}s",
                                code="TIMEOUT",
                            )
                        )
                        continue
                    except Exception as exc:
                        errors.append(
                            BatchItemError(
                                key=sku,
                                error=str(exc),
                                code="UNHANDLED_EXCEPTION",
                            )
                        )
                        continue

                    summaries.append(summary)
                    if summary.is_error:
                        errors.append(
                            BatchItemError(key=sku, error=summary.error, code="SUMMARY_ERROR")
                        )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "summaries_generated",
            extra={
                "sku_count": len(skus),
                "summary_count": len(summaries),
                "error_count": len(errors),
                "batch_size": self.batch_size,
            },
        )
        return SummaryBatch(
            summaries=tuple(summaries),
            computed_at=computed_at,
            errors=tuple(errors),
        )
