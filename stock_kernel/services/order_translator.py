"""
OrderTranslator -- derives ledger movements from external orders.

Responsibility:
    Turns order line items into negative ``sale`` movements and received
    purchase-order items into positive ``purchase`` movements, idempotently,
    and runs incremental ingestion against the sync watermark.

Architecture position:
    Kernel > Services.  Flush-only; writes through MovementStore so cache
    invalidation and validation apply to every row it creates.

Invariants enforced:
    - Idempotent ingestion: a sale is keyed by (sku, sale, order number,
      -|quantity|) and a purchase by (sku, purchase, PO reference, quantity).
      A key already present in the store is never inserted again.
    - Each order of a batch runs in its own SAVEPOINT; one failing order
      never undoes the others.
    - The watermark only advances when something was processed or no
      watermark existed yet.

Failure modes:
    - process_order / process_purchase_order propagate ValidationError and
      UpstreamError.
    - The batch operations never raise for per-order failures; failures are
      listed in the result's ``errors``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.collaborators import OrderSource, SyncWatermarkStore
from stock_kernel.domain.results import BatchItemError, NewOrdersResult, OrderBatchResult
from stock_kernel.domain.types import (
    PURCHASE_RECEIVED_STATUSES,
    MovementType,
    Order,
    PurchaseOrder,
    StockMovement,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.services.base import BaseService, upstream_errors
from stock_kernel.services.movement_reader import (
    MovementReader,
    is_sale_eligible,
    sale_movements_for_order,
)
from stock_kernel.services.movement_store import MovementStore

logger = get_logger("services.order_translator")

DEFAULT_SYNC_KEY = "stock_movements"

T = TypeVar("T")


class OrderTranslator(BaseService[StockMovementModel]):
    """Order and purchase-order ingestion into the stock ledger."""

    def __init__(
        self,
        session: Session,
        reader: MovementReader,
        store: MovementStore,
        watermark_store: SyncWatermarkStore,
        order_source: OrderSource | None = None,
        clock: Clock | None = None,
        sync_key: str = DEFAULT_SYNC_KEY,
    ):
        super().__init__(session)
        self.reader = reader
        self.store = store
        self.watermark_store = watermark_store
        self.order_source = order_source
        self.clock = clock or SystemClock()
        self.sync_key = sync_key

    # -----------------------------------------------------------------
    # Sales
    # -----------------------------------------------------------------

    def process_order(self, order: Order, exclude_on_hold: bool | None = None) -> int:
        """
        Create the sale movements of ``order`` that do not exist yet.

        Returns the number of movements created.  Ineligible orders create
        nothing and are not an error.
        """
        if exclude_on_hold is None:
            exclude_on_hold = self.reader.exclude_on_hold()

        with LogContext.bind(reference_id=order.number):
            if not is_sale_eligible(order, exclude_on_hold):
                logger.debug(
                    "order_skipped_ineligible",
                    extra={"status": order.status},
                )
                return 0

            created = 0
            for movement in sale_movements_for_order(order):
                if self._exists(movement):
                    logger.debug(
                        "sale_movement_exists",
                        extra={"sku": movement.sku, "quantity": movement.quantity},
                    )
                    continue
                self.store.add_movement(movement)
                created += 1

            logger.info(
                "order_processed",
                extra={"movements_created": created, "line_items": len(order.line_items)},
            )
            return created

    def process_orders(self, orders: Iterable[Order]) -> OrderBatchResult:
        """
        Process each eligible order in its own SAVEPOINT and collect failures.

        Ineligible orders (wrong status, or on hold while on-hold orders are
        excluded) are counted as skipped, not processed.
        """
        exclude_on_hold = self.reader.exclude_on_hold()
        orders = list(orders)
        eligible = [o for o in orders if is_sale_eligible(o, exclude_on_hold)]
        processed, errors = self._run_batch(
            eligible,
            key=lambda o: o.number,
            handler=lambda o: self.process_order(o, exclude_on_hold),
        )
        result = OrderBatchResult(
            processed=processed,
            failed=len(errors),
            errors=tuple(errors),
            skipped=len(orders) - len(eligible),
        )
        logger.info(
            "orders_batch_processed",
            extra={
                "processed": result.processed,
                "skipped": result.skipped,
                "failed": result.failed,
            },
        )
        return result

    def process_new_orders(self, orders: Sequence[Order] | None = None) -> NewOrdersResult:
        """
        Incremental ingestion: only orders created after the watermark.

        ``orders`` defaults to everything the order source returns.  The
        watermark advances to "now" at the end of the run if at least one
        order was processed or there was no watermark before.  The new
        watermark is the time the run started, so orders created while the
        run is in progress are picked up by the next one.
        """
        if orders is None:
            orders = self._fetch_orders()

        with upstream_errors("sync_watermark_store", "get_last_sync"):
            last_sync = self.watermark_store.get_last_sync(self.sync_key)
        exclude_on_hold = self.reader.exclude_on_hold()

        pending = [
            order for order in orders
            if is_sale_eligible(order, exclude_on_hold)
            and (
                last_sync is None
                or (order.date_created is not None and order.date_created > last_sync)
            )
        ]
        skipped = len(orders) - len(pending)

        run_started = self.clock.now()
        processed, errors = self._run_batch(
            pending,
            key=lambda o: o.number,
            handler=lambda o: self.process_order(o, exclude_on_hold),
        )

        advanced = processed > 0 or last_sync is None
        last_processed_time = last_sync
        if advanced:
            last_processed_time = run_started
            with upstream_errors("sync_watermark_store", "set_last_sync"):
                self.watermark_store.set_last_sync(self.sync_key, last_processed_time)

        logger.info(
            "new_orders_processed",
            extra={
                "processed": processed,
                "skipped": skipped,
                "failed": len(errors),
                "previous_sync": last_sync,
                "watermark_advanced": advanced,
            },
        )
        return NewOrdersResult(
            processed=processed,
            skipped=skipped,
            failed=len(errors),
            last_processed_time=last_processed_time,
            errors=tuple(errors),
            watermark_advanced=advanced,
        )

    # -----------------------------------------------------------------
    # Purchases
    # -----------------------------------------------------------------

    def process_purchase_order(self, purchase_order: PurchaseOrder) -> int:
        """Create purchase movements for the received items of a PO."""
        reference = purchase_order.reference_number
        with LogContext.bind(reference_id=reference):
            if purchase_order.status not in PURCHASE_RECEIVED_STATUSES:
                logger.debug(
                    "purchase_order_skipped_not_received",
                    extra={"status": purchase_order.status},
                )
                return 0

            created = 0
            for item in purchase_order.items:
                if not item.sku or not item.quantity_received or item.quantity_received <= 0:
                    continue
                movement = StockMovement(
                    sku=item.sku,
                    quantity=item.quantity_received,
                    movement_type=MovementType.PURCHASE,
                    movement_date=purchase_order.date,
                    reference_id=reference,
                    batch_number=item.batch_number,
                    expiry_date=item.expiry_date,
                    notes=f"Purchase Order #{reference}",
                )
                if self._exists(movement):
                    continue
                self.store.add_movement(movement)
                created += 1

            logger.info("purchase_order_processed", extra={"movements_created": created})
            return created

    def process_purchase_orders(
        self, purchase_orders: Iterable[PurchaseOrder],
    ) -> OrderBatchResult:
        purchase_orders = list(purchase_orders)
        received = [
            po for po in purchase_orders if po.status in PURCHASE_RECEIVED_STATUSES
        ]
        processed, errors = self._run_batch(
            received,
            key=lambda po: po.reference_number,
            handler=self.process_purchase_order,
        )
        return OrderBatchResult(
            processed=processed,
            failed=len(errors),
            errors=tuple(errors),
            skipped=len(purchase_orders) - len(received),
        )

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _exists(self, movement: StockMovement) -> bool:
        return self.reader.find_persisted(
            movement.reference_id,
            movement.sku,
            movement.movement_type,
            movement.quantity,
        ) is not None

    def _fetch_orders(self) -> list[Order]:
        if self.order_source is None:
            raise ValueError("No orders given and no order source configured")
        with upstream_errors("order_source", "get_all_orders"):
            return list(self.order_source.get_all_orders())

    def _run_batch(
        self,
        items: Iterable[T],
        key: Callable[[T], str],
        handler: Callable[[T], int],
    ) -> tuple[int, list[BatchItemError]]:
        processed = 0
        errors: list[BatchItemError] = []
        for item in items:
            savepoint = self.session.begin_nested()
            try:
                handler(item)
                savepoint.commit()
                processed += 1
            except Exception as exc:
                savepoint.rollback()
                item_key = key(item)
                errors.append(
                    BatchItemError(
                        key=item_key,
                        error=str(exc),
                        code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                    )
                )
                logger.warning(
                    "batch_item_failed",
                    extra={"reference_id": item_key, "error": str(exc)},
                )
        return processed, errors
