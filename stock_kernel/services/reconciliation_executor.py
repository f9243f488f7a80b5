"""
ReconciliationExecutor -- records a stock count and corrects the ledger.

Responsibility:
    Computes expected stock for a SKU from the ledger, records the physical
    count as a StockReconciliation, and when the two differ appends a
    ``correction`` adjustment equal to the discrepancy so the ledger total
    matches the count from then on.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - discrepancy == actual_quantity - expected_quantity.
    - A corrective adjustment exists iff discrepancy != 0, and its quantity
      is exactly the discrepancy.
    - Reconciliations are never deleted; only their notes can be edited.

Non-goals:
    - No serialization of concurrent counts of the same SKU at this layer;
      see the facade for the in-process per-SKU lock.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.collaborators import (
    CacheInvalidator,
    InventorySource,
    NullInvalidator,
)
from stock_kernel.domain.ledger import expected_stock
from stock_kernel.domain.types import (
    MovementReason,
    MovementType,
    StockMovement,
    StockReconciliation,
)
from stock_kernel.exceptions import ReconciliationNotFoundError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.stock_reconciliation import StockReconciliationModel
from stock_kernel.selectors.reconciliation_selector import ReconciliationSelector
from stock_kernel.services.base import BaseService, upstream_errors
from stock_kernel.services.movement_reader import MovementReader
from stock_kernel.services.movement_store import MovementStore

logger = get_logger("services.reconciliation_executor")


def correction_notes(reconciliation_id: int, notes: str | None) -> str:
    return f"Automatic adjustment from reconciliation #{reconciliation_id}. {notes or ''}"


class ReconciliationExecutor(BaseService[StockReconciliationModel]):
    """Manual stock counts and their ledger corrections."""

    def __init__(
        self,
        session: Session,
        reader: MovementReader,
        store: MovementStore,
        inventory_source: InventorySource,
        clock: Clock | None = None,
        invalidator: CacheInvalidator | None = None,
    ):
        super().__init__(session)
        self.reader = reader
        self.store = store
        self.inventory_source = inventory_source
        self.clock = clock or SystemClock()
        self.invalidator = invalidator or NullInvalidator()
        self.selector = ReconciliationSelector(session)

    def perform_reconciliation(
        self,
        sku: str,
        actual_quantity: int,
        notes: str | None = None,
    ) -> StockReconciliation:
        """
        Record a count of ``actual_quantity`` units of ``sku``.

        Returns the persisted reconciliation.  When the count differs from
        the ledger, a correction adjustment is appended in the same
        transaction.
        """
        if not isinstance(sku, str) or not sku.strip():
            raise ValidationError("sku", "must be a non-empty string", sku)
        if isinstance(actual_quantity, bool) or not isinstance(actual_quantity, int):
            raise ValidationError("actual_quantity", "must be an integer", actual_quantity)

        with LogContext.bind(sku=sku, operation="perform_reconciliation"):
            expected = expected_stock(self.reader.by_sku(sku))
            discrepancy = actual_quantity - expected
            product_id, variation_id = self._resolve_ids(sku)
            now = self.clock.now()

            reconciliation = StockReconciliation(
                sku=sku,
                product_id=product_id,
                variation_id=variation_id,
                reconciliation_date=now,
                expected_quantity=expected,
                actual_quantity=actual_quantity,
                discrepancy=discrepancy,
                notes=notes,
            )
            with self._store("record_reconciliation"):
                model = StockReconciliationModel.from_dto(reconciliation, created_at=now)
                self.session.add(model)
                self.session.flush()

            logger.info(
                "reconciliation_recorded",
                extra={
                    "reconciliation_id": model.id,
                    "expected_quantity": expected,
                    "actual_quantity": actual_quantity,
                    "discrepancy": discrepancy,
                },
            )

            if discrepancy != 0:
                adjustment_id = self.store.add_movement(
                    StockMovement(
                        sku=sku,
                        product_id=product_id,
                        variation_id=variation_id,
                        movement_date=now,
                        quantity=discrepancy,
                        movement_type=MovementType.ADJUSTMENT,
                        reason=MovementReason.CORRECTION,
                        notes=correction_notes(model.id, notes),
                    )
                )
                logger.info(
                    "reconciliation_correction_added",
                    extra={
                        "reconciliation_id": model.id,
                        "movement_id": adjustment_id,
                        "quantity": discrepancy,
                    },
                )

        self.invalidator.invalidate()
        return model.to_dto()

    def get_reconciliations_by_sku(self, sku: str) -> list[StockReconciliation]:
        with self._store("get_reconciliations_by_sku"):
            return self.selector.by_sku(sku)

    def get_latest_reconciliation(self, sku: str) -> StockReconciliation | None:
        with self._store("get_latest_reconciliation"):
            return self.selector.latest(sku)

    def get_reconciliation(self, reconciliation_id: int) -> StockReconciliation:
        with self._store("get_reconciliation"):
            reconciliation = self.selector.get(reconciliation_id)
        if reconciliation is None:
            raise ReconciliationNotFoundError(reconciliation_id)
        return reconciliation

    def update_notes(self, reconciliation_id: int, notes: str | None) -> StockReconciliation:
        with self._store("update_reconciliation_notes"):
            model = self.session.get(StockReconciliationModel, reconciliation_id)
        if model is None:
            raise ReconciliationNotFoundError(reconciliation_id)
        with self._store("update_reconciliation_notes"):
            model.notes = notes
            self.session.flush()
        logger.info(
            "reconciliation_notes_updated",
            extra={"reconciliation_id": reconciliation_id},
        )
        self.invalidator.invalidate()
        return model.to_dto()

    def _resolve_ids(self, sku: str) -> tuple[int | None, int | None]:
        """Product first, then variation; (None, None) when neither matches."""
        with upstream_errors("inventory_source", "get_product_by_sku"):
            product = self.inventory_source.get_product_by_sku(sku)
        if product is not None:
            return product.id, None
        with upstream_errors("inventory_source", "get_variation_by_sku"):
            variation = self.inventory_source.get_variation_by_sku(sku)
        if variation is not None:
            return variation.parent_id, variation.id
        return None, None
