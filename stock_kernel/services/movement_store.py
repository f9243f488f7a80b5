"""
MovementStore -- durable append/read access to stock movements.

Responsibility:
    Validates and appends ledger rows, serves reads through the MovementReader
    (so the on-hold policy applies), edits the annotation fields of a row,
    deletes rows, and keeps the adjustment metadata side-table in step.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - sku is required and non-blank; movement_type and reason are closed
      sets; reason is only accepted on adjustments.
    - ``update`` only touches notes, reason and batch_number.  Any other key
      is rejected before the ORM is involved (the immutability listeners are
      the second line).
    - Every successful write calls ``invalidator.invalidate()``.

Failure modes:
    - ValidationError for bad input.
    - MovementNotFoundError for an unknown id.
    - UpstreamError when the store fails.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.collaborators import CacheInvalidator, NullInvalidator
from stock_kernel.domain.ledger import expected_stock
from stock_kernel.domain.types import (
    AdjustmentMetadata,
    MovementReason,
    MovementType,
    StockMovement,
)
from stock_kernel.exceptions import MovementNotFoundError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.movement_metadata import MovementMetadataModel
from stock_kernel.models.stock_movement import (
    MUTABLE_MOVEMENT_FIELDS,
    StockMovementModel,
)
from stock_kernel.services.base import BaseService
from stock_kernel.services.movement_reader import MovementReader

logger = get_logger("services.movement_store")


def validate_movement(movement: StockMovement) -> StockMovement:
    """
    Check a movement before it is stored and normalize its enums.

    Returns the movement with movement_type/reason coerced to their enums.
    """
    if not isinstance(movement.sku, str) or not movement.sku.strip():
        raise ValidationError("sku", "must be a non-empty string", movement.sku)
    if isinstance(movement.quantity, bool) or not isinstance(movement.quantity, int):
        raise ValidationError("quantity", "must be an integer", movement.quantity)

    movement_type = MovementType.parse(movement.movement_type)
    reason = None
    if movement.reason is not None:
        if movement_type is not MovementType.ADJUSTMENT:
            raise ValidationError(
                "reason",
                "only adjustment movements carry a reason",
                movement.reason,
            )
        reason = MovementReason.parse(movement.reason)

    if movement_type is movement.movement_type and reason is movement.reason:
        return movement
    return StockMovement(
        sku=movement.sku,
        quantity=movement.quantity,
        movement_type=movement_type,
        movement_date=movement.movement_date,
        product_id=movement.product_id,
        variation_id=movement.variation_id,
        reason=reason,
        reference_id=movement.reference_id,
        batch_number=movement.batch_number,
        notes=movement.notes,
        expiry_date=movement.expiry_date,
    )


class MovementStore(BaseService[StockMovementModel]):
    """Append, read, annotate and delete stock movements."""

    def __init__(
        self,
        session: Session,
        reader: MovementReader,
        clock: Clock | None = None,
        invalidator: CacheInvalidator | None = None,
    ):
        super().__init__(session)
        self.reader = reader
        self.clock = clock or SystemClock()
        self.invalidator = invalidator or NullInvalidator()

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def add_movement(
        self,
        movement: StockMovement,
        metadata: AdjustmentMetadata | None = None,
    ) -> int:
        """
        Append ``movement`` to the ledger and return its store-assigned id.

        ``metadata`` is only accepted for adjustment movements.
        """
        movement = validate_movement(movement)
        if metadata is not None and movement.movement_type is not MovementType.ADJUSTMENT:
            raise ValidationError(
                "metadata",
                "only adjustment movements carry metadata",
                movement.movement_type.value,
            )

        with LogContext.bind(sku=movement.sku, reference_id=movement.reference_id):
            with self._store("add_movement"):
                model = StockMovementModel.from_dto(movement, created_at=self.clock.now())
                self.session.add(model)
                self.session.flush()
                if metadata is not None:
                    self.session.add(MovementMetadataModel.from_dto(model.id, metadata))
                    self.session.flush()

            logger.info(
                "movement_added",
                extra={
                    "movement_id": model.id,
                    "movement_type": movement.movement_type.value,
                    "quantity": movement.quantity,
                    "has_metadata": metadata is not None,
                },
            )
        self.invalidator.invalidate()
        return model.id

    def record_initial_stock(
        self,
        sku: str,
        quantity: int,
        notes: str | None = None,
        movement_date: datetime | None = None,
    ) -> int:
        """Opening balance for a SKU."""
        return self.add_movement(
            StockMovement(
                sku=sku,
                quantity=quantity,
                movement_type=MovementType.INITIAL,
                movement_date=movement_date,
                notes=notes,
            )
        )

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
        """Manual signed adjustment (expiry write-off, damage, theft...)."""
        return self.add_movement(
            StockMovement(
                sku=sku,
                quantity=quantity,
                movement_type=MovementType.ADJUSTMENT,
                reason=MovementReason.parse(reason),
                movement_date=movement_date,
                batch_number=batch_number,
                notes=notes,
                expiry_date=metadata.expiry_date if metadata else None,
            ),
            metadata=metadata,
        )

    def update(self, movement_id: int, changes: Mapping[str, Any]) -> StockMovement:
        """
        Edit the annotation fields of a movement.

        Only notes, reason and batch_number may appear in ``changes``.
        """
        frozen = sorted(set(changes) - MUTABLE_MOVEMENT_FIELDS)
        if frozen:
            raise ValidationError(
                frozen[0],
                "is immutable after creation; only notes, reason and "
                "batch_number may be edited",
            )

        model = self._get_model(movement_id)
        if "reason" in changes and changes["reason"] is not None:
            if model.movement_type != MovementType.ADJUSTMENT.value:
                raise ValidationError(
                    "reason",
                    "only adjustment movements carry a reason",
                    changes["reason"],
                )

        with LogContext.bind(sku=model.sku):
            with self._store("update_movement"):
                if "notes" in changes:
                    model.notes = changes["notes"]
                if "batch_number" in changes:
                    model.batch_number = changes["batch_number"]
                if "reason" in changes:
                    reason = changes["reason"]
                    model.reason = (
                        MovementReason.parse(reason).value if reason is not None else None
                    )
                self.session.flush()

            logger.info(
                "movement_updated",
                extra={"movement_id": movement_id, "fields": sorted(changes)},
            )
        self.invalidator.invalidate()
        return model.to_dto()

    def delete(self, movement_id: int) -> None:
        """Remove a movement and its metadata."""
        model = self._get_model(movement_id)
        sku = model.sku
        with self._store("delete_movement"):
            self.session.execute(
                delete(MovementMetadataModel).where(
                    MovementMetadataModel.movement_id == movement_id
                )
            )
            self.session.delete(model)
            self.session.flush()

        logger.info(
            "movement_deleted",
            extra={"movement_id": movement_id, "sku": sku},
        )
        self.invalidator.invalidate()

    def purge_sale_movements(self) -> int:
        """Delete every persisted sale movement; returns the number removed."""
        with self._store("purge_sale_movements"):
            sale_ids = select(StockMovementModel.id).where(
                StockMovementModel.movement_type == MovementType.SALE.value
            )
            self.session.execute(
                delete(MovementMetadataModel).where(
                    MovementMetadataModel.movement_id.in_(sale_ids)
                )
            )
            result = self.session.execute(
                delete(StockMovementModel).where(
                    StockMovementModel.movement_type == MovementType.SALE.value
                )
            )
            self.session.flush()
        removed = result.rowcount or 0

        logger.warning("sale_movements_purged", extra={"removed": removed})
        self.invalidator.invalidate()
        return removed

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def get_by_id(self, movement_id: int) -> StockMovement:
        movement = self.reader.get(movement_id)
        if movement is None:
            raise MovementNotFoundError(movement_id)
        return movement

    def get_by_sku(self, sku: str) -> list[StockMovement]:
        return self.reader.by_sku(sku)

    def get_by_type(self, movement_type: MovementType | str) -> list[StockMovement]:
        return self.reader.by_type(MovementType.parse(movement_type))

    def get_all(self) -> list[StockMovement]:
        return self.reader.all()

    def get_metadata(self, movement_id: int) -> AdjustmentMetadata | None:
        """Adjustment metadata of a movement, None when it has none."""
        self._get_model(movement_id)
        with self._store("get_metadata"):
            row = self.session.scalars(
                select(MovementMetadataModel).where(
                    MovementMetadataModel.movement_id == movement_id
                )
            ).first()
        return row.to_dto() if row is not None else None

    def calculate_expected_stock(self, sku: str) -> int:
        return expected_stock(self.reader.by_sku(sku))

    def _get_model(self, movement_id: int) -> StockMovementModel:
        with self._store("get_movement"):
            model = self.session.get(StockMovementModel, movement_id)
        if model is None:
            raise MovementNotFoundError(movement_id)
        return model
