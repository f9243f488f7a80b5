"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over persisted stock movements.
Architecture position: Kernel > Selectors.

Ordering:
    Listing queries return newest first (movement_date DESC, id DESC), except
    ``by_type_oldest_first`` which the duplicate cleaner walks in insertion
    order.
"""

from __future__ import annotations

from sqlalchemy import select

from stock_kernel.domain.types import MovementType, StockMovement
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.selectors.base import BaseSelector

_NEWEST_FIRST = (
    StockMovementModel.movement_date.desc(),
    StockMovementModel.id.desc(),
)


class MovementSelector(BaseSelector[StockMovementModel]):
    """Queries over the stock_movements table."""

    def get(self, movement_id: int) -> StockMovement | None:
        model = self.session.get(StockMovementModel, movement_id)
        return model.to_dto() if model is not None else None

    def all(self) -> list[StockMovement]:
        stmt = select(StockMovementModel).order_by(*_NEWEST_FIRST)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def by_sku(self, sku: str) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.sku == sku)
            .order_by(*_NEWEST_FIRST)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def by_type(self, movement_type: MovementType) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.movement_type == movement_type.value)
            .order_by(*_NEWEST_FIRST)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def excluding_type(self, movement_type: MovementType) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.movement_type != movement_type.value)
            .order_by(*_NEWEST_FIRST)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def by_sku_excluding_type(
        self, sku: str, movement_type: MovementType,
    ) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(
                StockMovementModel.sku == sku,
                StockMovementModel.movement_type != movement_type.value,
            )
            .order_by(*_NEWEST_FIRST)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def by_type_oldest_first(self, movement_type: MovementType) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.movement_type == movement_type.value)
            .order_by(StockMovementModel.id.asc())
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def find_by_natural_key(
        self,
        reference_id: str,
        sku: str,
        movement_type: MovementType,
        quantity: int,
    ) -> StockMovement | None:
        """Oldest persisted movement with this (reference, sku, type, quantity), if any."""
        stmt = (
            select(StockMovementModel)
            .where(
                StockMovementModel.reference_id == reference_id,
                StockMovementModel.sku == sku,
                StockMovementModel.movement_type == movement_type.value,
                StockMovementModel.quantity == quantity,
            )
            .order_by(StockMovementModel.id.asc())
            .limit(1)
        )
        model = self.session.scalars(stmt).first()
        return model.to_dto() if model is not None else None

    def distinct_skus(self) -> list[str]:
        """Every SKU with at least one persisted movement, sorted."""
        stmt = (
            select(StockMovementModel.sku)
            .distinct()
            .order_by(StockMovementModel.sku)
        )
        return list(self.session.scalars(stmt))
