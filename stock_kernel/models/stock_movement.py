"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-mostly stock ledger.  Every
    quantity change to a SKU is one row; expected stock is the sum of a SKU's
    rows.
Architecture position: Kernel > Models.  May import from db/ and domain/types
    only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - Ledger fields (sku, product_id, variation_id, movement_date, quantity,
      movement_type, reference_id, created_at) are frozen after INSERT; see
      db/immutability.py.  Only notes, reason and batch_number may change.
    - quantity is signed: sales negative, purchases positive, adjustments
      either sign.

Failure modes:
    - ImmutabilityViolationError on flush of a changed ledger field.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import LongText, ReferenceId, ShortCode, Sku
from stock_kernel.domain.types import MovementReason, MovementType, StockMovement

# Fields that may change after INSERT
MUTABLE_MOVEMENT_FIELDS = frozenset({"notes", "reason", "batch_number"})


class StockMovementModel(Base):
    """One signed quantity change to a SKU's stock."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_sku_date", "sku", "movement_date"),
        Index("idx_movement_type", "movement_type"),
        Index("idx_movement_reference", "reference_id", "sku"),
    )

    sku: Mapped[Sku] = mapped_column(nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    variation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    movement_date: Mapped[datetime] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    movement_type: Mapped[ShortCode] = mapped_column(nullable=False)
    reason: Mapped[ShortCode | None] = mapped_column(nullable=True)

    # Order number / purchase-order reference that produced this row
    reference_id: Mapped[ReferenceId | None] = mapped_column(nullable=True)

    batch_number: Mapped[ReferenceId | None] = mapped_column(nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[LongText | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.id} {self.sku} "
            f"{self.movement_type} {self.quantity:+d}>"
        )

    def to_dto(self) -> StockMovement:
        """Convert ORM model to frozen domain DTO."""
        return StockMovement(
            id=self.id,
            sku=self.sku,
            product_id=self.product_id,
            variation_id=self.variation_id,
            movement_date=self.movement_date,
            quantity=self.quantity,
            movement_type=MovementType(self.movement_type),
            reason=MovementReason(self.reason) if self.reason else None,
            reference_id=self.reference_id,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            notes=self.notes,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: StockMovement, created_at: datetime) -> StockMovementModel:
        """Create ORM model from domain DTO.  ``id`` is left to the store."""
        return cls(
            sku=dto.sku,
            product_id=dto.product_id,
            variation_id=dto.variation_id,
            movement_date=dto.movement_date or created_at,
            quantity=dto.quantity,
            movement_type=dto.movement_type.value,
            reason=dto.reason.value if dto.reason else None,
            reference_id=dto.reference_id,
            batch_number=dto.batch_number,
            expiry_date=dto.expiry_date,
            notes=dto.notes,
            created_at=created_at,
        )
