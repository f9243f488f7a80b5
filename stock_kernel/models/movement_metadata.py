"""
Module: stock_kernel.models.movement_metadata
Responsibility: Structured side-data for adjustment movements (manual sale
    of expired stock, loss amount, expiry date of the written-off batch).
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one metadata row per movement (unique movement_id).
    - Deleted together with its movement (ON DELETE CASCADE plus the store
      deleting it explicitly for backends without FK enforcement).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import LedgerId
from stock_kernel.domain.types import AdjustmentMetadata


class MovementMetadataModel(Base):
    __tablename__ = "stock_movement_metadata"

    __table_args__ = (
        UniqueConstraint("movement_id", name="uq_movement_metadata_movement"),
    )

    movement_id: Mapped[int] = mapped_column(
        LedgerId,
        ForeignKey("stock_movements.id", ondelete="CASCADE"),
        nullable=False,
    )
    manual_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    loss_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> AdjustmentMetadata:
        return AdjustmentMetadata(
            manual_sale=self.manual_sale,
            loss_amount=self.loss_amount,
            expiry_date=self.expiry_date,
        )

    @classmethod
    def from_dto(cls, movement_id: int, dto: AdjustmentMetadata) -> MovementMetadataModel:
        return cls(
            movement_id=movement_id,
            manual_sale=dto.manual_sale,
            loss_amount=dto.loss_amount,
            expiry_date=dto.expiry_date,
        )
