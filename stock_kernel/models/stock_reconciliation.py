"""
Module: stock_kernel.models.stock_reconciliation
Responsibility: ORM persistence for manual stock counts.  Each row records
    the expected quantity at count time, what was physically counted and the
    difference.
Architecture position: Kernel > Models.  May import from db/ and domain/types
    only.

Invariants enforced:
    - discrepancy == actual_quantity - expected_quantity at creation.
    - Rows are never deleted; only notes may change after INSERT (see
      db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import LongText, Sku
from stock_kernel.domain.types import StockReconciliation


class StockReconciliationModel(Base):
    """Audit record of one manual stock count."""

    __tablename__ = "stock_reconciliations"

    __table_args__ = (
        Index("idx_reconciliation_sku_date", "sku", "reconciliation_date"),
    )

    sku: Mapped[Sku] = mapped_column(nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    variation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    reconciliation_date: Mapped[datetime] = mapped_column(nullable=False)
    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    discrepancy: Mapped[int] = mapped_column(Integer, nullable=False)

    notes: Mapped[LongText | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockReconciliation #{self.id} {self.sku} "
            f"expected={self.expected_quantity} actual={self.actual_quantity}>"
        )

    def to_dto(self) -> StockReconciliation:
        """Convert ORM model to frozen domain DTO."""
        return StockReconciliation(
            id=self.id,
            sku=self.sku,
            product_id=self.product_id,
            variation_id=self.variation_id,
            reconciliation_date=self.reconciliation_date,
            expected_quantity=self.expected_quantity,
            actual_quantity=self.actual_quantity,
            discrepancy=self.discrepancy,
            notes=self.notes,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(
        cls, dto: StockReconciliation, created_at: datetime,
    ) -> StockReconciliationModel:
        return cls(
            sku=dto.sku,
            product_id=dto.product_id,
            variation_id=dto.variation_id,
            reconciliation_date=dto.reconciliation_date,
            expected_quantity=dto.expected_quantity,
            actual_quantity=dto.actual_quantity,
            discrepancy=dto.discrepancy,
            notes=dto.notes,
            created_at=created_at,
        )
