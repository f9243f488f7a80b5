"""
Module: stock_kernel.selectors.reconciliation_selector
Responsibility: Read-only queries over stock reconciliation records.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from sqlalchemy import select

from stock_kernel.domain.types import StockReconciliation
from stock_kernel.models.stock_reconciliation import StockReconciliationModel
from stock_kernel.selectors.base import BaseSelector


class ReconciliationSelector(BaseSelector[StockReconciliationModel]):
    def get(self, reconciliation_id: int) -> StockReconciliation | None:
        model = self.session.get(StockReconciliationModel, reconciliation_id)
        return model.to_dto() if model is not None else None

    def by_sku(self, sku: str) -> list[StockReconciliation]:
        """All reconciliations for ``sku``, newest first."""
        stmt = (
            select(StockReconciliationModel)
            .where(StockReconciliationModel.sku == sku)
            .order_by(
                StockReconciliationModel.reconciliation_date.desc(),
                StockReconciliationModel.id.desc(),
            )
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]

    def latest(self, sku: str) -> StockReconciliation | None:
        stmt = (
            select(StockReconciliationModel)
            .where(StockReconciliationModel.sku == sku)
            .order_by(
                StockReconciliationModel.reconciliation_date.desc(),
                StockReconciliationModel.id.desc(),
            )
            .limit(1)
        )
        model = self.session.scalars(stmt).first()
        return model.to_dto() if model is not None else None
