"""
stock_services -- orchestration above the stock kernel.

Summary generation, the summary cache and the ``StockReconciliationService``
facade that owns transaction boundaries.
"""

from stock_services.reconciliation_service import StockReconciliationService
from stock_services.summary_cache import SummaryCache
from stock_services.summary_generator import SummaryGenerator

__all__ = ["StockReconciliationService", "SummaryCache", "SummaryGenerator"]
