"""Write-side kernel services.  All are flush-only; callers own commits."""

from stock_kernel.services.duplicate_cleaner import DuplicateCleaner
from stock_kernel.services.movement_reader import MovementReader, is_sale_eligible
from stock_kernel.services.movement_store import MovementStore
from stock_kernel.services.order_translator import DEFAULT_SYNC_KEY, OrderTranslator
from stock_kernel.services.reconciliation_executor import ReconciliationExecutor
from stock_kernel.services.settings_store import SqlSettingsStore
from stock_kernel.services.sync_watermark_store import SqlSyncWatermarkStore

__all__ = [
    "DEFAULT_SYNC_KEY",
    "DuplicateCleaner",
    "MovementReader",
    "MovementStore",
    "OrderTranslator",
    "ReconciliationExecutor",
    "SqlSettingsStore",
    "SqlSyncWatermarkStore",
    "is_sale_eligible",
]
