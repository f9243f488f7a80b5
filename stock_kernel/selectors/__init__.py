"""Read-only query layer."""

from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.reconciliation_selector import ReconciliationSelector

__all__ = ["MovementSelector", "ReconciliationSelector"]
