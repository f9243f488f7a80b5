"""ORM models.  Importing this package registers every table on Base.metadata."""

from stock_kernel.models.app_setting import AppSettingModel
from stock_kernel.models.movement_metadata import MovementMetadataModel
from stock_kernel.models.stock_movement import (
    MUTABLE_MOVEMENT_FIELDS,
    StockMovementModel,
)
from stock_kernel.models.stock_reconciliation import StockReconciliationModel
from stock_kernel.models.sync_record import SyncRecordModel

__all__ = [
    "AppSettingModel",
    "MUTABLE_MOVEMENT_FIELDS",
    "MovementMetadataModel",
    "StockMovementModel",
    "StockReconciliationModel",
    "SyncRecordModel",
]
