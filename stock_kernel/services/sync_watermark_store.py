"""
SqlSyncWatermarkStore -- sync_records-backed implementation of
SyncWatermarkStore.  One row per sync type; flush-only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from stock_kernel.db.types import ensure_utc
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sync_record import SyncRecordModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.sync_watermark_store")


class SqlSyncWatermarkStore(BaseService[SyncRecordModel]):
    def _row(self, key: str) -> SyncRecordModel | None:
        return self.session.scalars(
            select(SyncRecordModel).where(SyncRecordModel.sync_type == key)
        ).first()

    def get_last_sync(self, key: str) -> datetime | None:
        with self._store("get_last_sync"):
            row = self._row(key)
        return row.last_synced_at if row is not None else None

    def set_last_sync(self, key: str, timestamp: datetime) -> None:
        timestamp = ensure_utc(timestamp)
        with self._store("set_last_sync"):
            row = self._row(key)
            if row is None:
                self.session.add(SyncRecordModel(sync_type=key, last_synced_at=timestamp))
            else:
                row.last_synced_at = timestamp
            self.session.flush()
        logger.info(
            "sync_watermark_advanced",
            extra={"sync_type": key, "last_synced_at": timestamp},
        )
