"""
Module: stock_kernel.models.sync_record
Responsibility: Persisted high-water marks for incremental ingestion (one row
    per sync type, e.g. ``stock_movements``).
Architecture position: Kernel > Models.
"""

from datetime import datetime

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SyncRecordModel(Base):
    __tablename__ = "sync_records"

    __table_args__ = (UniqueConstraint("sync_type", name="uq_sync_record_type"),)

    sync_type: Mapped[str] = mapped_column(String(50), nullable=False)
    last_synced_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<SyncRecord {self.sync_type}: {self.last_synced_at.isoformat()}>"
