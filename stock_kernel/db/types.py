"""
Module: stock_kernel.db.types
Responsibility: Column types and annotated aliases shared by every ledger model.
    Centralizes identifier width, timestamp normalization and the ledger
    primary-key type so that all tables agree on them.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are always timezone-aware UTC when they leave the database,
      regardless of backend.  SQLite stores naive values; UTCDateTime
      re-attaches UTC on load and converts aware values to UTC on bind.
    - Ledger ids are monotonic integers on every backend (SQLite only
      autoincrements an INTEGER PRIMARY KEY, never BIGINT).
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.types import TypeDecorator

# Monotonic ledger primary key
LedgerId = BigInteger().with_variant(Integer(), "sqlite")

# Stock-keeping unit identifier
Sku = Annotated[str, String(100)]

# External order / purchase-order number
ReferenceId = Annotated[str, String(100)]

# Short enum-ish codes (movement type, reason)
ShortCode = Annotated[str, String(20)]

# Free text
LongText = Annotated[str, Text]


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        - process_bind_param: aware -> converted to UTC; naive -> assumed UTC.
        - process_result_value: naive (SQLite) -> UTC attached; aware -> UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
