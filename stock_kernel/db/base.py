"""
Module: stock_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the integer ledger primary key convention and the type annotation map for
    consistent column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Monotonic integer primary keys: "lowest id" means "inserted first", which
      the duplicate cleaner relies on to keep the oldest row of a group.
    - datetime maps to UTCDateTime -- always timezone-aware UTC.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from stock_kernel.db.types import (
    LedgerId,
    LongText,
    ReferenceId,
    ShortCode,
    Sku,
    UTCDateTime,
)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer assigned by the store on INSERT.
        - datetime maps to UTCDateTime.
        - Decimal maps to Numeric(18, 2) (loss amounts).
        - The annotated aliases in db/types.py map to their sized columns.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        Decimal: Numeric(18, 2),
        Sku: String(100),
        ReferenceId: String(100),
        ShortCode: String(20),
        LongText: Text(),
    }

    id: Mapped[int] = mapped_column(
        LedgerId,
        primary_key=True,
        autoincrement=True,
    )
