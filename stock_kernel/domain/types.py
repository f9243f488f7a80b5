"""
Ledger value types -- pure frozen dataclasses and closed enums.  ZERO I/O.

Invariants enforced:
    - MovementType and MovementReason are closed sets; parsing an unknown
      value raises ValidationError instead of silently storing a string.
    - All DTOs are frozen; ORM rows are converted with to_dto()/from_dto()
      at the model boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from stock_kernel.exceptions import ValidationError


class MovementType(str, Enum):
    """Kind of ledger entry."""

    INITIAL = "initial"  # Opening balance
    SALE = "sale"  # Negative; derived from orders
    ADJUSTMENT = "adjustment"  # Signed; manual or reconciliation correction
    PURCHASE = "purchase"  # Positive; derived from purchase orders

    @classmethod
    def parse(cls, value: MovementType | str) -> MovementType:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "movement_type",
                f"must be one of {[m.value for m in cls]}",
                value,
            ) from None


class MovementReason(str, Enum):
    """Why an adjustment was made. Only meaningful for ADJUSTMENT movements."""

    EXPIRY = "expiry"
    DAMAGE = "damage"
    THEFT = "theft"
    CORRECTION = "correction"
    OTHER = "other"

    @classmethod
    def parse(cls, value: MovementReason | str) -> MovementReason:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "reason",
                f"must be one of {[r.value for r in cls]}",
                value,
            ) from None


# Order statuses as reported by the external order source
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_ON_HOLD = "on-hold"

SALE_ELIGIBLE_STATUSES = frozenset({ORDER_STATUS_COMPLETED, ORDER_STATUS_PROCESSING})

# Purchase-order statuses that put stock on the shelf
PURCHASE_RECEIVED_STATUSES = frozenset({"received", "partially_received"})


# =============================================================================
# Ledger records
# =============================================================================


@dataclass(frozen=True)
class StockMovement:
    """
    One signed quantity change to a SKU's stock.

    ``id`` and ``created_at`` are assigned by the store.  Sale movements that
    are recomputed from orders (on-hold exclusion active) have ``id=None``.
    """

    sku: str
    quantity: int
    movement_type: MovementType
    movement_date: datetime | None = None
    product_id: int | None = None
    variation_id: int | None = None
    reason: MovementReason | None = None
    reference_id: str | None = None
    batch_number: str | None = None
    notes: str | None = None
    expiry_date: date | None = None
    id: int | None = None
    created_at: datetime | None = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class AdjustmentMetadata:
    """Structured side-data for adjustment movements."""

    manual_sale: bool = False  # Expired stock sold off instead of disposed
    loss_amount: Decimal | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class StockReconciliation:
    """Point-in-time audit record of a manual stock count."""

    sku: str
    reconciliation_date: datetime
    expected_quantity: int
    actual_quantity: int
    discrepancy: int
    product_id: int | None = None
    variation_id: int | None = None
    notes: str | None = None
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class StockReconciliationSummary:
    """
    Derived, never persisted, expected-vs-actual view of one SKU.

    ``total_sales`` is a display magnitude; ``expected_stock`` uses the signed
    sales total.  ``error`` is set when the summary is a degraded placeholder.
    """

    sku: str
    product_name: str
    initial_stock: int
    total_sales: int
    total_adjustments: int
    total_purchases: int
    expected_stock: int
    actual_stock: int
    discrepancy: int
    product_id: int | None = None
    variation_id: int | None = None
    last_reconciled: datetime | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


# =============================================================================
# External source records
# =============================================================================


@dataclass(frozen=True)
class OrderLineItem:
    sku: str | None
    quantity: int
    product_id: int | None = None
    variation_id: int | None = None


@dataclass(frozen=True)
class Order:
    number: str
    status: str
    date_created: datetime | None
    line_items: tuple[OrderLineItem, ...] = ()
    date_completed: datetime | None = None

    @property
    def sale_date(self) -> datetime | None:
        """Completion date, falling back to creation date."""
        return self.date_completed or self.date_created


@dataclass(frozen=True)
class PurchaseOrderItem:
    sku: str | None
    quantity_received: int | None
    batch_number: str | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class PurchaseOrder:
    reference_number: str
    status: str
    date: datetime
    items: tuple[PurchaseOrderItem, ...] = ()


@dataclass(frozen=True)
class Product:
    id: int
    sku: str | None
    name: str | None
    stock_quantity: int | None = None


@dataclass(frozen=True)
class VariationAttribute:
    name: str
    option: str


@dataclass(frozen=True)
class Variation:
    id: int
    parent_id: int
    sku: str | None
    attributes: tuple[VariationAttribute, ...] = ()
    stock_quantity: int | None = None
