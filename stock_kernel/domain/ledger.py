"""
Ledger fold -- pure per-SKU aggregation.  ZERO I/O.

Responsibility:
    Turns a SKU's movements into per-type totals and an expected stock figure,
    and assembles the display summary.  Everything here is a pure function of
    its inputs so the fold can be property-tested in isolation.

Invariants enforced:
    - expected_stock == sum(m.quantity for m in movements), always.  The
      per-type totals are a partition of that sum.
    - total_sales in a summary is a display magnitude (abs of the signed sales
      total); the signed value is what feeds expected_stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, assert_never

from stock_kernel.domain.types import (
    MovementType,
    Product,
    StockMovement,
    StockReconciliationSummary,
    Variation,
)

UNKNOWN_PRODUCT = "Unknown Product"
ERROR_PREFIX = "Error"


@dataclass(frozen=True)
class LedgerTotals:
    """Signed per-type sums for one SKU."""

    initial_stock: int = 0
    signed_sales: int = 0
    total_adjustments: int = 0
    total_purchases: int = 0
    movement_count: int = 0

    @property
    def expected_stock(self) -> int:
        return (
            self.initial_stock
            + self.signed_sales
            + self.total_adjustments
            + self.total_purchases
        )

    @property
    def display_sales(self) -> int:
        return abs(self.signed_sales)


def fold_movements(movements: Iterable[StockMovement]) -> LedgerTotals:
    """Sum movement quantities by type."""
    initial = sales = adjustments = purchases = count = 0
    for movement in movements:
        count += 1
        match movement.movement_type:
            case MovementType.INITIAL:
                initial += movement.quantity
            case MovementType.SALE:
                sales += movement.quantity
            case MovementType.ADJUSTMENT:
                adjustments += movement.quantity
            case MovementType.PURCHASE:
                purchases += movement.quantity
            case _:
                assert_never(movement.movement_type)
    return LedgerTotals(
        initial_stock=initial,
        signed_sales=sales,
        total_adjustments=adjustments,
        total_purchases=purchases,
        movement_count=count,
    )


def expected_stock(movements: Iterable[StockMovement]) -> int:
    return fold_movements(movements).expected_stock


def variation_display_name(variation: Variation, parent_name: str | None, sku: str) -> str:
    """``Parent - opt1, opt2``; ``Parent (Variation)`` when there are no options."""
    if not parent_name:
        return f"Variation of {UNKNOWN_PRODUCT} ({sku})"
    options = ", ".join(a.option for a in variation.attributes if a.option)
    if options:
        return f"{parent_name} - {options}"
    return f"{parent_name} (Variation)"


def product_display_name(product: Product | None, sku: str) -> str:
    if product is None:
        return f"{UNKNOWN_PRODUCT} ({sku})"
    return product.name or "Unnamed Product"


def build_summary(
    sku: str,
    totals: LedgerTotals,
    actual_stock: int,
    product_name: str,
    product_id: int | None = None,
    variation_id: int | None = None,
    last_reconciled: datetime | None = None,
) -> StockReconciliationSummary:
    expected = totals.expected_stock
    return StockReconciliationSummary(
        sku=sku,
        product_id=product_id,
        variation_id=variation_id,
        product_name=product_name,
        initial_stock=totals.initial_stock,
        total_sales=totals.display_sales,
        total_adjustments=totals.total_adjustments,
        total_purchases=totals.total_purchases,
        expected_stock=expected,
        actual_stock=actual_stock,
        discrepancy=actual_stock - expected,
        last_reconciled=last_reconciled,
    )


def error_summary(sku: str, error: str) -> StockReconciliationSummary:
    """Zero-valued placeholder for a SKU whose summary could not be computed."""
    return StockReconciliationSummary(
        sku=sku,
        product_name=f"{ERROR_PREFIX}: {sku}",
        initial_stock=0,
        total_sales=0,
        total_adjustments=0,
        total_purchases=0,
        expected_stock=0,
        actual_stock=0,
        discrepancy=0,
        error=error,
    )
