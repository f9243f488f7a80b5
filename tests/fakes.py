"""
In-memory collaborators and builders shared by the test suite.

The ledger itself always runs against a real database; only the systems the
engine does not own (catalog, order system, settings, watermark) are faked.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from stock_kernel.domain.types import (
    Order,
    OrderLineItem,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Variation,
    VariationAttribute,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeInventorySource:
    """Catalog with settable stock levels."""

    def __init__(self):
        self.products: dict[str, Product] = {}
        self.variations: dict[str, Variation] = {}
        self.stock: dict[str, int] = {}
        self.calls = 0

    def add_product(self, product_id: int, sku: str, name: str | None, stock: int = 0) -> Product:
        product = Product(id=product_id, sku=sku, name=name, stock_quantity=stock)
        self.products[sku] = product
        self.stock[sku] = stock
        return product

    def add_variation(
        self,
        variation_id: int,
        parent_id: int,
        sku: str,
        options: tuple[str, ...] = (),
        stock: int = 0,
    ) -> Variation:
        variation = Variation(
            id=variation_id,
            parent_id=parent_id,
            sku=sku,
            attributes=tuple(
                VariationAttribute(name=f"attr{i}", option=opt) for i, opt in enumerate(options)
            ),
            stock_quantity=stock,
        )
        self.variations[sku] = variation
        self.stock[sku] = stock
        return variation

    def get_actual_stock_by_sku(self, sku: str) -> int:
        self.calls += 1
        return self.stock.get(sku, 0)

    def get_product_by_sku(self, sku: str) -> Product | None:
        return self.products.get(sku)

    def get_variation_by_sku(self, sku: str) -> Variation | None:
        return self.variations.get(sku)

    def get_product_name_by_id(self, product_id: int) -> str | None:
        for product in self.products.values():
            if product.id == product_id:
                return product.name
        return None


class FailingInventorySource:
    """Every lookup raises, like a catalog API that is down."""

    def get_actual_stock_by_sku(self, sku: str) -> int:
        raise ConnectionError("catalog unavailable")

    def get_product_by_sku(self, sku: str) -> Product | None:
        raise ConnectionError("catalog unavailable")

    def get_variation_by_sku(self, sku: str) -> Variation | None:
        raise ConnectionError("catalog unavailable")

    def get_product_name_by_id(self, product_id: int) -> str | None:
        raise ConnectionError("catalog unavailable")


class FakeOrderSource:
    def __init__(self, orders: list[Order] | None = None):
        self.orders: list[Order] = list(orders or [])
        self.fail = False
        self.calls = 0

    def get_all_orders(self) -> list[Order]:
        self.calls += 1
        if self.fail:
            raise TimeoutError("order API timed out")
        return list(self.orders)


class InMemorySettingsStore:
    def __init__(self, exclude_on_hold: bool = False):
        self.exclude_on_hold = exclude_on_hold

    def get_exclude_on_hold_orders(self) -> bool:
        return self.exclude_on_hold

    def set_exclude_on_hold_orders(self, exclude: bool) -> None:
        self.exclude_on_hold = exclude


class InMemoryWatermarkStore:
    def __init__(self):
        self.marks: dict[str, datetime] = {}

    def get_last_sync(self, key: str) -> datetime | None:
        return self.marks.get(key)

    def set_last_sync(self, key: str, timestamp: datetime) -> None:
        self.marks[key] = timestamp


class CountingInvalidator:
    def __init__(self):
        self.count = 0
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self.count += 1


def make_order(
    number: str | int,
    items: list[tuple[str | None, int]],
    status: str = "completed",
    created: datetime | None = None,
    completed: datetime | None = None,
) -> Order:
    """Order with one line per (sku, quantity) pair."""
    return Order(
        number=str(number),
        status=status,
        date_created=created or BASE_TIME,
        date_completed=completed,
        line_items=tuple(OrderLineItem(sku=sku, quantity=qty) for sku, qty in items),
    )


def make_purchase_order(
    reference: str,
    items: list[tuple[str | None, int | None]],
    status: str = "received",
    date: datetime | None = None,
    batch_number: str | None = None,
) -> PurchaseOrder:
    return PurchaseOrder(
        reference_number=reference,
        status=status,
        date=date or BASE_TIME - timedelta(days=1),
        items=tuple(
            PurchaseOrderItem(sku=sku, quantity_received=qty, batch_number=batch_number)
            for sku, qty in items
        ),
    )
