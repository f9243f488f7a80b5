"""
Collaborator interfaces consumed by the kernel.

The inventory/product catalog, the order system, the settings store and the
sync watermark store are owned by other systems; the kernel only depends on
these protocols.  SQL-backed settings and watermark stores live in
``stock_kernel.services``; JSON-file sources live in ``stock_ingestion``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable

from stock_kernel.domain.types import Order, Product, Variation


@runtime_checkable
class InventorySource(Protocol):
    """Product catalog with live stock levels."""

    def get_actual_stock_by_sku(self, sku: str) -> int:
        """Variation stock first, then product stock, 0 when neither exists."""
        ...

    def get_product_by_sku(self, sku: str) -> Product | None: ...

    def get_variation_by_sku(self, sku: str) -> Variation | None: ...

    def get_product_name_by_id(self, product_id: int) -> str | None: ...


@runtime_checkable
class OrderSource(Protocol):
    def get_all_orders(self) -> Sequence[Order]: ...


@runtime_checkable
class SettingsStore(Protocol):
    def get_exclude_on_hold_orders(self) -> bool: ...

    def set_exclude_on_hold_orders(self, exclude: bool) -> None: ...


@runtime_checkable
class SyncWatermarkStore(Protocol):
    def get_last_sync(self, key: str) -> datetime | None: ...

    def set_last_sync(self, key: str, timestamp: datetime) -> None: ...


@runtime_checkable
class CacheInvalidator(Protocol):
    """Anything holding derived ledger state that must be dropped on writes."""

    def invalidate(self) -> None: ...


class NullInvalidator:
    """Invalidator for contexts with no cache attached."""

    def invalidate(self) -> None:
        return None


class NullOrderSource:
    """Order source with no orders."""

    def get_all_orders(self) -> list[Order]:
        return []


class NullInventorySource:
    """Inventory source that knows no SKU; actual stock is always 0."""

    def get_actual_stock_by_sku(self, sku: str) -> int:
        return 0

    def get_product_by_sku(self, sku: str) -> Product | None:
        return None

    def get_variation_by_sku(self, sku: str) -> Variation | None:
        return None

    def get_product_name_by_id(self, product_id: int) -> str | None:
        return None
