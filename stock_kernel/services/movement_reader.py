"""
MovementReader -- the single read path over the stock ledger.

Responsibility:
    Every ledger read (store listings, summary folds, reconciliation expected
    stock) goes through this reader.  The "exclude on-hold orders" setting
    selects a read strategy on every call:

    PersistedMovementStrategy
        All movement types come from the stock_movements table.
    OrderDerivedSalesStrategy
        Non-sale movements come from the table; ``sale`` movements are
        recomputed from the order source, restricted to sale-eligible orders.
        Nothing is materialized; each read recomputes.

Architecture position:
    Kernel > Services.  Reads only; never flushes.

Invariants enforced:
    - An on-hold order never contributes a sale movement while the exclusion
      setting is active.
    - Order eligibility is decided by ``is_sale_eligible`` here and nowhere
      else; the order translator uses the same function.
    - Results are ordered newest first (movement_date DESC, persisted id DESC).

Failure modes:
    - UpstreamError(source="settings_store" | "order_source" | "store") when a
      dependency fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from stock_kernel.domain.collaborators import OrderSource, SettingsStore
from stock_kernel.domain.types import (
    ORDER_STATUS_ON_HOLD,
    SALE_ELIGIBLE_STATUSES,
    MovementType,
    Order,
    StockMovement,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import STORE, upstream_errors

logger = get_logger("services.movement_reader")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def is_sale_eligible(order: Order, exclude_on_hold: bool) -> bool:
    """True when ``order`` may produce sale movements."""
    if exclude_on_hold and order.status == ORDER_STATUS_ON_HOLD:
        return False
    return order.status in SALE_ELIGIBLE_STATUSES


def sale_notes(order: Order) -> str:
    return f"Order #{order.number}"


def sale_movements_for_order(order: Order) -> list[StockMovement]:
    """Unpersisted sale movements for each SKU-bearing line of ``order``."""
    movements = []
    for item in order.line_items:
        if not item.sku:
            continue
        movements.append(
            StockMovement(
                sku=item.sku,
                product_id=item.product_id,
                variation_id=item.variation_id,
                movement_date=order.sale_date,
                quantity=-abs(item.quantity),
                movement_type=MovementType.SALE,
                reference_id=order.number,
                notes=sale_notes(order),
            )
        )
    return movements


def newest_first(movements: list[StockMovement]) -> list[StockMovement]:
    return sorted(
        movements,
        key=lambda m: (m.movement_date or _OLDEST, m.id or 0),
        reverse=True,
    )


class MovementReadStrategy(ABC):
    """One way of producing the ledger's movements."""

    def __init__(self, selector: MovementSelector):
        self.selector = selector

    @abstractmethod
    def all(self) -> list[StockMovement]: ...

    @abstractmethod
    def by_sku(self, sku: str) -> list[StockMovement]: ...

    @abstractmethod
    def by_type(self, movement_type: MovementType) -> list[StockMovement]: ...


class PersistedMovementStrategy(MovementReadStrategy):
    def all(self) -> list[StockMovement]:
        return self.selector.all()

    def by_sku(self, sku: str) -> list[StockMovement]:
        return self.selector.by_sku(sku)

    def by_type(self, movement_type: MovementType) -> list[StockMovement]:
        return self.selector.by_type(movement_type)


class OrderDerivedSalesStrategy(MovementReadStrategy):
    """Sales recomputed from orders; every other type read from the table."""

    def __init__(self, selector: MovementSelector, order_source: OrderSource):
        super().__init__(selector)
        self.order_source = order_source

    def _derived_sales(self) -> list[StockMovement]:
        with upstream_errors("order_source", "get_all_orders"):
            orders = list(self.order_source.get_all_orders())
        sales = []
        for order in orders:
            if is_sale_eligible(order, exclude_on_hold=True):
                sales.extend(sale_movements_for_order(order))
        logger.debug(
            "sales_derived_from_orders",
            extra={"order_count": len(orders), "sale_count": len(sales)},
        )
        return sales

    def all(self) -> list[StockMovement]:
        stored = self.selector.excluding_type(MovementType.SALE)
        return newest_first(stored + self._derived_sales())

    def by_sku(self, sku: str) -> list[StockMovement]:
        stored = self.selector.by_sku_excluding_type(sku, MovementType.SALE)
        sales = [m for m in self._derived_sales() if m.sku == sku]
        return newest_first(stored + sales)

    def by_type(self, movement_type: MovementType) -> list[StockMovement]:
        if movement_type is MovementType.SALE:
            return newest_first(self._derived_sales())
        return self.selector.by_type(movement_type)


class MovementReader:
    """
    Ledger reads with the on-hold policy applied.

    The strategy is chosen from the settings store on every call.
    """

    def __init__(
        self,
        session: Session,
        settings_store: SettingsStore,
        order_source: OrderSource,
    ):
        self.session = session
        self.settings_store = settings_store
        self.order_source = order_source
        self.selector = MovementSelector(session)

    def exclude_on_hold(self) -> bool:
        with upstream_errors("settings_store", "get_exclude_on_hold_orders"):
            return bool(self.settings_store.get_exclude_on_hold_orders())

    def strategy(self) -> MovementReadStrategy:
        if self.exclude_on_hold():
            return OrderDerivedSalesStrategy(self.selector, self.order_source)
        return PersistedMovementStrategy(self.selector)

    def all(self) -> list[StockMovement]:
        strategy = self.strategy()
        with upstream_errors(STORE, "get_all_movements"):
            return strategy.all()

    def by_sku(self, sku: str) -> list[StockMovement]:
        strategy = self.strategy()
        with upstream_errors(STORE, "get_movements_by_sku"):
            return strategy.by_sku(sku)

    def by_type(self, movement_type: MovementType) -> list[StockMovement]:
        strategy = self.strategy()
        with upstream_errors(STORE, "get_movements_by_type"):
            return strategy.by_type(movement_type)

    def get(self, movement_id: int) -> StockMovement | None:
        """Persisted movement by id; derived sales have no id."""
        with upstream_errors(STORE, "get_movement"):
            return self.selector.get(movement_id)

    def find_persisted(
        self,
        reference_id: str,
        sku: str,
        movement_type: MovementType,
        quantity: int,
    ) -> StockMovement | None:
        """Persisted movement with this natural key, regardless of strategy."""
        with upstream_errors(STORE, "find_movement"):
            return self.selector.find_by_natural_key(
                reference_id, sku, movement_type, quantity,
            )
