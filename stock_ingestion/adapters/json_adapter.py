"""
JSON source adapters for the external order system and product catalog.

Handles JSON array (file is [{...}, {...}, ...]) and JSON Lines (one object
per line).  ``json_path`` selects a nested array (e.g. "data.orders").  Keys
are matched case-insensitively.  Timestamps are ISO 8601; naive values are
taken as UTC.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator

from stock_kernel.db.types import ensure_utc
from stock_kernel.domain.types import (
    Order,
    OrderLineItem,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Variation,
    VariationAttribute,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("ingestion.json_adapter")


def _get_nested(data: Any, path: str) -> Any:
    """Follow dot-separated path into dict/list. Returns None if key missing."""
    if not path.strip():
        return data
    for key in path.split("."):
        key = key.strip()
        if not key:
            continue
        if isinstance(data, list):
            try:
                data = data[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return None
    return data


def _normalize_row_keys(item: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``item`` with string keys stripped and lowercased."""
    return {str(k).strip().lower(): v for k, v in item.items() if isinstance(k, str)}


def read_records(
    source_path: Path,
    fmt: str | None = None,
    json_path: str | None = None,
    encoding: str = "utf-8",
) -> Iterator[dict[str, Any]]:
    """
    One normalized dict per record.

    ``fmt`` is "array" or "jsonl"; by default ``.jsonl`` files are JSON Lines
    and everything else is an array.  Non-object records are skipped.
    """
    if fmt is None:
        fmt = "jsonl" if source_path.suffix.lower() == ".jsonl" else "array"

    if fmt == "jsonl":
        with source_path.open("r", encoding=encoding) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                item = json.loads(line)
                if isinstance(item, dict):
                    yield _normalize_row_keys(item)
        return

    with source_path.open("r", encoding=encoding) as f:
        data = json.load(f)
    root = _get_nested(data, json_path) if json_path else data
    if not isinstance(root, list):
        raise ValueError(f"{source_path}: expected a JSON array of records")
    for item in root:
        if isinstance(item, dict):
            yield _normalize_row_keys(item)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"Cannot parse timestamp from {value!r}")


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot parse date from {value!r}")


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_order(row: dict[str, Any]) -> Order:
    """Order from a normalized record; ``number`` falls back to ``id``."""
    number = row.get("number", row.get("id"))
    if number is None:
        raise ValueError(f"Order record without number or id: {row!r}")
    items = tuple(
        OrderLineItem(
            sku=_optional_str(item.get("sku")),
            quantity=int(item.get("quantity") or 0),
            product_id=_optional_int(item.get("product_id")),
            variation_id=_optional_int(item.get("variation_id")),
        )
        for item in (_normalize_row_keys(i) for i in row.get("line_items") or ())
    )
    return Order(
        number=str(number),
        status=str(row.get("status", "")).strip().lower(),
        date_created=parse_timestamp(row.get("date_created")),
        date_completed=parse_timestamp(row.get("date_completed")),
        line_items=items,
    )


def parse_purchase_order(row: dict[str, Any]) -> PurchaseOrder:
    reference = row.get("reference_number", row.get("id"))
    if reference is None:
        raise ValueError(f"Purchase order record without reference_number: {row!r}")
    items = tuple(
        PurchaseOrderItem(
            sku=_optional_str(item.get("sku")),
            quantity_received=_optional_int(item.get("quantity_received")),
            batch_number=_optional_str(item.get("batch_number")),
            expiry_date=parse_date(item.get("expiry_date")),
        )
        for item in (_normalize_row_keys(i) for i in row.get("items") or ())
    )
    return PurchaseOrder(
        reference_number=str(reference),
        status=str(row.get("status", "")).strip().lower(),
        date=parse_timestamp(row.get("date")),
        items=items,
    )


class JsonOrderSource:
    """OrderSource over a JSON/JSON Lines file of orders; re-read on every call."""

    def __init__(self, path: Path | str, json_path: str | None = None):
        self.path = Path(path)
        self.json_path = json_path

    def get_all_orders(self) -> list[Order]:
        orders = [parse_order(row) for row in read_records(self.path, json_path=self.json_path)]
        logger.debug("orders_loaded", extra={"path": str(self.path), "count": len(orders)})
        return orders


class JsonPurchaseOrderSource:
    def __init__(self, path: Path | str, json_path: str | None = None):
        self.path = Path(path)
        self.json_path = json_path

    def get_all_purchase_orders(self) -> list[PurchaseOrder]:
        return [
            parse_purchase_order(row)
            for row in read_records(self.path, json_path=self.json_path)
        ]


class JsonCatalogSource:
    """
    InventorySource over a JSON catalog of products with nested variations.

    Record shape::

        {"id": 7, "sku": "TEA", "name": "Green Tea", "stock_quantity": 12,
         "variations": [{"id": 71, "sku": "TEA-250", "stock_quantity": 4,
                         "attributes": [{"name": "Size", "option": "250g"}]}]}

    The file is read once, at construction.
    """

    def __init__(self, path: Path | str, json_path: str | None = None):
        self.path = Path(path)
        self._products_by_id: dict[int, Product] = {}
        self._products_by_sku: dict[str, Product] = {}
        self._variations_by_sku: dict[str, Variation] = {}

        for row in read_records(self.path, json_path=json_path):
            product = Product(
                id=int(row["id"]),
                sku=_optional_str(row.get("sku")),
                name=_optional_str(row.get("name")),
                stock_quantity=_optional_int(row.get("stock_quantity")),
            )
            self._products_by_id[product.id] = product
            if product.sku:
                self._products_by_sku[product.sku] = product
            for raw in row.get("variations") or ():
                var = _normalize_row_keys(raw)
                variation = Variation(
                    id=int(var["id"]),
                    parent_id=int(var.get("parent_id", product.id)),
                    sku=_optional_str(var.get("sku")),
                    attributes=tuple(
                        VariationAttribute(
                            name=str(a.get("name", "")),
                            option=str(a.get("option", "")),
                        )
                        for a in (_normalize_row_keys(x) for x in var.get("attributes") or ())
                    ),
                    stock_quantity=_optional_int(var.get("stock_quantity")),
                )
                if variation.sku:
                    self._variations_by_sku[variation.sku] = variation

        logger.info(
            "catalog_loaded",
            extra={
                "path": str(self.path),
                "products": len(self._products_by_id),
                "variations": len(self._variations_by_sku),
            },
        )

    def get_actual_stock_by_sku(self, sku: str) -> int:
        """Variation stock first, then product stock, 0 when neither exists."""
        variation = self._variations_by_sku.get(sku)
        if variation is not None:
            return variation.stock_quantity or 0
        product = self._products_by_sku.get(sku)
        if product is not None:
            return product.stock_quantity or 0
        return 0

    def get_product_by_sku(self, sku: str) -> Product | None:
        return self._products_by_sku.get(sku)

    def get_variation_by_sku(self, sku: str) -> Variation | None:
        return self._variations_by_sku.get(sku)

    def get_product_name_by_id(self, product_id: int) -> str | None:
        product = self._products_by_id.get(product_id)
        return product.name if product is not None else None
