"""Source adapters."""

from stock_ingestion.adapters.json_adapter import (
    JsonCatalogSource,
    JsonOrderSource,
    JsonPurchaseOrderSource,
)

__all__ = ["JsonCatalogSource", "JsonOrderSource", "JsonPurchaseOrderSource"]
