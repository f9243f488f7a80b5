"""
StockConfig schema.

The runtime configuration of the reconciliation engine: where the ledger
lives, how the summary batch and cache behave, and the defaults for the
collaborator-backed settings.  YAML files are parsed into this frozen
dataclass by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class StockConfig:
    """Validated, immutable engine configuration."""

    database_url: str = "sqlite:///stock_reconciliation.db"

    # Summary cache / generator
    summary_cache_ttl_seconds: float = 300
    summary_batch_size: int = 5
    summary_item_timeout_seconds: float = 30

    # Backing store
    store_timeout_seconds: float = 30

    # Used when the settings store has never been written
    exclude_on_hold_orders_default: bool = True

    # Watermark key for incremental order ingestion
    sync_key: str = "stock_movements"

    log_level: str = "INFO"

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}
