"""
Stock Kernel

The append-only stock movement ledger and its reconciliation machinery:
- Movement store with ORM-enforced immutability
- Idempotent order and purchase-order ingestion
- Pure per-SKU ledger fold (expected vs. actual stock)
- Self-correcting reconciliation
- Duplicate-movement cleanup
"""

__version__ = "0.1.0"
