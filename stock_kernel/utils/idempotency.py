"""
Natural-key utilities for idempotent ledger writes.

Sale and purchase movements have no external id of their own; the same order
line always maps to the same ``(reference_id, sku, quantity)`` triple, which
is what ingestion checks before inserting and what the duplicate cleaner
groups by.  Keys are compared as tuples, never as joined strings, since
references and SKUs may contain any separator.
"""

from stock_kernel.domain.types import StockMovement

NaturalKey = tuple[str, str, int]


def movement_natural_key(movement: StockMovement) -> NaturalKey | None:
    """
    Natural key of a stored movement, or None when it cannot be keyed.

    Rows without a reference_id or sku are never considered duplicates.
    """
    if not movement.reference_id or not movement.sku:
        return None
    return (movement.reference_id, movement.sku, movement.quantity)


def describe_natural_key(key: NaturalKey) -> str:
    """Human-readable label for logs and batch errors."""
    reference_id, sku, quantity = key
    return f"ref={reference_id!r} sku={sku!r} qty={quantity}"
