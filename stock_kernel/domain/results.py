"""
Batch result DTOs.

Batch operations never throw on per-item failures; they return one of these
frozen results with an ``errors`` tuple.  Callers that want all-or-nothing
semantics call ``raise_for_errors()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from stock_kernel.domain.types import StockReconciliationSummary
from stock_kernel.exceptions import PartialBatchFailure


@dataclass(frozen=True)
class BatchItemError:
    """One failed item of a batch (an order number, a SKU, a duplicate group)."""

    key: str
    error: str
    code: str | None = None


class _RaisesForErrors:
    """Shared ``raise_for_errors`` for result types with an ``errors`` tuple."""

    operation: str = "batch"

    def _succeeded(self) -> int:
        raise NotImplementedError

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)  # type: ignore[attr-defined]

    def raise_for_errors(self) -> None:
        if self.has_errors:
            raise PartialBatchFailure(
                self.operation,
                self._succeeded(),
                self.errors,  # type: ignore[attr-defined]
            )


@dataclass(frozen=True)
class OrderBatchResult(_RaisesForErrors):
    processed: int
    failed: int
    errors: tuple[BatchItemError, ...] = ()
    skipped: int = 0

    operation = "process_orders"

    def _succeeded(self) -> int:
        return self.processed


@dataclass(frozen=True)
class NewOrdersResult(_RaisesForErrors):
    processed: int
    skipped: int
    failed: int
    last_processed_time: datetime
    errors: tuple[BatchItemError, ...] = ()
    watermark_advanced: bool = False

    operation = "process_new_orders"

    def _succeeded(self) -> int:
        return self.processed


@dataclass(frozen=True)
class CleanupResult(_RaisesForErrors):
    removed: int
    errors: tuple[BatchItemError, ...] = ()

    operation = "cleanup_duplicates"

    def _succeeded(self) -> int:
        return self.removed


@dataclass(frozen=True)
class SummaryBatch(_RaisesForErrors):
    """Summaries computed in one pass, plus the SKUs that failed."""

    summaries: tuple[StockReconciliationSummary, ...]
    computed_at: datetime
    errors: tuple[BatchItemError, ...] = ()

    operation = "generate_all_summaries"

    def _succeeded(self) -> int:
        return len(self.summaries)
