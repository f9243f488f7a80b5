"""
stock_services.summary_cache -- time-boxed memo of the full summary set.

Responsibility:
    Holds the last computed list of summaries and when that computation
    started.  ``get_all`` serves the cached list inside the TTL and
    recomputes otherwise; ``invalidate`` drops everything.  Every ledger
    mutator is wired to ``invalidate`` through the CacheInvalidator protocol.

Invariants enforced:
    - Invalidation is all-or-nothing; there is no per-SKU entry.
    - An empty result is a valid cached value.
    - ``last_computed_at`` is the start time of the computation that
      produced the cached list.
    - A computation overtaken by ``invalidate()`` is returned to its caller
      but never stored.
    - When recomputing fails because the SKU list cannot be read, the stale
      list (or an empty list) is returned.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.results import BatchItemError, SummaryBatch
from stock_kernel.domain.types import StockReconciliationSummary
from stock_kernel.exceptions import StockKernelError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.summary_cache")

DEFAULT_TTL_SECONDS = 300


class SummaryCache:
    """Injectable, instance-scoped summary cache."""

    def __init__(
        self,
        compute: Callable[[], SummaryBatch],
        clock: Clock | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self._compute = compute
        self._clock = clock or SystemClock()
        self.ttl = timedelta(seconds=ttl_seconds)

        # Guards the fields below; never held while computing
        self._lock = threading.Lock()
        self._summaries: tuple[StockReconciliationSummary, ...] | None = None
        self._computed_at: datetime | None = None
        self._errors: tuple[BatchItemError, ...] = ()
        self._generation = 0

    @property
    def last_computed_at(self) -> datetime | None:
        return self._computed_at

    @property
    def last_errors(self) -> tuple[BatchItemError, ...]:
        """Per-SKU failures of the computation that filled the cache."""
        return self._errors

    @property
    def is_populated(self) -> bool:
        return self._summaries is not None

    def _fresh(self, now: datetime) -> bool:
        return (
            self._summaries is not None
            and self._computed_at is not None
            and now - self._computed_at < self.ttl
        )

    def get_all(self, force_refresh: bool = False) -> list[StockReconciliationSummary]:
        """Cached summaries inside the TTL, a fresh computation otherwise."""
        now = self._clock.now()
        with self._lock:
            if not force_refresh and self._fresh(now):
                logger.debug(
                    "summary_cache_hit",
                    extra={"computed_at": self._computed_at, "size": len(self._summaries)},
                )
                return list(self._summaries)
            generation = self._generation
            stale = self._summaries

        logger.info("summary_cache_refresh", extra={"forced": force_refresh})
        try:
            batch = self._compute()
        except StockKernelError as exc:
            logger.warning(
                "summary_cache_refresh_failed",
                extra={"error": str(exc), "serving_stale": stale is not None},
            )
            return list(stale or ())

        with self._lock:
            if self._generation == generation:
                self._summaries = batch.summaries
                self._computed_at = now
                self._errors = batch.errors
            else:
                logger.info("summary_cache_store_skipped_after_invalidate")
        return list(batch.summaries)

    def invalidate(self) -> None:
        """Drop the cached list and its timestamp."""
        with self._lock:
            self._summaries = None
            self._computed_at = None
            self._errors = ()
            self._generation += 1
        logger.debug("summary_cache_invalidated")
