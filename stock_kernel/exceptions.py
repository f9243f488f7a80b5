"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger must know precisely whether a write happened before
they decide what to do next (for example, before writing a dependent
corrective movement).  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        service.add_movement(movement)
    except ValidationError as e:
        api_response(code=e.code, field=e.field)
    except UpstreamError as e:
        log.warning("store unavailable", extra={"source": e.source})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    +-- NotFoundError
    |   +-- MovementNotFoundError
    |   +-- ReconciliationNotFoundError
    +-- UpstreamError
    +-- ImmutabilityViolationError
    +-- PartialBatchFailure

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Missing/invalid required field (empty SKU, ...)
MOVEMENT_NOT_FOUND          | Movement id does not exist
RECONCILIATION_NOT_FOUND    | Reconciliation id does not exist
UPSTREAM_ERROR              | Store or inventory/order source failed/timed out
IMMUTABILITY_VIOLATION      | Frozen ledger field modified, audit row deleted
PARTIAL_BATCH_FAILURE       | Strict caller asked a batch result to raise

===============================================================================
PROPAGATION POLICY
===============================================================================

- Single-item mutators propagate ValidationError / UpstreamError.
- The Summary Generator never propagates; failures degrade to a flagged,
  zero-valued summary.
- Batch operations return result objects with an ``errors`` tuple.
  PartialBatchFailure is only raised when a caller explicitly asks for it
  via ``result.raise_for_errors()``.
"""

from __future__ import annotations

from typing import Any


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


class ValidationError(StockKernelError):
    """A required field is missing or invalid."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


# Lookup exceptions


class NotFoundError(StockKernelError):
    """Base exception for lookups by id that found nothing."""

    code: str = "NOT_FOUND"


class MovementNotFoundError(NotFoundError):
    """Stock movement with given id was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: int):
        self.movement_id = movement_id
        super().__init__(f"Stock movement not found: {movement_id}")


class ReconciliationNotFoundError(NotFoundError):
    """Stock reconciliation with given id was not found."""

    code: str = "RECONCILIATION_NOT_FOUND"

    def __init__(self, reconciliation_id: int):
        self.reconciliation_id = reconciliation_id
        super().__init__(f"Stock reconciliation not found: {reconciliation_id}")


class UpstreamError(StockKernelError):
    """
    The backing store or an external source failed or timed out.

    The original exception is always chained (``raise ... from exc``) so the
    driver-level detail survives in tracebacks.
    """

    code: str = "UPSTREAM_ERROR"

    def __init__(self, source: str, operation: str, detail: str = ""):
        self.source = source
        self.operation = operation
        self.detail = detail
        message = f"{source} failed during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ImmutabilityViolationError(StockKernelError):
    """
    Attempted to modify a frozen field or delete an audit record.

    Movements only allow notes/reason/batch_number to change; reconciliations
    only allow notes to change and are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class PartialBatchFailure(StockKernelError):
    """
    A batch finished with some items failed.

    Never raised by the batch operations themselves; strict callers obtain it
    from ``raise_for_errors()`` on a batch result.
    """

    code: str = "PARTIAL_BATCH_FAILURE"

    def __init__(self, operation: str, succeeded: int, errors: tuple):
        self.operation = operation
        self.succeeded = succeeded
        self.errors = errors
        super().__init__(
            f"{operation} finished with {len(errors)} failure(s) "
            f"and {succeeded} success(es)"
        )
