"""
ORM-level immutability enforcement for the stock ledger.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity                 | Frozen fields                          | Delete
-----------------------|----------------------------------------|-----------
StockMovementModel     | everything except notes, reason,       | allowed
                       | batch_number                           |
StockReconciliationModel | everything except notes              | blocked

Movement deletion stays allowed: the duplicate cleaner and the explicit
delete operation both remove rows.  Reconciliations are audit records and
are never removed.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_reconciliation_delete()
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``delete()``/``update()`` statements bypass mapper events; the services
only issue bulk deletes against stock_movements.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    from stock_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

RECONCILIATION_MUTABLE_FIELDS = frozenset({"notes"})


def _first_changed_field(target, allowed: frozenset[str]) -> str | None:
    """Name of the first column attribute with pending changes outside ``allowed``."""
    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if attr.key in allowed:
            continue
        if insp.attrs[attr.key].history.has_changes():
            return attr.key
    return None


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_movement_immutability(mapper, connection, target):
    """
    Block changes to a movement's ledger fields.

    Only notes, reason and batch_number may be edited once the row exists.
    """
    from stock_kernel.models.stock_movement import MUTABLE_MOVEMENT_FIELDS

    field = _first_changed_field(target, MUTABLE_MOVEMENT_FIELDS)
    if field is not None:
        _block(
            "StockMovement",
            target,
            "UPDATE",
            f"Cannot modify ledger field '{field}' on a stock movement",
            field=field,
        )


def _check_reconciliation_immutability(mapper, connection, target):
    """Reconciliations are frozen except for their notes."""
    field = _first_changed_field(target, RECONCILIATION_MUTABLE_FIELDS)
    if field is not None:
        _block(
            "StockReconciliation",
            target,
            "UPDATE",
            f"Cannot modify field '{field}' on a stock reconciliation",
            field=field,
        )


def _check_reconciliation_delete(mapper, connection, target):
    _block(
        "StockReconciliation",
        target,
        "DELETE",
        "Stock reconciliations cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from stock_kernel.models.stock_movement import StockMovementModel
    from stock_kernel.models.stock_reconciliation import StockReconciliationModel

    _safe_add_listener(StockMovementModel, "before_update", _check_movement_immutability)
    _safe_add_listener(
        StockReconciliationModel, "before_update", _check_reconciliation_immutability,
    )
    _safe_add_listener(
        StockReconciliationModel, "before_delete", _check_reconciliation_delete,
    )


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    from stock_kernel.models.stock_movement import StockMovementModel
    from stock_kernel.models.stock_reconciliation import StockReconciliationModel

    _safe_remove_listener(StockMovementModel, "before_update", _check_movement_immutability)
    _safe_remove_listener(
        StockReconciliationModel, "before_update", _check_reconciliation_immutability,
    )
    _safe_remove_listener(
        StockReconciliationModel, "before_delete", _check_reconciliation_delete,
    )
