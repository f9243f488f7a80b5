"""
DuplicateCleaner -- removes redundant derived movements.

Responsibility:
    Groups persisted movements of one type by their natural key
    ``(reference_id, sku, quantity)`` and deletes every member of a group
    except the one with the lowest id (the first inserted).

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Exactly one row survives per natural key: the lowest id.
    - Rows without a reference_id or sku are never touched.
    - Each group is deleted in its own SAVEPOINT; a failing group is reported
      and the rest still run.
    - The cache is invalidated once, and only when something was removed.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import delete
from sqlalchemy.orm import Session

from stock_kernel.domain.collaborators import CacheInvalidator, NullInvalidator
from stock_kernel.domain.results import BatchItemError, CleanupResult
from stock_kernel.domain.types import MovementType, StockMovement
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement_metadata import MovementMetadataModel
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.utils.idempotency import (
    NaturalKey,
    describe_natural_key,
    movement_natural_key,
)

logger = get_logger("services.duplicate_cleaner")


def find_duplicate_groups(
    movements: list[StockMovement],
) -> dict[NaturalKey, list[StockMovement]]:
    """Natural key -> members, for keys shared by more than one movement.

    Members are sorted by id, so the first one is the survivor.
    """
    groups: dict[NaturalKey, list[StockMovement]] = defaultdict(list)
    for movement in movements:
        key = movement_natural_key(movement)
        if key is not None:
            groups[key].append(movement)
    return {
        key: sorted(members, key=lambda m: m.id)
        for key, members in groups.items()
        if len(members) > 1
    }


class DuplicateCleaner(BaseService[StockMovementModel]):
    def __init__(self, session: Session, invalidator: CacheInvalidator | None = None):
        super().__init__(session)
        self.invalidator = invalidator or NullInvalidator()
        self.selector = MovementSelector(session)

    def cleanup_duplicates(self, movement_type: MovementType | str) -> CleanupResult:
        """Delete all but the oldest row of every duplicate group."""
        movement_type = MovementType.parse(movement_type)
        with self._store("load_movements_for_cleanup"):
            movements = self.selector.by_type_oldest_first(movement_type)
        groups = find_duplicate_groups(movements)

        removed = 0
        errors: list[BatchItemError] = []
        for key, members in groups.items():
            doomed = [m.id for m in members[1:]]
            savepoint = self.session.begin_nested()
            try:
                self.session.execute(
                    delete(MovementMetadataModel).where(
                        MovementMetadataModel.movement_id.in_(doomed)
                    )
                )
                self.session.execute(
                    delete(StockMovementModel).where(StockMovementModel.id.in_(doomed))
                )
                savepoint.commit()
                removed += len(doomed)
            except Exception as exc:
                savepoint.rollback()
                label = describe_natural_key(key)
                errors.append(
                    BatchItemError(
                        key=label,
                        error=str(exc),
                        code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                    )
                )
                logger.warning(
                    "duplicate_group_cleanup_failed",
                    extra={"group": label, "error": str(exc)},
                )

        logger.info(
            "duplicates_cleaned",
            extra={
                "movement_type": movement_type.value,
                "groups": len(groups),
                "removed": removed,
                "failed": len(errors),
            },
        )
        if removed > 0:
            self.invalidator.invalidate()
        return CleanupResult(removed=removed, errors=tuple(errors))
