"""
SqlSettingsStore -- app_settings-backed implementation of SettingsStore.

Flush-only like every kernel service.  Flipping the on-hold flag changes the
meaning of every ledger read, so ``set_exclude_on_hold_orders`` invalidates
the attached cache.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.collaborators import CacheInvalidator, NullInvalidator
from stock_kernel.logging_config import get_logger
from stock_kernel.models.app_setting import AppSettingModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.settings_store")

EXCLUDE_ON_HOLD_ORDERS = "exclude_on_hold_orders"

_TRUE = "true"
_FALSE = "false"


class SqlSettingsStore(BaseService[AppSettingModel]):
    def __init__(
        self,
        session: Session,
        default_exclude_on_hold: bool = True,
        invalidator: CacheInvalidator | None = None,
    ):
        super().__init__(session)
        self.default_exclude_on_hold = default_exclude_on_hold
        self.invalidator = invalidator or NullInvalidator()

    def _row(self, key: str) -> AppSettingModel | None:
        return self.session.scalars(
            select(AppSettingModel).where(AppSettingModel.key == key)
        ).first()

    def get_exclude_on_hold_orders(self) -> bool:
        """Stored flag, or the configured default when never set."""
        with self._store("get_setting"):
            row = self._row(EXCLUDE_ON_HOLD_ORDERS)
        if row is None:
            return self.default_exclude_on_hold
        return row.value == _TRUE

    def set_exclude_on_hold_orders(self, exclude: bool) -> None:
        value = _TRUE if exclude else _FALSE
        with self._store("set_setting"):
            row = self._row(EXCLUDE_ON_HOLD_ORDERS)
            if row is None:
                self.session.add(AppSettingModel(key=EXCLUDE_ON_HOLD_ORDERS, value=value))
            else:
                row.value = value
            self.session.flush()
        logger.info(
            "setting_updated",
            extra={"key": EXCLUDE_ON_HOLD_ORDERS, "value": value},
        )
        self.invalidator.invalidate()
