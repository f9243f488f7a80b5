"""
Module: stock_kernel.models.app_setting
Responsibility: Key/value application settings (currently the on-hold order
    exclusion flag).
Architecture position: Kernel > Models.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class AppSettingModel(Base):
    __tablename__ = "app_settings"

    __table_args__ = (UniqueConstraint("key", name="uq_app_setting_key"),)

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<AppSetting {self.key}={self.value!r}>"
