"""
SettingsService -- tenant-scoped system settings and the single tax-rate lookup.

Every path that recomputes order totals (item append, amendment proposal,
order creation) asks ``SettingsService.vat_rate()``.  Resolution order:

    1. ``system_settings`` row ``vat_rate_percentage`` in the tenant database
    2. ``TenantSettings.vat_rate_percentage`` from the tenant directory
    3. 5 percent
"""

from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from backoffice_kernel.config import DEFAULT_VAT_RATE, TenantSettings
from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.exceptions import ValidationError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.settings")

VAT_RATE_KEY = "vat_rate_percentage"


class SystemSettingModel(TrackedBase):
    """Key/value setting stored in the tenant's own database."""

    __tablename__ = "system_settings"

    setting_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    setting_value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<SystemSettingModel {self.setting_key}={self.setting_value!r}>"


class SettingsService:
    def __init__(self, session: Session, tenant_settings: TenantSettings | None = None):
        self._session = session
        self._tenant_settings = tenant_settings

    def get(self, key: str) -> str | None:
        return self._session.execute(
            select(SystemSettingModel.setting_value).where(
                SystemSettingModel.setting_key == key
            )
        ).scalar_one_or_none()

    def set(self, key: str, value: str, actor_id: UUID, description: str | None = None) -> None:
        """Insert or overwrite a setting.  Does not commit."""
        row = self._session.execute(
            select(SystemSettingModel).where(SystemSettingModel.setting_key == key)
        ).scalar_one_or_none()
        if row is None:
            self._session.add(
                SystemSettingModel(
                    setting_key=key,
                    setting_value=value,
                    description=description,
                    created_by_id=actor_id,
                )
            )
        else:
            row.setting_value = value
            row.updated_by_id = actor_id
        self._session.flush()
        logger.info("system_setting_saved", extra={"setting_key": key})

    def vat_rate(self) -> Decimal:
        """Tax rate percentage used by every total recomputation."""
        raw = self.get(VAT_RATE_KEY)
        if raw is not None:
            try:
                rate = Decimal(raw.strip())
            except InvalidOperation as exc:
                raise ValidationError(VAT_RATE_KEY, f"not a number: {raw!r}") from exc
            if rate < 0 or rate > 100:
                raise ValidationError(VAT_RATE_KEY, f"out of range: {rate}")
            return rate
        if self._tenant_settings is not None:
            return self._tenant_settings.vat_rate_percentage
        return DEFAULT_VAT_RATE
