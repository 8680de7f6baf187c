"""
Tenant configuration (``backoffice_kernel.config``).

Responsibility
--------------
Typed per-company settings and the tenant directory that maps each company
to its own database.  The directory is loaded from a YAML document::

    tenants:
      acme:
        database_url: postgresql://app@db/acme
        settings:
          vat_rate_percentage: "5"
          default_payment_terms_days: 30
      globex:
        database_url: postgresql://app@db/globex

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Tenant without ``database_url``  -> ``ValueError``.
* Unknown company at lookup time  -> ``TenantNotConfiguredError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from backoffice_kernel.exceptions import TenantNotConfiguredError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_VAT_RATE = Decimal("5")


@dataclass
class TenantSettings:
    """
    Settings for one company.

    ``vat_rate_percentage`` is the fallback tax rate used when the tenant's
    database carries no ``vat_rate_percentage`` system setting.
    """

    vat_rate_percentage: Decimal = DEFAULT_VAT_RATE
    default_payment_terms_days: int = 0
    order_number_prefix: str = "PO"
    card_number_prefix: str = "PC"
    expense_number_prefix: str = "EXP"
    default_inventory_location: str = "Main Warehouse"

    def __post_init__(self):
        self.vat_rate_percentage = Decimal(str(self.vat_rate_percentage))
        if self.vat_rate_percentage < 0 or self.vat_rate_percentage > 100:
            raise ValueError(
                f"vat_rate_percentage must be between 0 and 100, "
                f"got {self.vat_rate_percentage}"
            )
        if self.default_payment_terms_days < 0:
            raise ValueError("default_payment_terms_days cannot be negative")
        logger.debug(
            "tenant_settings_initialized",
            extra={
                "vat_rate_percentage": str(self.vat_rate_percentage),
                "default_payment_terms_days": self.default_payment_terms_days,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Create settings from a dict, ignoring unknown keys with a warning."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("tenant_settings_unknown_keys", extra={"keys": unknown})
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class TenantEntry:
    company_id: str
    database_url: str
    settings: TenantSettings = field(default_factory=TenantSettings)


class TenantDirectory:
    """Company id -> (database URL, settings)."""

    def __init__(self, entries: dict[str, TenantEntry] | None = None):
        self._entries: dict[str, TenantEntry] = dict(entries or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TenantDirectory:
        tenants = (data or {}).get("tenants") or {}
        entries: dict[str, TenantEntry] = {}
        for company_id, raw in tenants.items():
            raw = raw or {}
            url = raw.get("database_url")
            if not url:
                raise ValueError(f"Tenant {company_id!r} has no database_url")
            entries[str(company_id)] = TenantEntry(
                company_id=str(company_id),
                database_url=url,
                settings=TenantSettings.from_dict(raw.get("settings")),
            )
        logger.info("tenant_directory_loaded", extra={"tenant_count": len(entries)})
        return cls(entries)

    @classmethod
    def from_yaml(cls, path: str | Path) -> TenantDirectory:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        return cls.from_dict(data or {})

    def _entry(self, company_id: str) -> TenantEntry:
        entry = self._entries.get(company_id)
        if entry is None:
            raise TenantNotConfiguredError(company_id)
        return entry

    def company_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._entries))

    def database_url(self, company_id: str) -> str:
        return self._entry(company_id).database_url

    def settings(self, company_id: str) -> TenantSettings:
        return self._entry(company_id).settings

    def __contains__(self, company_id: object) -> bool:
        return company_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
