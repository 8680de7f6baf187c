"""
Petty Cash Configuration Schema.

Defines the structure and defaults for petty-cash settings.  Actual values
are loaded from tenant configuration at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from backoffice_kernel.logging_config import get_logger

logger = get_logger("modules.petty_cash.config")

DEFAULT_EXPENSE_CATEGORIES = (
    "fuel",
    "transport",
    "meals",
    "office_supplies",
    "utilities",
    "maintenance",
    "communication",
    "travel",
    "entertainment",
    "miscellaneous",
    "equipment",
    "services",
    "emergency",
)


@dataclass
class PettyCashConfig:
    """
    Configuration schema for the petty cash module.

        config = PettyCashConfig.from_dict({
            "expense_categories": ["travel", "meals", "supplies"],
            "default_monthly_limit": "2000",
        })
    """

    expense_categories: tuple[str, ...] = DEFAULT_EXPENSE_CATEGORIES

    # Applied to new cards created without an explicit limit
    default_monthly_limit: Decimal | None = None

    def __post_init__(self):
        self.expense_categories = tuple(c.strip().lower() for c in self.expense_categories)
        if not self.expense_categories:
            raise ValueError("expense_categories cannot be empty")
        if any(not c for c in self.expense_categories):
            raise ValueError("expense category names cannot be blank")
        if self.default_monthly_limit is not None:
            self.default_monthly_limit = Decimal(str(self.default_monthly_limit))
            if self.default_monthly_limit < 0:
                raise ValueError("default_monthly_limit cannot be negative")
        logger.debug(
            "petty_cash_config_initialized",
            extra={
                "category_count": len(self.expense_categories),
                "default_monthly_limit": (
                    str(self.default_monthly_limit) if self.default_monthly_limit is not None else None
                ),
            },
        )

    def is_known_category(self, category: str) -> bool:
        return category.strip().lower() in self.expense_categories

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. a tenant YAML section)."""
        logger.info(
            "petty_cash_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        values = dict(data)
        if "expense_categories" in values:
            values["expense_categories"] = tuple(values["expense_categories"])
        return cls(**values)
