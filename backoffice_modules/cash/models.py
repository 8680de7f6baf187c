"""
Cash Domain Models.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.ledger import quantize_money
from backoffice_kernel.exceptions import ValidationError


class BankTransactionType(Enum):
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"


@dataclass(frozen=True)
class BankAccount:
    id: UUID
    account_name: str
    account_number: str
    bank_name: str
    current_balance: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class BankTransaction:
    id: UUID
    bank_account_id: UUID
    transaction_type: BankTransactionType
    amount: Decimal
    balance_after: Decimal
    transaction_date: date
    description: str
    reference_type: str | None = None
    reference_id: UUID | None = None
    category: str | None = None


@dataclass(frozen=True)
class OpenAccountInput:
    account_name: str
    account_number: str
    bank_name: str
    opening_balance: Decimal = Decimal("0")

    def __post_init__(self):
        if not self.account_name.strip():
            raise ValidationError("account_name", "must not be empty")
        if not self.account_number.strip():
            raise ValidationError("account_number", "must not be empty")
        object.__setattr__(self, "opening_balance", quantize_money(self.opening_balance))
