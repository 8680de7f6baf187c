"""
Petty Cash Domain Models.

Balance adjustments compare exactly (no tolerance); they are manual
entries, not derived from rounding-prone sums.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.ledger import ZERO, quantize_money
from backoffice_kernel.exceptions import ValidationError


class CardStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CLOSED = "closed"


class ExpenseStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseDecision(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class BalanceDirection(Enum):
    ADD = "add"
    DEDUCT = "deduct"


class CardTransactionType(Enum):
    OPENING = "opening"
    RELOAD = "reload"
    ADJUSTMENT = "adjustment"
    EXPENSE = "expense"


@dataclass(frozen=True)
class PettyCashCard:
    id: UUID
    card_number: str
    assigned_to: UUID
    staff_name: str
    initial_balance: Decimal
    current_balance: Decimal
    total_spent: Decimal
    issue_date: date
    status: CardStatus
    monthly_limit: Decimal | None = None
    department: str | None = None
    expiry_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PettyCashExpense:
    id: UUID
    expense_number: str
    card_id: UUID
    category: str
    description: str
    amount: Decimal
    expense_date: date
    status: ExpenseStatus
    submitted_by: UUID
    vendor: str | None = None
    receipt_number: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PettyCashTransaction:
    id: UUID
    card_id: UUID
    transaction_type: CardTransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    transaction_date: date
    description: str
    expense_id: UUID | None = None


# ---------------------------------------------------------------------------
# Typed inputs
# ---------------------------------------------------------------------------


def _positive(name: str, value) -> Decimal:
    amount = quantize_money(value)
    if amount <= ZERO:
        raise ValidationError(name, f"must be positive, got {value}")
    return amount


@dataclass(frozen=True)
class CreateCardInput:
    assigned_to: UUID
    staff_name: str
    initial_balance: Decimal
    issue_date: date
    monthly_limit: Decimal | None = None
    department: str | None = None
    expiry_date: date | None = None
    notes: str | None = None

    def __post_init__(self):
        if not (self.staff_name or "").strip():
            raise ValidationError("staff_name", "must not be empty")
        balance = quantize_money(self.initial_balance)
        if balance < ZERO:
            raise ValidationError("initial_balance", "cannot be negative")
        object.__setattr__(self, "initial_balance", balance)
        if self.monthly_limit is not None:
            limit = quantize_money(self.monthly_limit)
            if limit < ZERO:
                raise ValidationError("monthly_limit", "cannot be negative")
            object.__setattr__(self, "monthly_limit", limit)
        if self.expiry_date is not None and self.expiry_date < self.issue_date:
            raise ValidationError("expiry_date", "cannot be before issue_date")


@dataclass(frozen=True)
class BalanceAdjustmentInput:
    amount: Decimal
    direction: BalanceDirection
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "amount", _positive("amount", self.amount))


@dataclass(frozen=True)
class ReloadInput:
    """``bank_account_id`` given: the reload is also withdrawn from that account."""
    amount: Decimal
    reload_date: date | None = None
    bank_account_id: UUID | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "amount", _positive("amount", self.amount))


@dataclass(frozen=True)
class SubmitExpenseInput:
    card_id: UUID
    category: str
    description: str
    amount: Decimal
    expense_date: date
    vendor: str | None = None
    receipt_number: str | None = None
    notes: str | None = None

    def __post_init__(self):
        category = (self.category or "").strip().lower()
        if not 2 <= len(category) <= 100:
            raise ValidationError("category", "must be 2-100 characters")
        description = (self.description or "").strip()
        if not 2 <= len(description) <= 2000:
            raise ValidationError("description", "must be 2-2000 characters")
        object.__setattr__(self, "category", category)
        object.__setattr__(self, "description", description)
        object.__setattr__(self, "amount", _positive("amount", self.amount))
