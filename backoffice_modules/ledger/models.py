"""
Transaction Ledger Domain Models.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TransactionType(Enum):
    PURCHASE = "purchase"
    PAYMENT = "payment"
    PETTY_CASH = "petty_cash"
    EXPENSE = "expense"


class ReferenceType(Enum):
    PURCHASE_ORDER = "purchase_order"
    PURCHASE_INVOICE = "purchase_invoice"
    PETTY_CASH_CARD = "petty_cash_card"
    PETTY_CASH_EXPENSE = "petty_cash_expense"


@dataclass(frozen=True)
class TransactionRecord:
    """An immutable ledger line."""
    id: UUID
    transaction_number: str
    transaction_type: TransactionType
    reference_type: ReferenceType
    reference_id: UUID
    amount: Decimal
    transaction_date: date
    description: str
    material_id: UUID | None = None
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    notes: str | None = None
