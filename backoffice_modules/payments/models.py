"""
Payment Domain Models.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.ledger import ZERO, quantize_money
from backoffice_kernel.exceptions import ValidationError
from backoffice_modules.billing.models import Invoice


class PaymentMethod(Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CARD = "card"


@dataclass(frozen=True)
class PaymentInput:
    """A payment request.  ``bank_account_id`` only has an effect for
    ``bank_transfer`` payments."""
    amount: Decimal
    method: PaymentMethod
    payment_date: date | None = None
    bank_account_id: UUID | None = None
    reference: str | None = None
    notes: str | None = None

    def __post_init__(self):
        amount = quantize_money(self.amount)
        if amount <= ZERO:
            raise ValidationError("amount", f"payment must be positive, got {self.amount}")
        object.__setattr__(self, "amount", amount)
        if self.reference is not None and len(self.reference) > 100:
            raise ValidationError("reference", "at most 100 characters")

    @property
    def posts_to_bank(self) -> bool:
        return self.method is PaymentMethod.BANK_TRANSFER and self.bank_account_id is not None


@dataclass(frozen=True)
class PaymentResult:
    invoice: Invoice
    requested_amount: Decimal
    applied_amount: Decimal
    transaction_number: str
    bank_transaction_id: UUID | None = None

    @property
    def was_capped(self) -> bool:
        return self.applied_amount != self.requested_amount
