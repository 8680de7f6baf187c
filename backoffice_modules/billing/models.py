"""
Billing Domain Models.

Both bill kinds share one ``Invoice`` DTO distinguished by ``bill_type``.
Company bills carry ``bill_status`` and no ``payment_status``; vendor bills
carry ``payment_status`` / ``paid_amount`` and their coverage lists.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.ledger import ZERO, PaymentStatus, balance_due, quantize_money
from backoffice_kernel.exceptions import ValidationError

COMPANY_BILL_PREFIX = "CB-"
VENDOR_BILL_PREFIX = "VB-"
VENDOR_BILL_SEQUENCE = "VB"


class BillType(Enum):
    COMPANY = "company"
    VENDOR = "vendor"


class BillStatus(Enum):
    DRAFT = "draft"
    SENT = "sent"


@dataclass(frozen=True)
class Invoice:
    id: UUID
    bill_type: BillType
    invoice_number: str
    supplier_id: UUID
    invoice_date: date
    invoice_amount: Decimal
    paid_amount: Decimal = ZERO
    purchase_order_id: UUID | None = None
    branch_id: UUID | None = None
    project_id: UUID | None = None
    due_date: date | None = None
    payment_terms_days: int = 0
    payment_status: PaymentStatus | None = None
    bill_status: BillStatus | None = None
    notes: str | None = None
    covers_company_bills: tuple[UUID, ...] = ()
    covers_purchase_orders: tuple[UUID, ...] = ()

    @property
    def balance_due(self) -> Decimal:
        return balance_due(self.invoice_amount, self.paid_amount)


def normalize_company_bill_number(raw: str) -> str:
    """Force the ``CB-`` prefix, stripping a mistaken ``VB-`` first."""
    number = (raw or "").strip()
    if number.upper().startswith(VENDOR_BILL_PREFIX):
        number = number[len(VENDOR_BILL_PREFIX):]
    if not number.upper().startswith(COMPANY_BILL_PREFIX):
        number = f"{COMPANY_BILL_PREFIX}{number}"
    if number == COMPANY_BILL_PREFIX:
        raise ValidationError("invoice_number", "must not be empty")
    return number


def _optional_amount(name: str, value) -> Decimal | None:
    if value is None:
        return None
    amount = quantize_money(value)
    if amount <= ZERO:
        raise ValidationError(name, f"must be positive, got {value}")
    return amount


def _terms(value) -> int | None:
    if value is not None and value < 0:
        raise ValidationError("payment_terms_days", "cannot be negative")
    return value


# ---------------------------------------------------------------------------
# Typed inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateCompanyBillInput:
    """``invoice_amount`` defaults to the order total; ``due_date`` is derived
    from ``payment_terms_days`` when absent."""
    purchase_order_id: UUID
    invoice_number: str
    invoice_date: date
    invoice_amount: Decimal | None = None
    due_date: date | None = None
    payment_terms_days: int | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "invoice_number", normalize_company_bill_number(self.invoice_number))
        object.__setattr__(self, "invoice_amount", _optional_amount("invoice_amount", self.invoice_amount))
        _terms(self.payment_terms_days)


@dataclass(frozen=True)
class CreateVendorBillInput:
    """Exactly one of the two coverage lists must be non-empty."""
    supplier_id: UUID
    invoice_date: date
    covers_company_bills: tuple[UUID, ...] = ()
    covers_purchase_orders: tuple[UUID, ...] = ()
    invoice_amount: Decimal | None = None
    due_date: date | None = None
    payment_terms_days: int | None = None
    notes: str | None = None

    def __post_init__(self):
        bills = tuple(self.covers_company_bills or ())
        orders = tuple(self.covers_purchase_orders or ())
        if bool(bills) == bool(orders):
            raise ValidationError(
                "coverage",
                "exactly one of covers_company_bills / covers_purchase_orders must be given",
            )
        for name, refs in (("covers_company_bills", bills), ("covers_purchase_orders", orders)):
            if len(set(refs)) != len(refs):
                raise ValidationError(name, "contains duplicate references")
        object.__setattr__(self, "covers_company_bills", bills)
        object.__setattr__(self, "covers_purchase_orders", orders)
        object.__setattr__(self, "invoice_amount", _optional_amount("invoice_amount", self.invoice_amount))
        _terms(self.payment_terms_days)

    @property
    def covers_bills(self) -> bool:
        return bool(self.covers_company_bills)


@dataclass(frozen=True)
class UpdateInvoiceDetailsInput:
    """None means "leave unchanged"."""
    invoice_date: date | None = None
    due_date: date | None = None
    payment_terms_days: int | None = None
    notes: str | None = None

    def __post_init__(self):
        _terms(self.payment_terms_days)

    def changed_fields(self) -> dict:
        return {name: value for name, value in vars(self).items() if value is not None}
