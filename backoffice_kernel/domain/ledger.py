"""
Ledger primitives -- decimal-safe money arithmetic for every component.

Responsibility:
    The one place where monetary values are rounded, compared, capped and
    turned into payment statuses.  Services never compare raw Decimals or
    hard-code a tolerance; they call the functions below.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - All money is quantized to MONEY_PLACES (3) with ROUND_HALF_UP before
      any comparison.
    - EPSILON (0.001) absorbs storage drift: a balance within EPSILON of zero
      IS zero, and a payment exceeding the balance by no more than EPSILON is
      capped to the exact balance rather than rejected.
    - A payment beyond balance + EPSILON raises AmountExceedsBalanceError.
    - Order totals always satisfy total = subtotal + tax + shipping - discount.

Failure modes:
    - AmountExceedsBalanceError from cap_payment.
    - ValidationError for non-positive payments or inconsistent line totals.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from backoffice_kernel.db.types import MONEY_PLACES
from backoffice_kernel.exceptions import AmountExceedsBalanceError, ValidationError

EPSILON = Decimal("0.001")
ZERO = Decimal("0.000")
_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


def to_decimal(value: Any) -> Decimal:
    """Coerce int/str/Decimal to Decimal.  Floats go through str() so that
    0.1 becomes Decimal('0.1') rather than its binary expansion."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Any) -> Decimal:
    """Round to 3 decimal places, half-up."""
    return to_decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def is_zero(value: Any) -> bool:
    """True when the rounded value lies within EPSILON of zero."""
    return abs(quantize_money(value)) <= EPSILON


def money_equal(a: Any, b: Any) -> bool:
    return is_zero(quantize_money(a) - quantize_money(b))


def balance_due(invoice_amount: Any, paid_amount: Any) -> Decimal:
    """invoice - paid, snapped to exactly zero within EPSILON."""
    remaining = quantize_money(invoice_amount) - quantize_money(paid_amount)
    if is_zero(remaining):
        return ZERO
    return remaining


@dataclass(frozen=True)
class CappedPayment:
    """Outcome of applying the capping rule to a requested payment."""
    requested: Decimal
    applied: Decimal
    balance_before: Decimal

    @property
    def was_capped(self) -> bool:
        return self.applied != self.requested


def cap_payment(
    requested: Any,
    invoice_amount: Any,
    paid_amount: Any,
    invoice_id: Any = None,
) -> CappedPayment:
    """
    Apply the capping/rejection rule to a requested payment.

    - requested <= 0 after rounding -> ValidationError
    - balance already zero -> AmountExceedsBalanceError (nothing left to pay)
    - requested > balance + EPSILON -> AmountExceedsBalanceError
    - otherwise applied = min(requested, balance)
    """
    amount = quantize_money(requested)
    if amount <= ZERO:
        raise ValidationError("amount", f"payment must be positive, got {requested}")

    remaining = balance_due(invoice_amount, paid_amount)
    if remaining == ZERO or amount > remaining + EPSILON:
        raise AmountExceedsBalanceError(invoice_id, amount, remaining)

    return CappedPayment(
        requested=amount,
        applied=min(amount, remaining),
        balance_before=remaining,
    )


def apply_payment(invoice_amount: Any, paid_amount: Any, applied: Any) -> Decimal:
    """New paid amount.  Snaps to invoice_amount when the rest is within EPSILON."""
    new_paid = quantize_money(paid_amount) + quantize_money(applied)
    invoice = quantize_money(invoice_amount)
    if balance_due(invoice, new_paid) == ZERO:
        return invoice
    return new_paid


def derive_payment_status(
    invoice_amount: Any,
    paid_amount: Any,
    due_date: date | None,
    today: date,
) -> PaymentStatus:
    """paid -> unpaid -> overdue -> partial, evaluated in that order."""
    if balance_due(invoice_amount, paid_amount) == ZERO:
        return PaymentStatus.PAID
    if quantize_money(paid_amount) == ZERO:
        return PaymentStatus.UNPAID
    if due_date is not None and due_date < today:
        return PaymentStatus.OVERDUE
    return PaymentStatus.PARTIAL


# ---------------------------------------------------------------------------
# Order arithmetic
# ---------------------------------------------------------------------------


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    return quantize_money(to_decimal(quantity) * to_decimal(unit_price))


def validated_line_total(
    quantity: Any, unit_price: Any, supplied_total: Any | None
) -> Decimal:
    """Return quantity x unit_price, checking a caller-supplied total against it."""
    expected = line_total(quantity, unit_price)
    if supplied_total is not None and not money_equal(expected, supplied_total):
        raise ValidationError(
            "total_price",
            f"{supplied_total} does not equal quantity x unit price ({expected})",
        )
    return expected


def tax_for(subtotal: Any, rate_percent: Any) -> Decimal:
    """Flat percentage tax on a subtotal."""
    return quantize_money(to_decimal(subtotal) * to_decimal(rate_percent) / Decimal(100))


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def compute_order_totals(
    line_totals: list[Any] | tuple[Any, ...],
    rate_percent: Any,
    shipping_cost: Any = ZERO,
    discount_amount: Any = ZERO,
) -> OrderTotals:
    """Recompute subtotal, tax and total from the full set of line totals."""
    subtotal = quantize_money(sum((to_decimal(t) for t in line_totals), Decimal(0)))
    tax = tax_for(subtotal, rate_percent)
    shipping = quantize_money(shipping_cost)
    discount = quantize_money(discount_amount)
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax,
        shipping_cost=shipping,
        discount_amount=discount,
        total_amount=order_total(subtotal, tax, shipping, discount),
    )


def order_total(subtotal: Any, tax_amount: Any, shipping_cost: Any, discount_amount: Any) -> Decimal:
    return quantize_money(
        to_decimal(subtotal)
        + to_decimal(tax_amount)
        + to_decimal(shipping_cost)
        - to_decimal(discount_amount)
    )
