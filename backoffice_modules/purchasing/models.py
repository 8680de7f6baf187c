"""
Purchasing Domain Models.

The nouns of purchasing: purchase orders, their items, inventory lots
created on receipt, and ancillary order expenses (landed cost).

Input dataclasses validate themselves in ``__post_init__`` so services only
ever see well-typed values; a bad input raises ``ValidationError`` before
any database work starts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.ledger import ZERO, quantize_money, to_decimal, validated_line_total
from backoffice_kernel.exceptions import ValidationError


class OrderStatus(Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    SENT = "sent"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentTerms(Enum):
    IMMEDIATE = "immediate"
    NET_30 = "net_30"
    NET_60 = "net_60"
    NET_90 = "net_90"
    ADVANCE = "advance"
    COD = "cod"


class ItemCondition(Enum):
    NEW = "new"
    USED = "used"
    REFURBISHED = "refurbished"
    DAMAGED = "damaged"


# Statuses in which items may still be appended
ITEM_EDITABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.PENDING})


@dataclass(frozen=True)
class PurchaseOrderItem:
    id: UUID
    purchase_order_id: UUID
    material_id: UUID
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    description: str | None = None


@dataclass(frozen=True)
class PurchaseOrder:
    id: UUID
    order_number: str
    supplier_id: UUID
    status: OrderStatus
    order_date: date
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    project_id: UUID | None = None
    branch_id: UUID | None = None
    payment_terms: PaymentTerms | None = None
    payment_status: str = "unpaid"
    expected_delivery_date: date | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    sent_at: datetime | None = None
    sent_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None
    notes: str | None = None
    items: tuple[PurchaseOrderItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class InventoryLot:
    id: UUID
    purchase_order_id: UUID
    purchase_order_item_id: UUID | None
    material_id: UUID
    batch_number: str
    quantity: Decimal
    unit_cost: Decimal
    location: str
    condition: ItemCondition
    expiry_date: date | None = None


@dataclass(frozen=True)
class OrderExpense:
    id: UUID
    purchase_order_id: UUID
    category: str
    description: str
    amount: Decimal
    expense_date: date
    reference: str | None = None


@dataclass(frozen=True)
class LandedCost:
    purchase_order_id: UUID
    order_total: Decimal
    expense_total: Decimal
    landed_cost: Decimal
    by_category: dict[str, Decimal]
    expense_count: int


@dataclass(frozen=True)
class ReceiptResult:
    order: PurchaseOrder
    lots: tuple[InventoryLot, ...]
    skipped_item_ids: tuple[UUID, ...] = ()


# ---------------------------------------------------------------------------
# Typed inputs
# ---------------------------------------------------------------------------


def _non_negative_money(name: str, value) -> Decimal:
    amount = quantize_money(value)
    if amount < ZERO:
        raise ValidationError(name, f"cannot be negative, got {value}")
    return amount


@dataclass(frozen=True)
class NewOrderItem:
    """A line to add to an order.  ``total_price`` is optional; when given it
    must equal quantity x unit_price."""
    material_id: UUID
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    description: str | None = None

    def __post_init__(self):
        quantity = to_decimal(self.quantity)
        if quantity <= 0:
            raise ValidationError("quantity", f"must be positive, got {self.quantity}")
        unit_price = _non_negative_money("unit_price", self.unit_price)
        total = validated_line_total(quantity, unit_price, self.total_price)
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)
        object.__setattr__(self, "total_price", total)


@dataclass(frozen=True)
class CreateOrderInput:
    supplier_id: UUID
    order_date: date
    project_id: UUID | None = None
    branch_id: UUID | None = None
    expected_delivery_date: date | None = None
    payment_terms: PaymentTerms | None = None
    shipping_cost: Decimal = ZERO
    discount_amount: Decimal = ZERO
    notes: str | None = None
    items: tuple[NewOrderItem, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "shipping_cost", _non_negative_money("shipping_cost", self.shipping_cost))
        object.__setattr__(self, "discount_amount", _non_negative_money("discount_amount", self.discount_amount))
        object.__setattr__(self, "items", tuple(self.items))
        if self.expected_delivery_date and self.expected_delivery_date < self.order_date:
            raise ValidationError("expected_delivery_date", "cannot be before order_date")


@dataclass(frozen=True)
class UpdateDraftInput:
    """Direct edits to a draft order.  None means "leave unchanged"."""
    supplier_id: UUID | None = None
    order_date: date | None = None
    branch_id: UUID | None = None
    expected_delivery_date: date | None = None
    payment_terms: PaymentTerms | None = None
    shipping_cost: Decimal | None = None
    discount_amount: Decimal | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.shipping_cost is not None:
            object.__setattr__(self, "shipping_cost", _non_negative_money("shipping_cost", self.shipping_cost))
        if self.discount_amount is not None:
            object.__setattr__(self, "discount_amount", _non_negative_money("discount_amount", self.discount_amount))

    def changed_fields(self) -> dict:
        return {
            name: value
            for name, value in vars(self).items()
            if value is not None
        }


@dataclass(frozen=True)
class ReceiptLine:
    item_id: UUID
    received_quantity: Decimal
    batch_number: str | None = None
    expiry_date: date | None = None
    condition: ItemCondition = ItemCondition.NEW
    location: str | None = None

    def __post_init__(self):
        qty = to_decimal(self.received_quantity)
        if qty <= 0:
            raise ValidationError("received_quantity", f"must be positive, got {self.received_quantity}")
        object.__setattr__(self, "received_quantity", qty)
        if self.batch_number is not None and len(self.batch_number) > 100:
            raise ValidationError("batch_number", "at most 100 characters")


@dataclass(frozen=True)
class OrderExpenseInput:
    category: str
    description: str
    amount: Decimal
    expense_date: date
    reference: str | None = None

    def __post_init__(self):
        category = (self.category or "").strip().upper()
        if not category or len(category) > 50:
            raise ValidationError("category", "must be 1-50 characters")
        if not (self.description or "").strip():
            raise ValidationError("description", "must not be empty")
        amount = quantize_money(self.amount)
        if amount <= ZERO:
            raise ValidationError("amount", f"must be positive, got {self.amount}")
        object.__setattr__(self, "category", category)
        object.__setattr__(self, "amount", amount)
