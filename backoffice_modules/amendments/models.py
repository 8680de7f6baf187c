"""
Amendment Domain Models.

``ProposedOrderFields`` is what a caller asks to change: every field is
optional.  ``OrderSnapshot`` is what gets stored: every amendable field is
fully populated (defaulting to the order's value at proposal time) together
with the recomputed totals.  Approval copies the snapshot verbatim, so an
approved amendment never depends on a partially-populated payload.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from backoffice_kernel.domain.ledger import ZERO, quantize_money
from backoffice_kernel.exceptions import ValidationError
from backoffice_modules.purchasing.models import NewOrderItem, PaymentTerms

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 1000


class AmendmentStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AmendmentDecision(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ProposedOrderFields:
    """Requested overrides.  None means "keep the order's current value";
    ``items=None`` means the item set is not part of the proposal."""
    order_date: date | None = None
    branch_id: UUID | None = None
    payment_terms: PaymentTerms | None = None
    expected_delivery_date: date | None = None
    shipping_cost: Decimal | None = None
    discount_amount: Decimal | None = None
    notes: str | None = None
    items: tuple[NewOrderItem, ...] | None = None

    def __post_init__(self):
        for name in ("shipping_cost", "discount_amount"):
            value = getattr(self, name)
            if value is not None:
                amount = quantize_money(value)
                if amount < ZERO:
                    raise ValidationError(name, f"cannot be negative, got {value}")
                object.__setattr__(self, name, amount)
        if self.items is not None:
            items = tuple(self.items)
            if not items:
                raise ValidationError("items", "a proposed item list must not be empty")
            object.__setattr__(self, "items", items)


@dataclass(frozen=True)
class ProposeAmendmentInput:
    order_id: UUID
    reason: str
    fields: ProposedOrderFields

    def __post_init__(self):
        reason = (self.reason or "").strip()
        if not REASON_MIN_LENGTH <= len(reason) <= REASON_MAX_LENGTH:
            raise ValidationError(
                "reason",
                f"must be {REASON_MIN_LENGTH}-{REASON_MAX_LENGTH} characters",
            )
        object.__setattr__(self, "reason", reason)


@dataclass(frozen=True)
class SnapshotItem:
    material_id: UUID
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    description: str | None = None

    def to_new_item(self) -> NewOrderItem:
        return NewOrderItem(
            material_id=self.material_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            description=self.description,
        )


@dataclass(frozen=True)
class OrderSnapshot:
    """Complete proposed state of an order's amendable fields."""
    order_date: date
    branch_id: UUID | None
    payment_terms: PaymentTerms | None
    expected_delivery_date: date | None
    shipping_cost: Decimal
    discount_amount: Decimal
    notes: str | None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    items: tuple[SnapshotItem, ...] | None = None

    def order_fields(self) -> dict[str, Any]:
        """Column values to overwrite on the order (items handled separately)."""
        return {
            "order_date": self.order_date,
            "branch_id": self.branch_id,
            "payment_terms": self.payment_terms.value if self.payment_terms else None,
            "expected_delivery_date": self.expected_delivery_date,
            "shipping_cost": self.shipping_cost,
            "discount_amount": self.discount_amount,
            "notes": self.notes,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }

    def to_json(self) -> dict[str, Any]:
        def _d(value):
            return value.isoformat() if value is not None else None

        def _s(value):
            return str(value) if value is not None else None

        return {
            "orderDate": _d(self.order_date),
            "branchId": _s(self.branch_id),
            "paymentTerms": self.payment_terms.value if self.payment_terms else None,
            "expectedDeliveryDate": _d(self.expected_delivery_date),
            "shippingCost": str(self.shipping_cost),
            "discountAmount": str(self.discount_amount),
            "notes": self.notes,
            "subtotal": str(self.subtotal),
            "taxAmount": str(self.tax_amount),
            "totalAmount": str(self.total_amount),
            "items": None if self.items is None else [
                {
                    "materialId": str(item.material_id),
                    "quantity": str(item.quantity),
                    "unitPrice": str(item.unit_price),
                    "totalPrice": str(item.total_price),
                    "description": item.description,
                }
                for item in self.items
            ],
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "OrderSnapshot":
        def _date(value):
            return date.fromisoformat(value) if value else None

        def _uuid(value):
            return UUID(value) if value else None

        items = data.get("items")
        return cls(
            order_date=date.fromisoformat(data["orderDate"]),
            branch_id=_uuid(data.get("branchId")),
            payment_terms=PaymentTerms(data["paymentTerms"]) if data.get("paymentTerms") else None,
            expected_delivery_date=_date(data.get("expectedDeliveryDate")),
            shipping_cost=Decimal(data["shippingCost"]),
            discount_amount=Decimal(data["discountAmount"]),
            notes=data.get("notes"),
            subtotal=Decimal(data["subtotal"]),
            tax_amount=Decimal(data["taxAmount"]),
            total_amount=Decimal(data["totalAmount"]),
            items=None if items is None else tuple(
                SnapshotItem(
                    material_id=UUID(item["materialId"]),
                    quantity=Decimal(item["quantity"]),
                    unit_price=Decimal(item["unitPrice"]),
                    total_price=Decimal(item["totalPrice"]),
                    description=item.get("description"),
                )
                for item in items
            ),
        )


@dataclass(frozen=True)
class Amendment:
    id: UUID
    original_order_id: UUID
    amendment_number: int
    reason: str
    snapshot: OrderSnapshot
    previous_total: Decimal
    new_total: Decimal
    status: AmendmentStatus
    requested_by: UUID
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    resolution_notes: str | None = None
