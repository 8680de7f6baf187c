"""
SQLAlchemy ORM persistence models for the Purchasing module.

Responsibility
--------------
Database-backed persistence for purchase orders, their items, inventory
lots created on receipt, and ancillary order expenses.

Invariants enforced
-------------------
* All monetary fields are ``Decimal`` (Numeric(18,3)) -- NEVER float.
* Statuses are stored as String(20) for readability and portability.
* Supplier, material, project and branch are external master data and are
  referenced by UUID with NO foreign key.
* ``PurchaseOrderItemModel`` belongs to exactly one ``PurchaseOrderModel``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order.  Aggregate root: item appends, amendments and receipts
    lock this row before reading or writing anything beneath it.

    Guarantees:
        - ``order_number`` is unique.
        - total_amount == subtotal + tax_amount + shipping_cost - discount_amount
          after every write performed by ``PurchasingService``.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_status", "status"),
        Index("idx_po_project", "project_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    supplier_id: Mapped[UUID]
    project_id: Mapped[UUID | None]
    branch_id: Mapped[UUID | None]
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")
    payment_terms: Mapped[str | None] = mapped_column(String(20), nullable=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    shipping_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    approved_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_by: Mapped[UUID | None]
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[UUID | None]
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        "PurchaseOrderItemModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderItemModel.line_number",
    )

    def to_dto(self):
        from backoffice_modules.purchasing.models import (
            OrderStatus,
            PaymentTerms,
            PurchaseOrder,
        )

        return PurchaseOrder(
            id=self.id,
            order_number=self.order_number,
            supplier_id=self.supplier_id,
            status=OrderStatus(self.status),
            order_date=self.order_date,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            shipping_cost=self.shipping_cost,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            project_id=self.project_id,
            branch_id=self.branch_id,
            payment_terms=PaymentTerms(self.payment_terms) if self.payment_terms else None,
            payment_status=self.payment_status,
            expected_delivery_date=self.expected_delivery_date,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            sent_at=self.sent_at,
            sent_by=self.sent_by,
            cancelled_at=self.cancelled_at,
            cancelled_by=self.cancelled_by,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# PurchaseOrderItemModel
# ---------------------------------------------------------------------------


class PurchaseOrderItemModel(TrackedBase):
    """A line on a purchase order.  total_price == quantity x unit_price."""

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        Index("idx_po_item_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int]
    material_id: Mapped[UUID]
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[Decimal]
    unit_price: Mapped[Decimal]
    total_price: Mapped[Decimal]

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="items",
    )

    def to_dto(self):
        from backoffice_modules.purchasing.models import PurchaseOrderItem

        return PurchaseOrderItem(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            material_id=self.material_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderItemModel #{self.line_number} {self.quantity} x {self.unit_price}>"


# ---------------------------------------------------------------------------
# InventoryLotModel
# ---------------------------------------------------------------------------


class InventoryLotModel(TrackedBase):
    """Stock received against a purchase order line."""

    __tablename__ = "inventory_lots"

    __table_args__ = (
        Index("idx_lot_material", "material_id"),
        Index("idx_lot_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    # Cleared when an approved amendment replaces the order's lines
    purchase_order_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_order_items.id", ondelete="SET NULL"), nullable=True,
    )
    material_id: Mapped[UUID]
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal]
    unit_cost: Mapped[Decimal]
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.purchasing.models import InventoryLot, ItemCondition

        return InventoryLot(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            purchase_order_item_id=self.purchase_order_item_id,
            material_id=self.material_id,
            batch_number=self.batch_number,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            location=self.location,
            condition=ItemCondition(self.condition),
            expiry_date=self.expiry_date,
        )

    def __repr__(self) -> str:
        return f"<InventoryLotModel {self.batch_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# PurchaseOrderExpenseModel
# ---------------------------------------------------------------------------


class PurchaseOrderExpenseModel(TrackedBase):
    """Ancillary cost (freight, customs, ...) attached to a purchase order."""

    __tablename__ = "purchase_order_expenses"

    __table_args__ = (
        Index("idx_po_expense_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal]
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self):
        from backoffice_modules.purchasing.models import OrderExpense

        return OrderExpense(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            category=self.category,
            description=self.description,
            amount=self.amount,
            expense_date=self.expense_date,
            reference=self.reference,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderExpenseModel {self.category} {self.amount}>"
