"""
SQLAlchemy ORM persistence for company and vendor bills.

Invariants enforced
-------------------
* ``invoice_number`` is unique across both bill kinds.
* Every coverage row carries the purchase order it claims, including rows
  that cover a company bill (the bill's own order).  ``purchase_order_id``
  is unique on ``vendor_bill_coverage``, so a purchase order is claimed by
  at most one vendor bill across both coverage kinds.
* ``company_bill_id`` is unique on ``vendor_bill_coverage``.
* Deleting a vendor bill deletes its coverage rows (releasing the claims).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase


class PurchaseInvoiceModel(TrackedBase):
    """A company bill or a vendor bill, distinguished by ``bill_type``."""

    __tablename__ = "purchase_invoices"

    __table_args__ = (
        Index("idx_invoice_supplier", "supplier_id"),
        Index("idx_invoice_po", "purchase_order_id"),
        Index("idx_invoice_type", "bill_type"),
    )

    bill_type: Mapped[str] = mapped_column(String(20), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    supplier_id: Mapped[UUID]
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )
    branch_id: Mapped[UUID | None]
    project_id: Mapped[UUID | None]
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_terms_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice_amount: Mapped[Decimal]
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bill_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    coverage: Mapped[list["VendorBillCoverageModel"]] = relationship(
        "VendorBillCoverageModel",
        foreign_keys="VendorBillCoverageModel.vendor_bill_id",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VendorBillCoverageModel.position",
    )

    def to_dto(self):
        from backoffice_kernel.domain.ledger import PaymentStatus
        from backoffice_modules.billing.models import BillStatus, BillType, Invoice

        return Invoice(
            id=self.id,
            bill_type=BillType(self.bill_type),
            invoice_number=self.invoice_number,
            supplier_id=self.supplier_id,
            invoice_date=self.invoice_date,
            invoice_amount=self.invoice_amount,
            paid_amount=self.paid_amount,
            purchase_order_id=self.purchase_order_id,
            branch_id=self.branch_id,
            project_id=self.project_id,
            due_date=self.due_date,
            payment_terms_days=self.payment_terms_days,
            payment_status=PaymentStatus(self.payment_status) if self.payment_status else None,
            bill_status=BillStatus(self.bill_status) if self.bill_status else None,
            notes=self.notes,
            covers_company_bills=tuple(
                row.company_bill_id for row in self.coverage if row.company_bill_id is not None
            ),
            covers_purchase_orders=tuple(
                row.purchase_order_id for row in self.coverage if row.company_bill_id is None
            ),
        )

    def __repr__(self) -> str:
        return f"<PurchaseInvoiceModel {self.invoice_number} [{self.bill_type}]>"


class VendorBillCoverageModel(TrackedBase):
    """One purchase order (optionally via its company bill) claimed by a vendor bill."""

    __tablename__ = "vendor_bill_coverage"

    vendor_bill_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_invoices.id"), nullable=False, index=True,
    )
    company_bill_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_invoices.id"), nullable=True, unique=True,
    )
    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False, unique=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<VendorBillCoverageModel vb={self.vendor_bill_id} po={self.purchase_order_id}>"
