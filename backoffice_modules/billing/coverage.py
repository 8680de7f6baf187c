"""
Coverage queries shared by billing and payment reconciliation.

Read-only helpers; callers hold whatever locks their operation needs.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from backoffice_modules.billing.orm import PurchaseInvoiceModel, VendorBillCoverageModel


def covering_vendor_bill(session: Session, company_bill_id: UUID) -> PurchaseInvoiceModel | None:
    """The vendor bill that claims ``company_bill_id``.

    A bill is claimed either by name or through its purchase order, when a
    vendor bill covers that order directly.
    """
    order_id = (
        select(PurchaseInvoiceModel.purchase_order_id)
        .where(PurchaseInvoiceModel.id == company_bill_id)
        .scalar_subquery()
    )
    return session.execute(
        select(PurchaseInvoiceModel)
        .join(
            VendorBillCoverageModel,
            VendorBillCoverageModel.vendor_bill_id == PurchaseInvoiceModel.id,
        )
        .where(
            or_(
                VendorBillCoverageModel.company_bill_id == company_bill_id,
                VendorBillCoverageModel.purchase_order_id == order_id,
            )
        )
    ).scalars().first()


def claimed_purchase_orders(session: Session, order_ids: Iterable[UUID]) -> dict[UUID, str]:
    """Map each already-claimed purchase order to the claiming vendor bill's number.

    Covers both coverage kinds: a row covering a company bill carries that
    bill's purchase order.
    """
    ids = list(order_ids)
    if not ids:
        return {}
    vendor_bill = aliased(PurchaseInvoiceModel)
    rows = session.execute(
        select(VendorBillCoverageModel.purchase_order_id, vendor_bill.invoice_number)
        .join(vendor_bill, vendor_bill.id == VendorBillCoverageModel.vendor_bill_id)
        .where(VendorBillCoverageModel.purchase_order_id.in_(ids))
    ).all()
    return {order_id: number for order_id, number in rows}
