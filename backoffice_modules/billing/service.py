"""
Billing Module Service (``backoffice_modules.billing.service``).

Responsibility
--------------
Company bill and vendor bill lifecycle: creation (with number rules and
coverage exclusivity), company bill status, detail edits, deletion guards,
and a pass-through to payment reconciliation.

Invariants enforced
-------------------
* Company bill numbers always carry ``CB-``; vendor bill numbers are always
  generated as ``VB-<year>-<5 digits>`` (one more than the highest existing
  sequence for the year, compared numerically).
* One company bill per purchase order.
* A vendor bill covers company bills OR purchase orders, never both, and
  only of its own supplier.
* A purchase order is claimed by at most one vendor bill across both
  coverage kinds.  Claims are checked with every affected purchase order
  row locked (in id order) and are backed by a unique constraint.
* Invoices with payments cannot be deleted; covered company bills cannot
  be deleted; paid invoices cannot be edited.

Failure modes
-------------
* ``AlreadyLinkedError`` -- coverage conflict, or a second company bill for
  an order, or deleting a covered company bill.
* ``DuplicateInvoiceNumberError`` -- company bill number already used.
* ``WrongBillTypeError`` -- company-bill-only operation on a vendor bill, or
  a vendor bill listed as covered company bill.
* ``HasPaymentsError`` -- delete with ``paid_amount > 0``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.config import TenantSettings
from backoffice_kernel.db.locking import lock_row, lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.domain.ledger import (
    ZERO,
    PaymentStatus,
    derive_payment_status,
    quantize_money,
)
from backoffice_kernel.domain.workflow import can_transition
from backoffice_kernel.exceptions import (
    AlreadyLinkedError,
    AlreadyProcessedError,
    DuplicateInvoiceNumberError,
    HasPaymentsError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    WrongBillTypeError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_kernel.services.sequence_service import (
    SequenceService,
    format_document_number,
    parse_document_sequence,
)
from backoffice_modules._service_helpers import unit_of_work
from backoffice_modules.billing.coverage import claimed_purchase_orders, covering_vendor_bill
from backoffice_modules.billing.models import (
    VENDOR_BILL_SEQUENCE,
    BillStatus,
    BillType,
    CreateCompanyBillInput,
    CreateVendorBillInput,
    Invoice,
    UpdateInvoiceDetailsInput,
)
from backoffice_modules.billing.orm import PurchaseInvoiceModel, VendorBillCoverageModel
from backoffice_modules.billing.workflows import COMPANY_BILL_WORKFLOW
from backoffice_modules.payments.models import PaymentInput, PaymentResult
from backoffice_modules.payments.service import PaymentReconciliationService
from backoffice_modules.purchasing.service import lock_order

logger = get_logger("modules.billing.service")

ENTITY = "Invoice"


def derive_due_date(invoice_date: date, due_date: date | None, terms_days: int) -> date | None:
    """An explicit due date wins; otherwise invoice date + terms when terms > 0."""
    if due_date is not None:
        return due_date
    if terms_days > 0:
        return invoice_date + timedelta(days=terms_days)
    return None


class BillingService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: TenantSettings | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or TenantSettings.with_defaults()
        self._audit = audit_sink
        self._sequences = SequenceService(session)
        self._payments = PaymentReconciliationService(session, self._clock, audit_sink)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self._session.execute(
            select(PurchaseInvoiceModel)
            .where(PurchaseInvoiceModel.id == invoice_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(ENTITY, invoice_id)
        return invoice.to_dto()

    def list_invoices(
        self,
        bill_type: BillType | None = None,
        supplier_id: UUID | None = None,
        payment_status: PaymentStatus | None = None,
    ) -> list[Invoice]:
        query = select(PurchaseInvoiceModel).order_by(PurchaseInvoiceModel.invoice_number)
        if bill_type is not None:
            query = query.where(PurchaseInvoiceModel.bill_type == bill_type.value)
        if supplier_id is not None:
            query = query.where(PurchaseInvoiceModel.supplier_id == supplier_id)
        if payment_status is not None:
            query = query.where(PurchaseInvoiceModel.payment_status == payment_status.value)
        return [row.to_dto() for row in self._session.execute(query).scalars()]

    def covering_vendor_bill(self, company_bill_id: UUID) -> Invoice | None:
        vendor_bill = covering_vendor_bill(self._session, company_bill_id)
        return vendor_bill.to_dto() if vendor_bill is not None else None

    # =========================================================================
    # Company bills
    # =========================================================================

    def _ensure_number_free(self, number: str) -> None:
        taken = self._session.execute(
            select(PurchaseInvoiceModel.id).where(PurchaseInvoiceModel.invoice_number == number)
        ).first()
        if taken is not None:
            raise DuplicateInvoiceNumberError(number)

    def create_company_bill(self, ctx: ActorContext, data: CreateCompanyBillInput) -> Invoice:
        """Mirror one purchase order as a ``draft`` company bill."""
        with unit_of_work(self._session, "billing.create_company_bill", ctx, data.purchase_order_id):
            order = lock_order(self._session, data.purchase_order_id)
            existing = self._session.execute(
                select(PurchaseInvoiceModel).where(
                    PurchaseInvoiceModel.purchase_order_id == order.id,
                    PurchaseInvoiceModel.bill_type == BillType.COMPANY.value,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise AlreadyLinkedError(
                    "purchase_order", {str(order.id): existing.invoice_number}
                )
            self._ensure_number_free(data.invoice_number)

            amount = data.invoice_amount or quantize_money(order.total_amount)
            if amount <= ZERO:
                raise ValidationError("invoice_amount", "purchase order total is zero; give an amount")
            terms = (
                data.payment_terms_days
                if data.payment_terms_days is not None
                else self._settings.default_payment_terms_days
            )
            bill = PurchaseInvoiceModel(
                bill_type=BillType.COMPANY.value,
                invoice_number=data.invoice_number,
                supplier_id=order.supplier_id,
                purchase_order_id=order.id,
                branch_id=order.branch_id,
                project_id=order.project_id,
                invoice_date=data.invoice_date,
                due_date=derive_due_date(data.invoice_date, data.due_date, terms),
                payment_terms_days=terms,
                invoice_amount=amount,
                paid_amount=ZERO,
                payment_status=None,
                bill_status=BillStatus.DRAFT.value,
                notes=data.notes,
                created_by_id=ctx.user_id,
            )
            self._session.add(bill)
            self._session.flush()

            logger.info("billing_company_bill_created", extra={
                "invoice_id": str(bill.id),
                "invoice_number": bill.invoice_number,
                "purchase_order_id": str(order.id),
                "invoice_amount": str(amount),
            })
            result = bill.to_dto()

        emit_audit(self._audit, "COMPANY_BILL_CREATED", ctx.user_id, {
            "invoice_id": str(result.id),
            "invoice_number": result.invoice_number,
            "purchase_order_id": str(result.purchase_order_id),
        })
        return result

    def update_status(self, ctx: ActorContext, invoice_id: UUID, target: BillStatus) -> Invoice:
        """Company bills only: ``draft <-> sent``."""
        with unit_of_work(self._session, "billing.update_status", ctx, invoice_id):
            bill = lock_row_or_raise(self._session, PurchaseInvoiceModel, invoice_id, ENTITY)
            if bill.bill_type != BillType.COMPANY.value:
                raise WrongBillTypeError(invoice_id, bill.bill_type, "update_status")
            source = bill.bill_status
            if not can_transition(COMPANY_BILL_WORKFLOW, source, target.value):
                raise InvalidTransitionError("CompanyBill", invoice_id, source, target.value)

            bill.bill_status = target.value
            bill.updated_by_id = ctx.user_id
            self._session.flush()
            logger.info("billing_company_bill_status_changed", extra={
                "invoice_id": str(invoice_id),
                "from_status": source,
                "to_status": target.value,
            })
            result = bill.to_dto()

        emit_audit(self._audit, "COMPANY_BILL_STATUS_CHANGED", ctx.user_id, {
            "invoice_id": str(invoice_id),
            "from_status": source,
            "to_status": target.value,
        })
        return result

    # =========================================================================
    # Vendor bills
    # =========================================================================

    def _next_vendor_bill_number(self, year: int) -> str:
        # The counter row is the lock; the value comes from existing numbers.
        counter = self._sequences.lock_counter(f"{VENDOR_BILL_SEQUENCE}-{year}")
        numbers = self._session.execute(
            select(PurchaseInvoiceModel.invoice_number).where(
                PurchaseInvoiceModel.bill_type == BillType.VENDOR.value,
                PurchaseInvoiceModel.invoice_number.like(f"{VENDOR_BILL_SEQUENCE}-{year}-%"),
            )
        ).scalars()
        highest = max(
            (
                seq for seq in (
                    parse_document_sequence(n, VENDOR_BILL_SEQUENCE, year) for n in numbers
                )
                if seq is not None
            ),
            default=0,
        )
        counter.current_value = highest + 1
        self._session.flush()
        return format_document_number(VENDOR_BILL_SEQUENCE, year, highest + 1)

    def _load_company_bills(self, bill_ids: Sequence[UUID]) -> list[PurchaseInvoiceModel]:
        """Lock the covered company bills in id order, ahead of their orders."""
        rows = {
            bill_id: lock_row(self._session, PurchaseInvoiceModel, bill_id)
            for bill_id in sorted(set(bill_ids), key=str)
        }
        bills = []
        for bill_id in bill_ids:
            bill = rows.get(bill_id)
            if bill is None:
                raise NotFoundError("CompanyBill", bill_id)
            if bill.bill_type != BillType.COMPANY.value:
                raise WrongBillTypeError(bill_id, bill.bill_type, "vendor bill coverage")
            bills.append(bill)
        return bills

    def create_vendor_bill(self, ctx: ActorContext, data: CreateVendorBillInput) -> Invoice:
        """
        Create an ``unpaid`` vendor bill covering company bills or purchase orders.

        ``invoice_amount`` defaults to the sum of the covered amounts;
        branch and project come from the first covered source.
        """
        with unit_of_work(self._session, "billing.create_vendor_bill", ctx):
            if data.covers_bills:
                bills = self._load_company_bills(data.covers_company_bills)
                order_ids = [bill.purchase_order_id for bill in bills]
            else:
                bills = []
                order_ids = list(data.covers_purchase_orders)

            orders = {
                order_id: lock_order(self._session, order_id)
                for order_id in sorted(set(order_ids), key=str)
            }

            if data.covers_bills:
                sources = bills
                reference_type = "company_bill"
                ref_ids = [bill.id for bill in bills]
            else:
                sources = [orders[order_id] for order_id in order_ids]
                reference_type = "purchase_order"
                ref_ids = order_ids

            for ref_id, source in zip(ref_ids, sources):
                if source.supplier_id != data.supplier_id:
                    raise ValidationError(
                        "supplier_id",
                        f"{reference_type} {ref_id} belongs to supplier {source.supplier_id}",
                    )

            claimed = claimed_purchase_orders(self._session, order_ids)
            conflicts = {
                str(ref_id): claimed[order_id]
                for ref_id, order_id in zip(ref_ids, order_ids)
                if order_id in claimed
            }
            if conflicts:
                raise AlreadyLinkedError(reference_type, conflicts)

            if data.invoice_amount is not None:
                amount = data.invoice_amount
            elif data.covers_bills:
                amount = quantize_money(sum((b.invoice_amount for b in bills), Decimal(0)))
            else:
                amount = quantize_money(sum((o.total_amount for o in sources), Decimal(0)))
            if amount <= ZERO:
                raise ValidationError("invoice_amount", "covered amounts sum to zero; give an amount")

            terms = (
                data.payment_terms_days
                if data.payment_terms_days is not None
                else self._settings.default_payment_terms_days
            )
            first = sources[0]
            vendor_bill = PurchaseInvoiceModel(
                bill_type=BillType.VENDOR.value,
                invoice_number=self._next_vendor_bill_number(self._clock.today().year),
                supplier_id=data.supplier_id,
                purchase_order_id=None,
                branch_id=first.branch_id,
                project_id=first.project_id,
                invoice_date=data.invoice_date,
                due_date=derive_due_date(data.invoice_date, data.due_date, terms),
                payment_terms_days=terms,
                invoice_amount=amount,
                paid_amount=ZERO,
                payment_status=PaymentStatus.UNPAID.value,
                bill_status=None,
                notes=data.notes,
                created_by_id=ctx.user_id,
            )
            for position, (ref_id, order_id) in enumerate(zip(ref_ids, order_ids)):
                vendor_bill.coverage.append(
                    VendorBillCoverageModel(
                        company_bill_id=ref_id if data.covers_bills else None,
                        purchase_order_id=order_id,
                        position=position,
                        created_by_id=ctx.user_id,
                    )
                )
            self._session.add(vendor_bill)
            self._session.flush()

            logger.info("billing_vendor_bill_created", extra={
                "invoice_id": str(vendor_bill.id),
                "invoice_number": vendor_bill.invoice_number,
                "coverage_type": reference_type,
                "coverage_count": len(ref_ids),
                "invoice_amount": str(amount),
            })
            result = vendor_bill.to_dto()

        emit_audit(self._audit, "VENDOR_BILL_CREATED", ctx.user_id, {
            "invoice_id": str(result.id),
            "invoice_number": result.invoice_number,
            "covers": [str(ref) for ref in ref_ids],
        })
        return result

    # =========================================================================
    # Shared operations
    # =========================================================================

    def update_invoice_details(
        self, ctx: ActorContext, invoice_id: UUID, data: UpdateInvoiceDetailsInput
    ) -> Invoice:
        """Edit dates, terms and notes.  Refused once the invoice is paid."""
        with unit_of_work(self._session, "billing.update_invoice_details", ctx, invoice_id):
            invoice = lock_row_or_raise(self._session, PurchaseInvoiceModel, invoice_id, ENTITY)
            if invoice.payment_status == PaymentStatus.PAID.value:
                raise AlreadyProcessedError(ENTITY, invoice_id, PaymentStatus.PAID.value)

            changes = data.changed_fields()
            for name, value in changes.items():
                setattr(invoice, name, value)
            if "payment_terms_days" in changes and "due_date" not in changes:
                invoice.due_date = derive_due_date(
                    invoice.invoice_date, None, invoice.payment_terms_days
                )
            if invoice.bill_type == BillType.VENDOR.value:
                invoice.payment_status = derive_payment_status(
                    invoice.invoice_amount,
                    invoice.paid_amount,
                    invoice.due_date,
                    self._clock.today(),
                ).value
            invoice.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("billing_invoice_updated", extra={
                "invoice_id": str(invoice_id),
                "fields": sorted(changes),
            })
            result = invoice.to_dto()

        emit_audit(self._audit, "PURCHASE_INVOICE_UPDATED", ctx.user_id, {
            "invoice_id": str(invoice_id),
            "fields": sorted(changes),
        })
        return result

    def delete_invoice(self, ctx: ActorContext, invoice_id: UUID) -> None:
        """Delete an invoice without payments.  A vendor bill releases its coverage."""
        with unit_of_work(self._session, "billing.delete_invoice", ctx, invoice_id):
            invoice = lock_row_or_raise(self._session, PurchaseInvoiceModel, invoice_id, ENTITY)
            if quantize_money(invoice.paid_amount) > ZERO:
                raise HasPaymentsError(invoice_id, invoice.paid_amount)
            if invoice.bill_type == BillType.COMPANY.value:
                vendor_bill = covering_vendor_bill(self._session, invoice.id)
                if vendor_bill is not None:
                    raise AlreadyLinkedError(
                        "company_bill", {str(invoice.id): vendor_bill.invoice_number}
                    )
            number = invoice.invoice_number
            self._session.delete(invoice)
            self._session.flush()
            logger.info("billing_invoice_deleted", extra={
                "invoice_id": str(invoice_id),
                "invoice_number": number,
            })

        emit_audit(self._audit, "PURCHASE_INVOICE_DELETED", ctx.user_id, {
            "invoice_id": str(invoice_id),
            "invoice_number": number,
        })

    def record_payment(
        self, ctx: ActorContext, invoice_id: UUID, data: PaymentInput
    ) -> PaymentResult:
        return self._payments.record_payment(ctx, invoice_id, data)
