"""
Payment Reconciliation Service (``backoffice_modules.payments.service``).

Responsibility
--------------
Apply a payment to a vendor bill.  Within ONE ``unit_of_work``:

  1. lock the invoice row;
  2. refuse company bills (naming the covering vendor bill, if any);
  3. cap or reject the amount (``cap_payment``);
  4. update ``paid_amount`` and re-derive ``payment_status``;
  5. append a ``payment`` ledger record;
  6. for ``bank_transfer`` with an account: post a bank withdrawal.

Any failure in 3-6 rolls back every step, so an invoice is never updated
without its ledger line or its bank leg.

Invariants enforced
-------------------
* ``paid_amount <= invoice_amount`` (exact after the snap to invoice).
* Concurrent payments on one invoice serialize on the invoice row lock.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from backoffice_kernel.db.locking import lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.domain.ledger import apply_payment, cap_payment, derive_payment_status
from backoffice_kernel.exceptions import CompanyBillNotPayableError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_modules._service_helpers import append_note, unit_of_work
from backoffice_modules.billing.coverage import covering_vendor_bill
from backoffice_modules.billing.models import BillType
from backoffice_modules.billing.orm import PurchaseInvoiceModel
from backoffice_modules.cash.service import BankLedger
from backoffice_modules.ledger.models import ReferenceType, TransactionType
from backoffice_modules.ledger.service import TransactionLedger
from backoffice_modules.payments.models import PaymentInput, PaymentResult

logger = get_logger("modules.payments.service")


class PaymentReconciliationService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_sink
        self._ledger = TransactionLedger(session, self._clock)
        self._bank = BankLedger(session, self._clock)

    def record_payment(
        self, ctx: ActorContext, invoice_id: UUID, data: PaymentInput
    ) -> PaymentResult:
        with unit_of_work(self._session, "payments.record_payment", ctx, invoice_id):
            invoice = lock_row_or_raise(
                self._session, PurchaseInvoiceModel, invoice_id, "Invoice"
            )
            if invoice.bill_type == BillType.COMPANY.value:
                vendor_bill = covering_vendor_bill(self._session, invoice.id)
                raise CompanyBillNotPayableError(
                    invoice.id, vendor_bill.invoice_number if vendor_bill else None
                )

            capped = cap_payment(
                data.amount, invoice.invoice_amount, invoice.paid_amount, invoice.id
            )
            paid_before = invoice.paid_amount
            invoice.paid_amount = apply_payment(
                invoice.invoice_amount, invoice.paid_amount, capped.applied
            )
            invoice.payment_status = derive_payment_status(
                invoice.invoice_amount,
                invoice.paid_amount,
                invoice.due_date,
                self._clock.today(),
            ).value
            invoice.notes = append_note(invoice.notes, "Payment", data.notes)
            invoice.updated_by_id = ctx.user_id

            payment_date = data.payment_date or self._clock.today()
            description = f"Payment for invoice {invoice.invoice_number}"
            if data.reference:
                description += f" (Ref: {data.reference})"
            record = self._ledger.record(
                transaction_type=TransactionType.PAYMENT,
                reference_type=ReferenceType.PURCHASE_INVOICE,
                reference_id=invoice.id,
                amount=capped.applied,
                description=description,
                actor_id=ctx.user_id,
                transaction_date=payment_date,
                notes=data.notes,
            )

            bank_txn = None
            if data.posts_to_bank:
                bank_txn = self._bank.post_withdrawal(
                    bank_account_id=data.bank_account_id,
                    amount=capped.applied,
                    description=f"Vendor bill payment {invoice.invoice_number}",
                    actor_id=ctx.user_id,
                    reference_type=ReferenceType.PURCHASE_INVOICE.value,
                    reference_id=invoice.id,
                    category="vendor_payment",
                    transaction_date=payment_date,
                    notes=data.reference,
                )
            self._session.flush()

            logger.info("payment_recorded", extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "requested": str(capped.requested),
                "applied": str(capped.applied),
                "paid_before": str(paid_before),
                "paid_after": str(invoice.paid_amount),
                "payment_status": invoice.payment_status,
                "method": data.method.value,
                "bank_leg": bank_txn is not None,
            })
            result = PaymentResult(
                invoice=invoice.to_dto(),
                requested_amount=capped.requested,
                applied_amount=capped.applied,
                transaction_number=record.transaction_number,
                bank_transaction_id=bank_txn.id if bank_txn is not None else None,
            )

        emit_audit(self._audit, "PURCHASE_INVOICE_PAYMENT_RECORDED", ctx.user_id, {
            "invoice_id": str(invoice_id),
            "invoice_number": result.invoice.invoice_number,
            "payment_amount": str(result.applied_amount),
            "payment_method": data.method.value,
            "reference": data.reference,
            "new_paid_amount": str(result.invoice.paid_amount),
            "new_balance": str(result.invoice.balance_due),
            "payment_status": result.invoice.payment_status.value,
        })
        return result
