"""
Amendment Module Service (``backoffice_modules.amendments.service``).

Responsibility
--------------
Propose, store and resolve changes to an already-issued purchase order.
A proposal never touches the order; approval overwrites the order from the
stored snapshot, rejection changes only the amendment row.

Invariants enforced
-------------------
* At most one ``pending`` amendment per order.  The check runs under the
  order row lock; a partial unique index backs it.
* ``amendment_number`` is 1-based and per order.
* An amendment resolves exactly once (``AMENDMENT_WORKFLOW``).
* Approval with an item list is a full replace of the order's items.
* Locks are always taken order first, amendment second.

Failure modes
-------------
* ``NotAmendableError`` -- order is ``draft`` or ``cancelled``.
* ``AmendmentPendingError`` -- the order already has a pending amendment.
* ``AlreadyProcessedError`` -- resolving an approved/rejected amendment.
* ``NotFoundError`` -- unknown order or amendment.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.config import TenantSettings
from backoffice_kernel.db.locking import lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.domain.ledger import compute_order_totals, order_total, quantize_money
from backoffice_kernel.domain.workflow import can_transition
from backoffice_kernel.exceptions import (
    AlreadyProcessedError,
    AmendmentPendingError,
    NotAmendableError,
    NotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_kernel.services.settings_service import SettingsService
from backoffice_modules._service_helpers import unit_of_work
from backoffice_modules.amendments.models import (
    Amendment,
    AmendmentDecision,
    AmendmentStatus,
    OrderSnapshot,
    ProposeAmendmentInput,
    SnapshotItem,
)
from backoffice_modules.amendments.orm import PurchaseOrderAmendmentModel
from backoffice_modules.amendments.workflows import (
    AMENDABLE_ORDER_EXCLUSIONS,
    AMENDMENT_WORKFLOW,
)
from backoffice_modules.purchasing.models import PaymentTerms
from backoffice_modules.purchasing.orm import PurchaseOrderModel
from backoffice_modules.purchasing.service import lock_order, overwrite_order

logger = get_logger("modules.amendments.service")

ENTITY = "PurchaseOrderAmendment"


def build_snapshot(order: PurchaseOrderModel, data: ProposeAmendmentInput, vat_rate) -> OrderSnapshot:
    """Merge proposed overrides onto the order's current values and recompute totals."""
    fields = data.fields

    def pick(name):
        value = getattr(fields, name)
        return getattr(order, name) if value is None else value

    shipping = quantize_money(pick("shipping_cost"))
    discount = quantize_money(pick("discount_amount"))
    if fields.items is not None:
        totals = compute_order_totals(
            [item.total_price for item in fields.items], vat_rate, shipping, discount
        )
        subtotal, tax, total = totals.subtotal, totals.tax_amount, totals.total_amount
        items = tuple(
            SnapshotItem(
                material_id=item.material_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                description=item.description,
            )
            for item in fields.items
        )
    else:
        subtotal = quantize_money(order.subtotal)
        tax = quantize_money(order.tax_amount)
        total = order_total(subtotal, tax, shipping, discount)
        items = None

    if fields.payment_terms is not None:
        terms = fields.payment_terms
    else:
        terms = PaymentTerms(order.payment_terms) if order.payment_terms else None

    return OrderSnapshot(
        order_date=pick("order_date"),
        branch_id=pick("branch_id"),
        payment_terms=terms,
        expected_delivery_date=pick("expected_delivery_date"),
        shipping_cost=shipping,
        discount_amount=discount,
        notes=pick("notes"),
        subtotal=subtotal,
        tax_amount=tax,
        total_amount=total,
        items=items,
    )


class AmendmentService:
    """Amendment proposal and resolution for purchase orders."""

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
        self._tax = SettingsService(session, self._settings)

    def get_amendment(self, amendment_id: UUID) -> Amendment:
        amendment = self._session.execute(
            select(PurchaseOrderAmendmentModel)
            .where(PurchaseOrderAmendmentModel.id == amendment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if amendment is None:
            raise NotFoundError(ENTITY, amendment_id)
        return amendment.to_dto()

    def list_amendments(self, order_id: UUID) -> list[Amendment]:
        rows = self._session.execute(
            select(PurchaseOrderAmendmentModel)
            .where(PurchaseOrderAmendmentModel.original_order_id == order_id)
            .order_by(PurchaseOrderAmendmentModel.amendment_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _pending_for(self, order_id: UUID) -> PurchaseOrderAmendmentModel | None:
        return self._session.execute(
            select(PurchaseOrderAmendmentModel).where(
                PurchaseOrderAmendmentModel.original_order_id == order_id,
                PurchaseOrderAmendmentModel.status == AmendmentStatus.PENDING.value,
            )
        ).scalar_one_or_none()

    def propose(self, ctx: ActorContext, data: ProposeAmendmentInput) -> Amendment:
        """Store a pending amendment with a full proposed snapshot of the order."""
        with unit_of_work(self._session, "amendments.propose", ctx, data.order_id):
            order = lock_order(self._session, data.order_id)
            reason = AMENDABLE_ORDER_EXCLUSIONS.get(order.status)
            if reason is not None:
                raise NotAmendableError(order.id, order.status, reason)

            pending = self._pending_for(order.id)
            if pending is not None:
                raise AmendmentPendingError(order.id, pending.id, pending.amendment_number)

            existing = self._session.execute(
                select(func.count()).select_from(PurchaseOrderAmendmentModel).where(
                    PurchaseOrderAmendmentModel.original_order_id == order.id
                )
            ).scalar_one()

            vat_rate = self._tax.vat_rate() if data.fields.items is not None else None
            snapshot = build_snapshot(order, data, vat_rate)
            amendment = PurchaseOrderAmendmentModel(
                original_order_id=order.id,
                amendment_number=existing + 1,
                reason=data.reason,
                changes_summary=snapshot.to_json(),
                previous_total=quantize_money(order.total_amount),
                new_total=snapshot.total_amount,
                status=AmendmentStatus.PENDING.value,
                created_by_id=ctx.user_id,
            )
            self._session.add(amendment)
            self._session.flush()

            logger.info("amendment_proposed", extra={
                "order_id": str(order.id),
                "amendment_id": str(amendment.id),
                "amendment_number": amendment.amendment_number,
                "previous_total": str(amendment.previous_total),
                "new_total": str(amendment.new_total),
                "replaces_items": snapshot.items is not None,
            })
            result = amendment.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_AMENDMENT_PROPOSED", ctx.user_id, {
            "order_id": str(result.original_order_id),
            "amendment_id": str(result.id),
            "amendment_number": result.amendment_number,
        })
        return result

    def resolve(
        self,
        ctx: ActorContext,
        amendment_id: UUID,
        decision: AmendmentDecision,
        notes: str | None = None,
    ) -> Amendment:
        """
        Approve or reject a pending amendment.

        Approval overwrites the order from the snapshot (items fully replaced
        when the snapshot carries them) and appends an annotation to the
        order's notes.  Rejection leaves the order untouched.
        """
        with unit_of_work(self._session, "amendments.resolve", ctx, amendment_id):
            order_id = self._session.execute(
                select(PurchaseOrderAmendmentModel.original_order_id).where(
                    PurchaseOrderAmendmentModel.id == amendment_id
                )
            ).scalar_one_or_none()
            if order_id is None:
                raise NotFoundError(ENTITY, amendment_id)

            order = lock_order(self._session, order_id)
            amendment = lock_row_or_raise(
                self._session, PurchaseOrderAmendmentModel, amendment_id, ENTITY
            )
            if not can_transition(AMENDMENT_WORKFLOW, amendment.status, decision.value):
                raise AlreadyProcessedError(ENTITY, amendment_id, amendment.status)

            if decision is AmendmentDecision.APPROVED:
                if order.status in AMENDABLE_ORDER_EXCLUSIONS:
                    raise NotAmendableError(
                        order.id, order.status, AMENDABLE_ORDER_EXCLUSIONS[order.status]
                    )
                snapshot = OrderSnapshot.from_json(amendment.changes_summary)
                fields = snapshot.order_fields()
                trail = f"[Amendment #{amendment.amendment_number} applied: {amendment.reason}]"
                fields["notes"] = f"{fields['notes'] or ''}\n{trail}".lstrip("\n")
                items = (
                    [item.to_new_item() for item in snapshot.items]
                    if snapshot.items is not None
                    else None
                )
                overwrite_order(self._session, order, fields, items, ctx.user_id)

            amendment.status = decision.value
            amendment.approved_by = ctx.user_id
            amendment.approved_at = self._clock.now()
            amendment.resolution_notes = notes
            amendment.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("amendment_resolved", extra={
                "order_id": str(order_id),
                "amendment_id": str(amendment_id),
                "decision": decision.value,
            })
            result = amendment.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_AMENDMENT_RESOLVED", ctx.user_id, {
            "order_id": str(result.original_order_id),
            "amendment_id": str(amendment_id),
            "decision": decision.value,
        })
        return result
