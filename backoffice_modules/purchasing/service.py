"""
Purchasing Module Service (``backoffice_modules.purchasing.service``).

Responsibility
--------------
The purchase order state machine: creation, draft edits, item appends with
total recomputation, generic status transitions, approval, receipt into
inventory, and ancillary order expenses / landed cost.

Invariants enforced
-------------------
* Every public method owns its transaction (``unit_of_work``): commit on
  success, rollback on any failure.
* Every status change is checked against ``PURCHASE_ORDER_WORKFLOW``.
* Item appends lock the order row, insert the item, and recompute
  ``subtotal`` from ALL current items in the same transaction, so two
  concurrent appends cannot lose each other's totals.
* ``total_amount == subtotal + tax_amount + shipping_cost - discount_amount``
  after every write.
* ``supplier_id`` is editable only while ``draft``; ``project_id`` is never
  editable after creation.

Failure modes
-------------
* ``NotFoundError`` -- unknown order.
* ``InvalidTransitionError`` -- target state not allowed from current state.
* ``OrderNotEditableError`` -- item append outside draft/pending, or a draft
  edit after the order left draft.
* ``ValidationError`` -- from the typed inputs, before any write.

Usage::

    service = PurchasingService(session, clock=clock)
    order = service.create_order(ctx, CreateOrderInput(
        supplier_id=supplier_id, order_date=date(2025, 3, 1),
        items=(NewOrderItem(material_id, Decimal("10"), Decimal("100")),),
    ))
    order = service.add_item(ctx, order.id, NewOrderItem(material_id, 5, 100))
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backoffice_kernel.config import TenantSettings
from backoffice_kernel.db.locking import lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.domain.ledger import (
    ZERO,
    compute_order_totals,
    line_total,
    order_total,
    quantize_money,
)
from backoffice_kernel.domain.workflow import can_transition
from backoffice_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OrderNotEditableError,
    ValidationError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_kernel.services.settings_service import SettingsService
from backoffice_modules._service_helpers import append_note, unit_of_work
from backoffice_modules.ledger.models import ReferenceType, TransactionType
from backoffice_modules.ledger.service import TransactionLedger
from backoffice_modules.purchasing.models import (
    ITEM_EDITABLE_STATUSES,
    CreateOrderInput,
    LandedCost,
    NewOrderItem,
    OrderExpense,
    OrderExpenseInput,
    OrderStatus,
    PurchaseOrder,
    ReceiptLine,
    ReceiptResult,
    UpdateDraftInput,
)
from backoffice_modules.purchasing.orm import (
    InventoryLotModel,
    PurchaseOrderExpenseModel,
    PurchaseOrderItemModel,
    PurchaseOrderModel,
)
from backoffice_modules.purchasing.workflows import (
    APPROVE_FROM,
    PURCHASE_ORDER_WORKFLOW,
    RECEIVE_FROM,
)

logger = get_logger("modules.purchasing.service")

ENTITY = "PurchaseOrder"


# =============================================================================
# Non-committing helpers (shared with the amendment workflow)
# =============================================================================


def lock_order(session: Session, order_id: UUID) -> PurchaseOrderModel:
    return lock_row_or_raise(session, PurchaseOrderModel, order_id, ENTITY)


def next_line_number(session: Session, order_id: UUID) -> int:
    current = session.execute(
        select(func.max(PurchaseOrderItemModel.line_number)).where(
            PurchaseOrderItemModel.purchase_order_id == order_id
        )
    ).scalar_one()
    return (current or 0) + 1


def replace_items(
    session: Session,
    order: PurchaseOrderModel,
    items: Sequence[NewOrderItem],
    actor_id: UUID,
) -> None:
    """Delete every current item and insert ``items`` (full replace, not a diff).

    Lots already received keep their material, quantity and cost; only their
    link to the deleted line is cleared.
    """
    session.execute(
        update(InventoryLotModel)
        .where(InventoryLotModel.purchase_order_id == order.id)
        .where(InventoryLotModel.purchase_order_item_id.is_not(None))
        .values(purchase_order_item_id=None)
        .execution_options(synchronize_session="fetch")
    )
    order.items.clear()
    session.flush()
    for number, item in enumerate(items, start=1):
        order.items.append(
            PurchaseOrderItemModel(
                line_number=number,
                material_id=item.material_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                created_by_id=actor_id,
            )
        )
    session.flush()


def overwrite_order(
    session: Session,
    order: PurchaseOrderModel,
    fields: dict[str, Any],
    items: Sequence[NewOrderItem] | None,
    actor_id: UUID,
) -> None:
    """Copy ``fields`` onto the order and, when ``items`` is given, replace its items.

    Caller holds the order row lock and owns the transaction.
    """
    for name, value in fields.items():
        setattr(order, name, value)
    if items is not None:
        replace_items(session, order, items, actor_id)
    order.updated_by_id = actor_id
    session.flush()


class PurchasingService:
    """
    Facade for the purchase order lifecycle.

    Contract
    --------
    * Every method takes an ``ActorContext`` and returns a frozen
      ``PurchaseOrder`` DTO (or a receipt/expense DTO).
    * Failures raise typed ``BackofficeError`` subclasses; the session is
      rolled back before the exception leaves the method.
    * Audit records are emitted after commit.
    """

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
        self._tax = SettingsService(session, self._settings)
        self._ledger = TransactionLedger(session, self._clock)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: UUID) -> PurchaseOrder:
        order = self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError(ENTITY, order_id)
        return order.to_dto()

    # =========================================================================
    # Creation and draft edits
    # =========================================================================

    def create_order(self, ctx: ActorContext, data: CreateOrderInput) -> PurchaseOrder:
        """Create a ``draft`` order with a generated number and optional items."""
        with unit_of_work(self._session, "purchasing.create_order", ctx):
            number = self._sequences.next_document_number(
                self._settings.order_number_prefix, self._clock.today().year
            )
            totals = compute_order_totals(
                [item.total_price for item in data.items],
                self._tax.vat_rate() if data.items else ZERO,
                data.shipping_cost,
                data.discount_amount,
            )
            order = PurchaseOrderModel(
                order_number=number,
                supplier_id=data.supplier_id,
                project_id=data.project_id,
                branch_id=data.branch_id,
                status=OrderStatus.DRAFT.value,
                payment_status="unpaid",
                payment_terms=data.payment_terms.value if data.payment_terms else None,
                order_date=data.order_date,
                expected_delivery_date=data.expected_delivery_date,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                shipping_cost=totals.shipping_cost,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                notes=data.notes,
                created_by_id=ctx.user_id,
            )
            self._session.add(order)
            self._session.flush()
            if data.items:
                replace_items(self._session, order, data.items, ctx.user_id)

            logger.info("purchasing_order_created", extra={
                "order_id": str(order.id),
                "order_number": number,
                "item_count": len(data.items),
                "total_amount": str(order.total_amount),
            })
            result = order.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_CREATED", ctx.user_id, {
            "order_id": str(result.id),
            "order_number": result.order_number,
            "total_amount": str(result.total_amount),
        })
        return result

    def update_draft_order(
        self, ctx: ActorContext, order_id: UUID, data: UpdateDraftInput
    ) -> PurchaseOrder:
        """Edit a ``draft`` order directly.  Issued orders go through amendments."""
        with unit_of_work(self._session, "purchasing.update_draft", ctx, order_id):
            order = lock_order(self._session, order_id)
            if order.status != OrderStatus.DRAFT.value:
                raise OrderNotEditableError(order_id, order.status, "edit order fields")

            changes = data.changed_fields()
            if "payment_terms" in changes:
                changes["payment_terms"] = changes["payment_terms"].value
            for name, value in changes.items():
                setattr(order, name, value)
            if order.expected_delivery_date and order.expected_delivery_date < order.order_date:
                raise ValidationError("expected_delivery_date", "cannot be before order_date")

            order.total_amount = order_total(
                order.subtotal, order.tax_amount, order.shipping_cost, order.discount_amount
            )
            order.updated_by_id = ctx.user_id
            self._session.flush()
            logger.info("purchasing_draft_updated", extra={
                "order_id": str(order_id),
                "fields": sorted(changes),
            })
            result = order.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_UPDATED", ctx.user_id, {
            "order_id": str(order_id),
            "fields": sorted(changes),
        })
        return result

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(self, ctx: ActorContext, order_id: UUID, item: NewOrderItem) -> PurchaseOrder:
        """Append an item and recompute subtotal, tax and total atomically."""
        with unit_of_work(self._session, "purchasing.add_item", ctx, order_id):
            order = lock_order(self._session, order_id)
            if OrderStatus(order.status) not in ITEM_EDITABLE_STATUSES:
                raise OrderNotEditableError(order_id, order.status, "add items")

            self._session.add(
                PurchaseOrderItemModel(
                    purchase_order_id=order.id,
                    line_number=next_line_number(self._session, order.id),
                    material_id=item.material_id,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    created_by_id=ctx.user_id,
                )
            )
            self._session.flush()

            # Re-read every line under the order lock, including the new one
            line_totals = self._session.execute(
                select(PurchaseOrderItemModel.total_price).where(
                    PurchaseOrderItemModel.purchase_order_id == order.id
                )
            ).scalars().all()
            totals = compute_order_totals(
                line_totals,
                self._tax.vat_rate(),
                order.shipping_cost,
                order.discount_amount,
            )
            order.subtotal = totals.subtotal
            order.tax_amount = totals.tax_amount
            order.total_amount = totals.total_amount
            order.updated_by_id = ctx.user_id
            self._session.flush()
            self._session.refresh(order, attribute_names=["items"])

            logger.info("purchasing_item_added", extra={
                "order_id": str(order_id),
                "item_total": str(item.total_price),
                "subtotal": str(totals.subtotal),
                "tax_amount": str(totals.tax_amount),
                "total_amount": str(totals.total_amount),
            })
            result = order.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_ITEM_ADDED", ctx.user_id, {
            "order_id": str(order_id),
            "material_id": str(item.material_id),
            "total_amount": str(result.total_amount),
        })
        return result

    # =========================================================================
    # Status transitions
    # =========================================================================

    def _stamp(self, order: PurchaseOrderModel, target: OrderStatus, actor_id: UUID) -> None:
        now = self._clock.now()
        if target is OrderStatus.APPROVED:
            order.approved_by = actor_id
            order.approved_at = now
        elif target is OrderStatus.SENT:
            order.sent_by = actor_id
            order.sent_at = now
        elif target is OrderStatus.CANCELLED:
            order.cancelled_by = actor_id
            order.cancelled_at = now

    def transition_status(
        self,
        ctx: ActorContext,
        order_id: UUID,
        target: OrderStatus,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Move the order to ``target`` if the transition table allows it."""
        with unit_of_work(self._session, "purchasing.transition_status", ctx, order_id):
            order = lock_order(self._session, order_id)
            source = order.status
            if not can_transition(PURCHASE_ORDER_WORKFLOW, source, target.value):
                raise InvalidTransitionError(ENTITY, order_id, source, target.value)

            order.status = target.value
            self._stamp(order, target, ctx.user_id)
            order.notes = append_note(order.notes, "Status Update", notes)
            order.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("purchasing_status_changed", extra={
                "order_id": str(order_id),
                "from_status": source,
                "to_status": target.value,
            })
            result = order.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_STATUS_CHANGED", ctx.user_id, {
            "order_id": str(order_id),
            "from_status": source,
            "to_status": target.value,
        })
        return result

    def approve(self, ctx: ActorContext, order_id: UUID, notes: str | None = None) -> PurchaseOrder:
        """Approve a ``draft`` order, stamping approver and time."""
        with unit_of_work(self._session, "purchasing.approve", ctx, order_id):
            order = lock_order(self._session, order_id)
            target = OrderStatus.APPROVED.value
            if order.status != APPROVE_FROM or not can_transition(
                PURCHASE_ORDER_WORKFLOW, order.status, target
            ):
                raise InvalidTransitionError(ENTITY, order_id, order.status, target)

            order.status = target
            self._stamp(order, OrderStatus.APPROVED, ctx.user_id)
            order.notes = append_note(order.notes, "Approval", notes)
            order.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("purchasing_order_approved", extra={
                "order_id": str(order_id),
                "total_amount": str(order.total_amount),
            })
            result = order.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_APPROVED", ctx.user_id, {
            "order_id": str(order_id),
            "order_number": result.order_number,
        })
        return result

    # =========================================================================
    # Receipt
    # =========================================================================

    def receive(
        self,
        ctx: ActorContext,
        order_id: UUID,
        lines: Sequence[ReceiptLine],
        notes: str | None = None,
    ) -> ReceiptResult:
        """
        Receive goods on an ``approved`` order.

        Each line naming an item of this order creates an inventory lot (unit
        cost = the item's unit price) and a ``purchase`` ledger record.  Lines
        naming unknown items are skipped.  Partial receipts are allowed.
        """
        if not lines:
            raise ValidationError("lines", "at least one received line is required")

        with unit_of_work(self._session, "purchasing.receive", ctx, order_id):
            order = lock_order(self._session, order_id)
            target = OrderStatus.RECEIVED.value
            if order.status != RECEIVE_FROM:
                raise InvalidTransitionError(ENTITY, order_id, order.status, target)

            items_by_id = {item.id: item for item in order.items}
            now = self._clock.now()
            lots: list[InventoryLotModel] = []
            skipped: list[UUID] = []

            for line in lines:
                item = items_by_id.get(line.item_id)
                if item is None:
                    skipped.append(line.item_id)
                    logger.warning("purchasing_receipt_line_skipped", extra={
                        "order_id": str(order_id),
                        "item_id": str(line.item_id),
                    })
                    continue

                lot = InventoryLotModel(
                    purchase_order_id=order.id,
                    purchase_order_item_id=item.id,
                    material_id=item.material_id,
                    batch_number=line.batch_number
                    or f"{order.order_number}-{item.line_number}-{now:%Y%m%d%H%M%S}",
                    quantity=line.received_quantity,
                    unit_cost=item.unit_price,
                    location=line.location or self._settings.default_inventory_location,
                    condition=line.condition.value,
                    expiry_date=line.expiry_date,
                    notes=f"Received from PO {order.order_number}",
                    created_by_id=ctx.user_id,
                )
                self._session.add(lot)
                lots.append(lot)

                self._ledger.record(
                    transaction_type=TransactionType.PURCHASE,
                    reference_type=ReferenceType.PURCHASE_ORDER,
                    reference_id=order.id,
                    amount=line_total(line.received_quantity, item.unit_price),
                    description=f"Purchase received - Order {order.order_number}",
                    actor_id=ctx.user_id,
                    material_id=item.material_id,
                    quantity=line.received_quantity,
                    unit_price=item.unit_price,
                )

            order.status = target
            order.notes = append_note(order.notes, "Received", notes)
            order.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("purchasing_order_received", extra={
                "order_id": str(order_id),
                "lots_created": len(lots),
                "lines_skipped": len(skipped),
            })
            result = ReceiptResult(
                order=order.to_dto(),
                lots=tuple(lot.to_dto() for lot in lots),
                skipped_item_ids=tuple(skipped),
            )

        emit_audit(self._audit, "PURCHASE_ORDER_RECEIVED", ctx.user_id, {
            "order_id": str(order_id),
            "items_received": len(result.lots),
        })
        return result

    # =========================================================================
    # Ancillary expenses / landed cost
    # =========================================================================

    def add_order_expense(
        self, ctx: ActorContext, order_id: UUID, data: OrderExpenseInput
    ) -> OrderExpense:
        with unit_of_work(self._session, "purchasing.add_order_expense", ctx, order_id):
            order = self._session.get(PurchaseOrderModel, order_id)
            if order is None:
                raise NotFoundError(ENTITY, order_id)
            expense = PurchaseOrderExpenseModel(
                purchase_order_id=order.id,
                category=data.category,
                description=data.description,
                amount=data.amount,
                expense_date=data.expense_date,
                reference=data.reference,
                created_by_id=ctx.user_id,
            )
            self._session.add(expense)
            self._session.flush()
            logger.info("purchasing_order_expense_added", extra={
                "order_id": str(order_id),
                "category": data.category,
                "amount": str(data.amount),
            })
            result = expense.to_dto()

        emit_audit(self._audit, "PURCHASE_ORDER_EXPENSE_ADDED", ctx.user_id, {
            "order_id": str(order_id),
            "expense_id": str(result.id),
            "amount": str(result.amount),
        })
        return result

    def landed_cost(self, order_id: UUID) -> LandedCost:
        """Order total plus every ancillary expense, with a per-category breakdown."""
        order = self._session.get(PurchaseOrderModel, order_id)
        if order is None:
            raise NotFoundError(ENTITY, order_id)
        expenses = self._session.execute(
            select(PurchaseOrderExpenseModel).where(
                PurchaseOrderExpenseModel.purchase_order_id == order_id
            )
        ).scalars().all()

        by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for expense in expenses:
            by_category[expense.category] = quantize_money(
                by_category[expense.category] + expense.amount
            )
        expense_total = quantize_money(sum((e.amount for e in expenses), ZERO))
        order_amount = quantize_money(order.total_amount)
        return LandedCost(
            purchase_order_id=order.id,
            order_total=order_amount,
            expense_total=expense_total,
            landed_cost=quantize_money(order_amount + expense_total),
            by_category=dict(by_category),
            expense_count=len(expenses),
        )
