"""
Petty Cash Module Service (``backoffice_modules.petty_cash.service``).

Responsibility
--------------
Card lifecycle (create, reassign, status), balance movements (manual
adjustments, reloads with an optional bank leg) and the expense workflow
(submit, resolve, delete).

Invariants enforced
-------------------
* One active card per assignee: checked on create, reassign and
  reactivation; backed by a partial unique index.
* ``current_balance`` changes only through ``adjust_balance``,
  ``reload_card`` and expense approval, each with a history row carrying
  the balance before and after.
* Expense approval is the only transition that debits the card; it updates
  the expense, the card, the ledger and the card history in one unit.
* Monthly limits count APPROVED expenses of the current calendar month
  only; pending expenses never count.
* Card-scoped operations lock the card row before reading balances or
  summing spend.  ``resolve_expense`` locks card first, expense second.

Failure modes
-------------
* ``CardNotActiveError`` -- card suspended/expired/closed.
* ``InsufficientBalanceError`` -- exact comparison, no tolerance.
* ``MonthlyLimitExceededError`` -- approved month spend + amount > limit.
* ``UnauthorizedActorError`` -- neither assignee/submitter nor MANAGE_EXPENSES.
* ``AlreadyProcessedError`` -- resolving/deleting a resolved expense.
* ``DuplicateActiveCardError`` -- assignee already holds an active card.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.config import TenantSettings
from backoffice_kernel.db.locking import lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import MANAGE_EXPENSES, ActorContext
from backoffice_kernel.domain.ledger import ZERO, quantize_money
from backoffice_kernel.domain.workflow import can_transition
from backoffice_kernel.exceptions import (
    AlreadyProcessedError,
    CardNotActiveError,
    DuplicateActiveCardError,
    InsufficientBalanceError,
    InvalidTransitionError,
    MonthlyLimitExceededError,
    NotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_modules._service_helpers import append_note, unit_of_work
from backoffice_modules.cash.service import BankLedger
from backoffice_modules.ledger.models import ReferenceType, TransactionType
from backoffice_modules.ledger.service import TransactionLedger
from backoffice_modules.petty_cash.config import PettyCashConfig
from backoffice_modules.petty_cash.models import (
    BalanceAdjustmentInput,
    BalanceDirection,
    CardStatus,
    CardTransactionType,
    CreateCardInput,
    ExpenseDecision,
    ExpenseStatus,
    PettyCashCard,
    PettyCashExpense,
    PettyCashTransaction,
    ReloadInput,
    SubmitExpenseInput,
)
from backoffice_modules.petty_cash.orm import (
    PettyCashCardModel,
    PettyCashExpenseModel,
    PettyCashTransactionModel,
)
from backoffice_modules.petty_cash.workflows import CARD_WORKFLOW, EXPENSE_WORKFLOW

logger = get_logger("modules.petty_cash.service")

CARD = "PettyCashCard"
EXPENSE = "PettyCashExpense"


def month_bounds(day: date) -> tuple[date, date]:
    """[first day of day's month, first day of the next month)."""
    start = day.replace(day=1)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


class PettyCashService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: TenantSettings | None = None,
        config: PettyCashConfig | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or TenantSettings.with_defaults()
        self._config = config or PettyCashConfig.with_defaults()
        self._audit = audit_sink
        self._sequences = SequenceService(session)
        self._ledger = TransactionLedger(session, self._clock)
        self._bank = BankLedger(session, self._clock)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_card(self, card_id: UUID) -> PettyCashCard:
        card = self._session.execute(
            select(PettyCashCardModel)
            .where(PettyCashCardModel.id == card_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if card is None:
            raise NotFoundError(CARD, card_id)
        return card.to_dto()

    def get_expense(self, expense_id: UUID) -> PettyCashExpense:
        expense = self._session.execute(
            select(PettyCashExpenseModel)
            .where(PettyCashExpenseModel.id == expense_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if expense is None:
            raise NotFoundError(EXPENSE, expense_id)
        return expense.to_dto()

    def list_expenses(
        self, card_id: UUID, status: ExpenseStatus | None = None
    ) -> list[PettyCashExpense]:
        query = (
            select(PettyCashExpenseModel)
            .where(PettyCashExpenseModel.card_id == card_id)
            .order_by(PettyCashExpenseModel.expense_number)
        )
        if status is not None:
            query = query.where(PettyCashExpenseModel.status == status.value)
        return [row.to_dto() for row in self._session.execute(query).scalars()]

    def card_history(self, card_id: UUID) -> list[PettyCashTransaction]:
        rows = self._session.execute(
            select(PettyCashTransactionModel)
            .where(PettyCashTransactionModel.card_id == card_id)
            .order_by(PettyCashTransactionModel.created_at, PettyCashTransactionModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def approved_spend_this_month(self, card_id: UUID) -> Decimal:
        return self._approved_spend(card_id, self._clock.today())

    # =========================================================================
    # Internals (caller holds the card lock)
    # =========================================================================

    def _lock_card(self, card_id: UUID) -> PettyCashCardModel:
        return lock_row_or_raise(self._session, PettyCashCardModel, card_id, CARD)

    def _require_active(self, card: PettyCashCardModel) -> None:
        if card.status != CardStatus.ACTIVE.value:
            raise CardNotActiveError(card.id, card.status)

    def _ensure_no_other_active_card(self, assigned_to: UUID, card_id: UUID | None) -> None:
        query = select(PettyCashCardModel).where(
            PettyCashCardModel.assigned_to == assigned_to,
            PettyCashCardModel.status == CardStatus.ACTIVE.value,
        )
        if card_id is not None:
            query = query.where(PettyCashCardModel.id != card_id)
        existing = self._session.execute(query).scalars().first()
        if existing is not None:
            raise DuplicateActiveCardError(assigned_to, existing.card_number)

    def _approved_spend(self, card_id: UUID, today: date) -> Decimal:
        start, end = month_bounds(today)
        total = self._session.execute(
            select(func.coalesce(func.sum(PettyCashExpenseModel.amount), 0)).where(
                PettyCashExpenseModel.card_id == card_id,
                PettyCashExpenseModel.status == ExpenseStatus.APPROVED.value,
                PettyCashExpenseModel.expense_date >= start,
                PettyCashExpenseModel.expense_date < end,
            )
        ).scalar_one()
        return quantize_money(total)

    def _move_balance(
        self,
        card: PettyCashCardModel,
        delta: Decimal,
        transaction_type: CardTransactionType,
        description: str,
        actor_id: UUID,
        transaction_date: date | None = None,
        expense_id: UUID | None = None,
    ) -> PettyCashTransactionModel:
        before = quantize_money(card.current_balance)
        after = quantize_money(before + delta)
        card.current_balance = after
        card.updated_by_id = actor_id
        history = PettyCashTransactionModel(
            card_id=card.id,
            expense_id=expense_id,
            transaction_type=transaction_type.value,
            amount=abs(delta),
            balance_before=before,
            balance_after=after,
            transaction_date=transaction_date or self._clock.today(),
            description=description,
            created_by_id=actor_id,
        )
        self._session.add(history)
        self._session.flush()
        return history

    # =========================================================================
    # Cards
    # =========================================================================

    def create_card(self, ctx: ActorContext, data: CreateCardInput) -> PettyCashCard:
        with unit_of_work(self._session, "petty_cash.create_card", ctx):
            self._ensure_no_other_active_card(data.assigned_to, None)
            number = self._sequences.next_document_number(
                self._settings.card_number_prefix, self._clock.today().year
            )
            limit = (
                data.monthly_limit
                if data.monthly_limit is not None
                else self._config.default_monthly_limit
            )
            card = PettyCashCardModel(
                card_number=number,
                assigned_to=data.assigned_to,
                staff_name=data.staff_name.strip(),
                department=data.department,
                initial_balance=data.initial_balance,
                current_balance=ZERO,
                total_spent=ZERO,
                monthly_limit=limit,
                issue_date=data.issue_date,
                expiry_date=data.expiry_date,
                status=CardStatus.ACTIVE.value,
                notes=data.notes,
                created_by_id=ctx.user_id,
            )
            self._session.add(card)
            self._session.flush()
            if data.initial_balance > ZERO:
                self._move_balance(
                    card,
                    data.initial_balance,
                    CardTransactionType.OPENING,
                    f"Opening balance - Card {number}",
                    ctx.user_id,
                    transaction_date=data.issue_date,
                )

            logger.info("petty_cash_card_created", extra={
                "card_id": str(card.id),
                "card_number": number,
                "assigned_to": str(data.assigned_to),
                "initial_balance": str(data.initial_balance),
            })
            result = card.to_dto()

        emit_audit(self._audit, "PETTY_CASH_CARD_CREATED", ctx.user_id, {
            "card_id": str(result.id),
            "card_number": result.card_number,
            "assigned_to": str(result.assigned_to),
        })
        return result

    def reassign_card(
        self,
        ctx: ActorContext,
        card_id: UUID,
        assigned_to: UUID,
        staff_name: str | None = None,
    ) -> PettyCashCard:
        with unit_of_work(self._session, "petty_cash.reassign_card", ctx, card_id):
            card = self._lock_card(card_id)
            if card.status == CardStatus.CLOSED.value:
                raise CardNotActiveError(card.id, card.status)
            if card.status == CardStatus.ACTIVE.value:
                self._ensure_no_other_active_card(assigned_to, card.id)
            previous = card.assigned_to
            card.assigned_to = assigned_to
            if staff_name:
                card.staff_name = staff_name.strip()
            card.updated_by_id = ctx.user_id
            self._session.flush()
            logger.info("petty_cash_card_reassigned", extra={
                "card_id": str(card_id),
                "from_assignee": str(previous),
                "to_assignee": str(assigned_to),
            })
            result = card.to_dto()

        emit_audit(self._audit, "PETTY_CASH_CARD_REASSIGNED", ctx.user_id, {
            "card_id": str(card_id),
            "from_assignee": str(previous),
            "to_assignee": str(assigned_to),
        })
        return result

    def update_card_status(
        self,
        ctx: ActorContext,
        card_id: UUID,
        target: CardStatus,
        notes: str | None = None,
    ) -> PettyCashCard:
        with unit_of_work(self._session, "petty_cash.update_card_status", ctx, card_id):
            card = self._lock_card(card_id)
            source = card.status
            if not can_transition(CARD_WORKFLOW, source, target.value):
                raise InvalidTransitionError(CARD, card_id, source, target.value)
            if target is CardStatus.ACTIVE:
                self._ensure_no_other_active_card(card.assigned_to, card.id)

            card.status = target.value
            card.notes = append_note(card.notes, "Status Update", notes)
            card.updated_by_id = ctx.user_id
            self._session.flush()
            logger.info("petty_cash_card_status_changed", extra={
                "card_id": str(card_id),
                "from_status": source,
                "to_status": target.value,
            })
            result = card.to_dto()

        emit_audit(self._audit, "PETTY_CASH_CARD_STATUS_CHANGED", ctx.user_id, {
            "card_id": str(card_id),
            "from_status": source,
            "to_status": target.value,
        })
        return result

    def adjust_balance(
        self, ctx: ActorContext, card_id: UUID, data: BalanceAdjustmentInput
    ) -> PettyCashCard:
        """Manual add/deduct.  A deduction above the current balance is refused (exact)."""
        with unit_of_work(self._session, "petty_cash.adjust_balance", ctx, card_id):
            card = self._lock_card(card_id)
            self._require_active(card)
            if data.direction is BalanceDirection.DEDUCT:
                if data.amount > card.current_balance:
                    raise InsufficientBalanceError(card.id, data.amount, card.current_balance)
                delta = -data.amount
            else:
                delta = data.amount

            history = self._move_balance(
                card,
                delta,
                CardTransactionType.ADJUSTMENT,
                data.notes or f"Balance {data.direction.value} - Card {card.card_number}",
                ctx.user_id,
            )
            logger.info("petty_cash_balance_adjusted", extra={
                "card_id": str(card_id),
                "direction": data.direction.value,
                "amount": str(data.amount),
                "balance_before": str(history.balance_before),
                "balance_after": str(history.balance_after),
            })
            result = card.to_dto()

        emit_audit(self._audit, "PETTY_CASH_BALANCE_ADJUSTED", ctx.user_id, {
            "card_id": str(card_id),
            "direction": data.direction.value,
            "amount": str(data.amount),
            "new_balance": str(result.current_balance),
        })
        return result

    def reload_card(self, ctx: ActorContext, card_id: UUID, data: ReloadInput) -> PettyCashCard:
        """Credit the card; with a bank account, withdraw the same amount in the same unit."""
        with unit_of_work(self._session, "petty_cash.reload_card", ctx, card_id):
            card = self._lock_card(card_id)
            self._require_active(card)
            reload_date = data.reload_date or self._clock.today()
            description = f"Petty Cash Reload - Card {card.card_number} ({card.staff_name})"

            history = self._move_balance(
                card,
                data.amount,
                CardTransactionType.RELOAD,
                description,
                ctx.user_id,
                transaction_date=reload_date,
            )
            self._ledger.record(
                transaction_type=TransactionType.PETTY_CASH,
                reference_type=ReferenceType.PETTY_CASH_CARD,
                reference_id=card.id,
                amount=data.amount,
                description=description,
                actor_id=ctx.user_id,
                transaction_date=reload_date,
                notes=data.notes,
            )
            if data.bank_account_id is not None:
                self._bank.post_withdrawal(
                    bank_account_id=data.bank_account_id,
                    amount=data.amount,
                    description=description,
                    actor_id=ctx.user_id,
                    reference_type="petty_cash_reload",
                    reference_id=card.id,
                    category="petty_cash",
                    transaction_date=reload_date,
                    notes=data.notes,
                )

            logger.info("petty_cash_card_reloaded", extra={
                "card_id": str(card_id),
                "amount": str(data.amount),
                "balance_before": str(history.balance_before),
                "balance_after": str(history.balance_after),
                "bank_account_id": str(data.bank_account_id) if data.bank_account_id else None,
            })
            result = card.to_dto()

        emit_audit(self._audit, "PETTY_CASH_CARD_RELOADED", ctx.user_id, {
            "card_id": str(card_id),
            "amount": str(data.amount),
            "new_balance": str(result.current_balance),
        })
        return result

    # =========================================================================
    # Expenses
    # =========================================================================

    def submit_expense(self, ctx: ActorContext, data: SubmitExpenseInput) -> PettyCashExpense:
        """Create a ``pending`` expense.  The card is not debited until approval."""
        with unit_of_work(self._session, "petty_cash.submit_expense", ctx, data.card_id):
            card = self._lock_card(data.card_id)
            self._require_active(card)
            if card.assigned_to != ctx.user_id and not ctx.has_permission(MANAGE_EXPENSES):
                raise UnauthorizedActorError(
                    ctx.user_id, "submit expenses", f"not the assignee of card {card.card_number}"
                )
            if not self._config.is_known_category(data.category):
                raise ValidationError("category", f"unknown expense category '{data.category}'")
            if data.amount > card.current_balance:
                raise InsufficientBalanceError(card.id, data.amount, card.current_balance)
            if card.monthly_limit is not None:
                approved = self._approved_spend(card.id, self._clock.today())
                if approved + data.amount > card.monthly_limit:
                    raise MonthlyLimitExceededError(
                        card.id, card.monthly_limit, approved, data.amount
                    )

            number = self._sequences.next_document_number(
                self._settings.expense_number_prefix, self._clock.today().year
            )
            expense = PettyCashExpenseModel(
                expense_number=number,
                card_id=card.id,
                category=data.category,
                description=data.description,
                amount=data.amount,
                expense_date=data.expense_date,
                vendor=data.vendor,
                receipt_number=data.receipt_number,
                status=ExpenseStatus.PENDING.value,
                notes=data.notes,
                created_by_id=ctx.user_id,
            )
            self._session.add(expense)
            self._session.flush()
            logger.info("petty_cash_expense_submitted", extra={
                "expense_id": str(expense.id),
                "expense_number": number,
                "card_id": str(card.id),
                "amount": str(data.amount),
                "category": data.category,
            })
            result = expense.to_dto()

        emit_audit(self._audit, "PETTY_CASH_EXPENSE_SUBMITTED", ctx.user_id, {
            "expense_id": str(result.id),
            "card_id": str(result.card_id),
            "amount": str(result.amount),
        })
        return result

    def resolve_expense(
        self,
        ctx: ActorContext,
        expense_id: UUID,
        decision: ExpenseDecision,
        notes: str | None = None,
    ) -> PettyCashExpense:
        """
        Approve or reject a pending expense.

        Approval debits the card, adds to ``total_spent`` and writes the
        ledger and history rows.  Rejection changes the expense status only.
        """
        with unit_of_work(self._session, "petty_cash.resolve_expense", ctx, expense_id):
            card_id = self._session.execute(
                select(PettyCashExpenseModel.card_id).where(PettyCashExpenseModel.id == expense_id)
            ).scalar_one_or_none()
            if card_id is None:
                raise NotFoundError(EXPENSE, expense_id)

            card = self._lock_card(card_id)
            expense = lock_row_or_raise(self._session, PettyCashExpenseModel, expense_id, EXPENSE)
            if not can_transition(EXPENSE_WORKFLOW, expense.status, decision.value):
                raise AlreadyProcessedError(EXPENSE, expense_id, expense.status)

            if decision is ExpenseDecision.APPROVED:
                self._require_active(card)
                if expense.amount > card.current_balance:
                    raise InsufficientBalanceError(card.id, expense.amount, card.current_balance)
                description = f"Petty cash expense {expense.expense_number} - {expense.category}"
                self._move_balance(
                    card,
                    -expense.amount,
                    CardTransactionType.EXPENSE,
                    description,
                    ctx.user_id,
                    transaction_date=expense.expense_date,
                    expense_id=expense.id,
                )
                card.total_spent = quantize_money(card.total_spent + expense.amount)
                self._ledger.record(
                    transaction_type=TransactionType.EXPENSE,
                    reference_type=ReferenceType.PETTY_CASH_EXPENSE,
                    reference_id=expense.id,
                    amount=expense.amount,
                    description=description,
                    actor_id=ctx.user_id,
                    transaction_date=expense.expense_date,
                    notes=notes,
                )

            expense.status = decision.value
            expense.approved_by = ctx.user_id
            expense.approved_at = self._clock.now()
            expense.approval_notes = notes
            expense.updated_by_id = ctx.user_id
            self._session.flush()

            logger.info("petty_cash_expense_resolved", extra={
                "expense_id": str(expense_id),
                "card_id": str(card_id),
                "decision": decision.value,
                "amount": str(expense.amount),
                "card_balance": str(card.current_balance),
            })
            result = expense.to_dto()

        emit_audit(self._audit, "PETTY_CASH_EXPENSE_RESOLVED", ctx.user_id, {
            "expense_id": str(expense_id),
            "decision": decision.value,
            "amount": str(result.amount),
        })
        return result

    def delete_expense(self, ctx: ActorContext, expense_id: UUID) -> None:
        """Delete a pending expense.  Submitter or MANAGE_EXPENSES only."""
        with unit_of_work(self._session, "petty_cash.delete_expense", ctx, expense_id):
            expense = lock_row_or_raise(self._session, PettyCashExpenseModel, expense_id, EXPENSE)
            if expense.status != ExpenseStatus.PENDING.value:
                raise AlreadyProcessedError(EXPENSE, expense_id, expense.status)
            if expense.created_by_id != ctx.user_id and not ctx.has_permission(MANAGE_EXPENSES):
                raise UnauthorizedActorError(
                    ctx.user_id, "delete expense", "not the submitter"
                )
            number = expense.expense_number
            self._session.delete(expense)
            self._session.flush()
            logger.info("petty_cash_expense_deleted", extra={
                "expense_id": str(expense_id),
                "expense_number": number,
            })

        emit_audit(self._audit, "PETTY_CASH_EXPENSE_DELETED", ctx.user_id, {
            "expense_id": str(expense_id),
            "expense_number": number,
        })
