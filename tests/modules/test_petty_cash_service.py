"""
Tests for the Petty Cash Module Service.

Validates:
- One active card per assignee (create, reassign, reactivation)
- Card status workflow with ``closed`` terminal
- Balance movements leave a history row with before/after balances
- Expenses debit the card only on approval
- Monthly limits count approved spend of the current month only
- Submit/delete authorization (assignee, submitter or MANAGE_EXPENSES)
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

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
    ReloadInput,
    SubmitExpenseInput,
)
from backoffice_modules.petty_cash.service import PettyCashService, month_bounds


@pytest.fixture
def make_card(petty_cash, actor):
    def _make(assigned_to=None, balance="500", limit=None, **kwargs):
        return petty_cash.create_card(
            actor,
            CreateCardInput(
                assigned_to=assigned_to or actor.user_id,
                staff_name="Alex Staff",
                initial_balance=Decimal(balance),
                issue_date=date(2025, 3, 1),
                monthly_limit=Decimal(limit) if limit is not None else None,
                **kwargs,
            ),
        )

    return _make


@pytest.fixture
def submit(petty_cash, actor):
    def _submit(card, amount, ctx=None, category="fuel", expense_date=date(2025, 3, 10)):
        return petty_cash.submit_expense(
            ctx or actor,
            SubmitExpenseInput(
                card_id=card.id,
                category=category,
                description="Generator diesel",
                amount=Decimal(amount),
                expense_date=expense_date,
            ),
        )

    return _submit


# =============================================================================
# Inputs and helpers
# =============================================================================


class TestInputs:
    def test_category_normalized(self):
        data = SubmitExpenseInput(
            card_id=UUID(int=1), category="  Fuel ", description="Diesel",
            amount=Decimal("5"), expense_date=date(2025, 3, 1),
        )
        assert data.category == "fuel"

    def test_expense_amount_positive(self):
        with pytest.raises(ValidationError):
            SubmitExpenseInput(
                card_id=UUID(int=1), category="fuel", description="Diesel",
                amount=Decimal("0"), expense_date=date(2025, 3, 1),
            )

    def test_card_blank_staff_name(self):
        with pytest.raises(ValidationError):
            CreateCardInput(
                assigned_to=UUID(int=1), staff_name=" ", initial_balance=Decimal("0"),
                issue_date=date(2025, 3, 1),
            )

    def test_expiry_before_issue(self):
        with pytest.raises(ValidationError):
            CreateCardInput(
                assigned_to=UUID(int=1), staff_name="A", initial_balance=Decimal("0"),
                issue_date=date(2025, 3, 1), expiry_date=date(2025, 2, 1),
            )

    def test_month_bounds(self):
        assert month_bounds(date(2025, 3, 15)) == (date(2025, 3, 1), date(2025, 4, 1))
        assert month_bounds(date(2025, 12, 31)) == (date(2025, 12, 1), date(2026, 1, 1))

    def test_config_categories(self):
        config = PettyCashConfig.from_dict({"expense_categories": [" Fuel ", "Tolls"]})
        assert config.expense_categories == ("fuel", "tolls")
        assert config.is_known_category("TOLLS")
        with pytest.raises(ValueError):
            PettyCashConfig(expense_categories=())


# =============================================================================
# Cards
# =============================================================================


class TestCards:
    def test_create_writes_opening_row(self, make_card, petty_cash, actor, audit_sink):
        card = make_card()

        assert card.card_number == "PC-2025-00001"
        assert card.status is CardStatus.ACTIVE
        assert card.initial_balance == Decimal("500")
        assert card.current_balance == Decimal("500")
        assert card.total_spent == Decimal("0")
        (opening,) = petty_cash.card_history(card.id)
        assert opening.transaction_type is CardTransactionType.OPENING
        assert opening.balance_before == Decimal("0")
        assert opening.balance_after == Decimal("500")
        assert opening.transaction_date == date(2025, 3, 1)
        assert audit_sink.names()[-1] == "PETTY_CASH_CARD_CREATED"

    def test_zero_balance_card_has_no_history(self, make_card, petty_cash):
        card = make_card(balance="0")
        assert petty_cash.card_history(card.id) == []

    def test_one_active_card_per_assignee(self, make_card, petty_cash, actor):
        make_card()
        with pytest.raises(DuplicateActiveCardError) as exc_info:
            make_card()
        assert exc_info.value.existing_card_number == "PC-2025-00001"

    def test_default_monthly_limit_from_config(
        self, session, deterministic_clock, settings, actor
    ):
        service = PettyCashService(
            session, deterministic_clock, settings,
            config=PettyCashConfig(default_monthly_limit=Decimal("2000")),
        )
        card = service.create_card(
            actor,
            CreateCardInput(
                assigned_to=actor.user_id, staff_name="Alex", initial_balance=Decimal("0"),
                issue_date=date(2025, 3, 1),
            ),
        )
        assert card.monthly_limit == Decimal("2000")

    def test_suspend_and_reactivate(self, make_card, petty_cash, actor):
        card = make_card()
        suspended = petty_cash.update_card_status(actor, card.id, CardStatus.SUSPENDED, notes="lost")
        assert suspended.status is CardStatus.SUSPENDED
        assert suspended.notes.endswith("Status Update: lost")
        assert petty_cash.update_card_status(actor, card.id, CardStatus.ACTIVE).status is CardStatus.ACTIVE

    def test_reactivation_guarded_by_one_active_card(self, make_card, petty_cash, actor):
        first = make_card()
        petty_cash.update_card_status(actor, first.id, CardStatus.SUSPENDED)
        make_card()
        with pytest.raises(DuplicateActiveCardError):
            petty_cash.update_card_status(actor, first.id, CardStatus.ACTIVE)
        assert petty_cash.get_card(first.id).status is CardStatus.SUSPENDED

    def test_closed_is_terminal(self, make_card, petty_cash, actor):
        card = make_card()
        petty_cash.update_card_status(actor, card.id, CardStatus.CLOSED)
        for target in (CardStatus.ACTIVE, CardStatus.SUSPENDED, CardStatus.EXPIRED):
            with pytest.raises(InvalidTransitionError):
                petty_cash.update_card_status(actor, card.id, target)

    def test_reassign(self, make_card, petty_cash, actor, other_actor, audit_sink):
        card = make_card()
        moved = petty_cash.reassign_card(actor, card.id, other_actor.user_id, staff_name="Sam Other")
        assert moved.assigned_to == other_actor.user_id
        assert moved.staff_name == "Sam Other"
        assert audit_sink.names()[-1] == "PETTY_CASH_CARD_REASSIGNED"

    def test_reassign_to_holder_of_active_card(self, make_card, petty_cash, actor, other_actor):
        card = make_card()
        make_card(assigned_to=other_actor.user_id)
        with pytest.raises(DuplicateActiveCardError):
            petty_cash.reassign_card(actor, card.id, other_actor.user_id)
        assert petty_cash.get_card(card.id).assigned_to == actor.user_id

    def test_reassign_closed_card(self, make_card, petty_cash, actor, other_actor):
        card = make_card()
        petty_cash.update_card_status(actor, card.id, CardStatus.CLOSED)
        with pytest.raises(CardNotActiveError):
            petty_cash.reassign_card(actor, card.id, other_actor.user_id)

    def test_unknown_card(self, petty_cash):
        with pytest.raises(NotFoundError):
            petty_cash.get_card(UUID(int=3))


# =============================================================================
# Balance movements
# =============================================================================


class TestBalance:
    def test_add_and_deduct(self, make_card, petty_cash, actor):
        card = make_card()
        added = petty_cash.adjust_balance(
            actor, card.id, BalanceAdjustmentInput(Decimal("100"), BalanceDirection.ADD)
        )
        assert added.current_balance == Decimal("600")
        drained = petty_cash.adjust_balance(
            actor, card.id, BalanceAdjustmentInput(Decimal("600"), BalanceDirection.DEDUCT, notes="audit")
        )
        assert drained.current_balance == Decimal("0")

        adjustments = [
            row for row in petty_cash.card_history(card.id)
            if row.transaction_type is CardTransactionType.ADJUSTMENT
        ]
        assert sorted(row.balance_after for row in adjustments) == [Decimal("0"), Decimal("600")]

    def test_deduct_beyond_balance(self, make_card, petty_cash, actor):
        card = make_card()
        with pytest.raises(InsufficientBalanceError) as exc_info:
            petty_cash.adjust_balance(
                actor, card.id, BalanceAdjustmentInput(Decimal("500.001"), BalanceDirection.DEDUCT)
            )
        assert exc_info.value.current_balance == Decimal("500")
        assert petty_cash.get_card(card.id).current_balance == Decimal("500")
        assert len(petty_cash.card_history(card.id)) == 1

    def test_inactive_card_refuses_adjustment(self, make_card, petty_cash, actor):
        card = make_card()
        petty_cash.update_card_status(actor, card.id, CardStatus.SUSPENDED)
        with pytest.raises(CardNotActiveError) as exc_info:
            petty_cash.adjust_balance(
                actor, card.id, BalanceAdjustmentInput(Decimal("1"), BalanceDirection.ADD)
            )
        assert exc_info.value.status == "suspended"

    def test_reload_from_bank(
        self, make_card, petty_cash, cash, bank_account, actor, session, deterministic_clock
    ):
        card = make_card()
        reloaded = petty_cash.reload_card(
            actor, card.id, ReloadInput(Decimal("200"), bank_account_id=bank_account.id)
        )
        assert reloaded.current_balance == Decimal("700")
        assert cash.get_account(bank_account.id).current_balance == Decimal("9800")
        (withdrawal,) = cash.list_transactions(bank_account.id)
        assert withdrawal.amount == Decimal("200")
        assert withdrawal.reference_id == card.id

        (line,) = TransactionLedger(session, deterministic_clock).for_reference(
            ReferenceType.PETTY_CASH_CARD, card.id
        )
        assert line.transaction_type is TransactionType.PETTY_CASH
        assert line.amount == Decimal("200")
        assert line.description == f"Petty Cash Reload - Card {card.card_number} (Alex Staff)"

    def test_reload_without_bank(self, make_card, petty_cash, cash, bank_account, actor):
        card = make_card()
        petty_cash.reload_card(actor, card.id, ReloadInput(Decimal("50"), reload_date=date(2025, 3, 5)))
        assert petty_cash.get_card(card.id).current_balance == Decimal("550")
        assert cash.list_transactions(bank_account.id) == ()

    def test_reload_with_unknown_bank_rolls_back(self, make_card, petty_cash, actor):
        card = make_card()
        with pytest.raises(NotFoundError):
            petty_cash.reload_card(
                actor, card.id, ReloadInput(Decimal("50"), bank_account_id=UUID(int=8))
            )
        assert petty_cash.get_card(card.id).current_balance == Decimal("500")
        assert len(petty_cash.card_history(card.id)) == 1


# =============================================================================
# Expenses
# =============================================================================


class TestSubmitExpense:
    def test_pending_does_not_debit(self, make_card, submit, petty_cash, actor):
        card = make_card()
        expense = submit(card, "120")

        assert expense.expense_number == "EXP-2025-00001"
        assert expense.status is ExpenseStatus.PENDING
        assert expense.submitted_by == actor.user_id
        assert petty_cash.get_card(card.id).current_balance == Decimal("500")

    def test_non_assignee_refused(self, make_card, submit, other_actor):
        card = make_card()
        with pytest.raises(UnauthorizedActorError):
            submit(card, "10", ctx=other_actor)

    def test_manager_may_submit(self, make_card, submit, manager):
        card = make_card()
        assert submit(card, "10", ctx=manager).submitted_by == manager.user_id

    def test_unknown_category(self, make_card, submit):
        card = make_card()
        with pytest.raises(ValidationError) as exc_info:
            submit(card, "10", category="yachts")
        assert exc_info.value.field == "category"

    def test_amount_above_balance(self, make_card, submit):
        card = make_card()
        with pytest.raises(InsufficientBalanceError):
            submit(card, "500.001")

    def test_suspended_card(self, make_card, submit, petty_cash, actor):
        card = make_card()
        petty_cash.update_card_status(actor, card.id, CardStatus.SUSPENDED)
        with pytest.raises(CardNotActiveError):
            submit(card, "10")

    def test_monthly_limit_counts_approved_only(self, make_card, submit, petty_cash, manager):
        card = make_card(limit="300")
        first = submit(card, "200")
        submit(card, "200")

        petty_cash.resolve_expense(manager, first.id, ExpenseDecision.APPROVED)
        assert petty_cash.approved_spend_this_month(card.id) == Decimal("200")

        with pytest.raises(MonthlyLimitExceededError) as exc_info:
            submit(card, "150")
        assert exc_info.value.approved_spend == Decimal("200")
        assert exc_info.value.monthly_limit == Decimal("300")
        assert submit(card, "100").status is ExpenseStatus.PENDING

    def test_previous_month_spend_not_counted(self, make_card, submit, petty_cash, manager):
        card = make_card(limit="300")
        february = submit(card, "250", expense_date=date(2025, 2, 20))
        petty_cash.resolve_expense(manager, february.id, ExpenseDecision.APPROVED)
        assert petty_cash.approved_spend_this_month(card.id) == Decimal("0")
        assert submit(card, "200").status is ExpenseStatus.PENDING


class TestResolveExpense:
    def test_approval_debits_card(
        self, make_card, submit, petty_cash, manager, session, deterministic_clock, audit_sink
    ):
        card = make_card()
        expense = submit(card, "120")
        approved = petty_cash.resolve_expense(manager, expense.id, ExpenseDecision.APPROVED, notes="ok")

        assert approved.status is ExpenseStatus.APPROVED
        assert approved.approved_by == manager.user_id
        assert approved.approval_notes == "ok"
        updated = petty_cash.get_card(card.id)
        assert updated.current_balance == Decimal("380")
        assert updated.total_spent == Decimal("120")

        (debit,) = [
            row for row in petty_cash.card_history(card.id)
            if row.transaction_type is CardTransactionType.EXPENSE
        ]
        assert debit.expense_id == expense.id
        assert debit.balance_before == Decimal("500")
        assert debit.balance_after == Decimal("380")

        (line,) = TransactionLedger(session, deterministic_clock).for_reference(
            ReferenceType.PETTY_CASH_EXPENSE, expense.id
        )
        assert line.transaction_type is TransactionType.EXPENSE
        assert line.amount == Decimal("120")
        assert audit_sink.names()[-1] == "PETTY_CASH_EXPENSE_RESOLVED"

    def test_rejection_leaves_card(self, make_card, submit, petty_cash, manager):
        card = make_card()
        expense = submit(card, "120")
        rejected = petty_cash.resolve_expense(manager, expense.id, ExpenseDecision.REJECTED)
        assert rejected.status is ExpenseStatus.REJECTED
        assert petty_cash.get_card(card.id).current_balance == Decimal("500")
        assert [e.id for e in petty_cash.list_expenses(card.id, ExpenseStatus.REJECTED)] == [expense.id]

    def test_resolves_once(self, make_card, submit, petty_cash, manager):
        card = make_card()
        expense = submit(card, "120")
        petty_cash.resolve_expense(manager, expense.id, ExpenseDecision.REJECTED)
        with pytest.raises(AlreadyProcessedError):
            petty_cash.resolve_expense(manager, expense.id, ExpenseDecision.APPROVED)
        assert petty_cash.get_card(card.id).current_balance == Decimal("500")

    def test_balance_rechecked_at_approval(self, make_card, submit, petty_cash, manager):
        card = make_card()
        first = submit(card, "400")
        second = submit(card, "400")
        petty_cash.resolve_expense(manager, first.id, ExpenseDecision.APPROVED)
        with pytest.raises(InsufficientBalanceError):
            petty_cash.resolve_expense(manager, second.id, ExpenseDecision.APPROVED)
        assert petty_cash.get_expense(second.id).status is ExpenseStatus.PENDING
        assert petty_cash.get_card(card.id).current_balance == Decimal("100")

    def test_unknown_expense(self, petty_cash, manager):
        with pytest.raises(NotFoundError):
            petty_cash.resolve_expense(manager, UUID(int=6), ExpenseDecision.APPROVED)


class TestDeleteExpense:
    def test_submitter_deletes_pending(self, make_card, submit, petty_cash, actor):
        card = make_card()
        expense = submit(card, "10")
        petty_cash.delete_expense(actor, expense.id)
        with pytest.raises(NotFoundError):
            petty_cash.get_expense(expense.id)

    def test_other_user_refused(self, make_card, submit, petty_cash, other_actor):
        card = make_card()
        expense = submit(card, "10")
        with pytest.raises(UnauthorizedActorError):
            petty_cash.delete_expense(other_actor, expense.id)
        assert petty_cash.get_expense(expense.id).status is ExpenseStatus.PENDING

    def test_manager_may_delete(self, make_card, submit, petty_cash, manager):
        card = make_card()
        expense = submit(card, "10")
        petty_cash.delete_expense(manager, expense.id)
        assert petty_cash.list_expenses(card.id) == []

    def test_resolved_expense_cannot_be_deleted(self, make_card, submit, petty_cash, actor, manager):
        card = make_card()
        expense = submit(card, "10")
        petty_cash.resolve_expense(manager, expense.id, ExpenseDecision.APPROVED)
        with pytest.raises(AlreadyProcessedError):
            petty_cash.delete_expense(actor, expense.id)
