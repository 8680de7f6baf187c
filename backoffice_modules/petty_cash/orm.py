"""
SQLAlchemy ORM persistence for petty cash cards, expenses and card history.

Invariants enforced
-------------------
* ``card_number`` and ``expense_number`` are unique.
* At most one ``active`` card per assignee: partial unique index on
  ``assigned_to`` where ``status = 'active'``, backing the service check.
* ``petty_cash_transactions`` is append-only (registered with
  ``db.immutability``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase


class PettyCashCardModel(TrackedBase):
    __tablename__ = "petty_cash_cards"

    __table_args__ = (
        Index("idx_card_assignee", "assigned_to"),
        Index(
            "uq_card_one_active_per_assignee",
            "assigned_to",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    card_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    assigned_to: Mapped[UUID]
    staff_name: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    initial_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    current_balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_spent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    monthly_limit: Mapped[Decimal | None]
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.petty_cash.models import CardStatus, PettyCashCard

        return PettyCashCard(
            id=self.id,
            card_number=self.card_number,
            assigned_to=self.assigned_to,
            staff_name=self.staff_name,
            initial_balance=self.initial_balance,
            current_balance=self.current_balance,
            total_spent=self.total_spent,
            issue_date=self.issue_date,
            status=CardStatus(self.status),
            monthly_limit=self.monthly_limit,
            department=self.department,
            expiry_date=self.expiry_date,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PettyCashCardModel {self.card_number} [{self.status}]>"


class PettyCashExpenseModel(TrackedBase):
    """An expense against a card.  ``created_by_id`` is the submitter."""

    __tablename__ = "petty_cash_expenses"

    __table_args__ = (
        Index("idx_expense_card_status", "card_id", "status"),
        Index("idx_expense_date", "expense_date"),
    )

    expense_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    card_id: Mapped[UUID] = mapped_column(ForeignKey("petty_cash_cards.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal]
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approved_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.petty_cash.models import ExpenseStatus, PettyCashExpense

        return PettyCashExpense(
            id=self.id,
            expense_number=self.expense_number,
            card_id=self.card_id,
            category=self.category,
            description=self.description,
            amount=self.amount,
            expense_date=self.expense_date,
            status=ExpenseStatus(self.status),
            submitted_by=self.created_by_id,
            vendor=self.vendor,
            receipt_number=self.receipt_number,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            approval_notes=self.approval_notes,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PettyCashExpenseModel {self.expense_number} [{self.status}]>"


class PettyCashTransactionModel(TrackedBase):
    """One balance movement on a card.  Append-only."""

    __tablename__ = "petty_cash_transactions"

    card_id: Mapped[UUID] = mapped_column(
        ForeignKey("petty_cash_cards.id"), nullable=False, index=True,
    )
    expense_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("petty_cash_expenses.id"), nullable=True,
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal]
    balance_before: Mapped[Decimal]
    balance_after: Mapped[Decimal]
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    def to_dto(self):
        from backoffice_modules.petty_cash.models import (
            CardTransactionType,
            PettyCashTransaction,
        )

        return PettyCashTransaction(
            id=self.id,
            card_id=self.card_id,
            transaction_type=CardTransactionType(self.transaction_type),
            amount=self.amount,
            balance_before=self.balance_before,
            balance_after=self.balance_after,
            transaction_date=self.transaction_date,
            description=self.description,
            expense_id=self.expense_id,
        )

    def __repr__(self) -> str:
        return f"<PettyCashTransactionModel {self.transaction_type} {self.amount}>"
