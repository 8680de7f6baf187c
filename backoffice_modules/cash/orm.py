"""
SQLAlchemy ORM persistence for bank accounts.

``BankTransactionModel`` rows are append-only; the running balance lives on
``BankAccountModel.current_balance`` and each transaction stores the
balance it left behind.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase


class BankAccountModel(TrackedBase):
    __tablename__ = "bank_accounts"

    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self):
        from backoffice_modules.cash.models import BankAccount

        return BankAccount(
            id=self.id,
            account_name=self.account_name,
            account_number=self.account_number,
            bank_name=self.bank_name,
            current_balance=self.current_balance,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<BankAccountModel {self.account_number} balance={self.current_balance}>"


class BankTransactionModel(TrackedBase):
    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_txn_account", "bank_account_id"),
        Index("idx_bank_txn_reference", "reference_type", "reference_id"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_accounts.id"), nullable=False,
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal]
    balance_after: Mapped[Decimal]
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None]
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.cash.models import BankTransaction, BankTransactionType

        return BankTransaction(
            id=self.id,
            bank_account_id=self.bank_account_id,
            transaction_type=BankTransactionType(self.transaction_type),
            amount=self.amount,
            balance_after=self.balance_after,
            transaction_date=self.transaction_date,
            description=self.description,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            category=self.category,
        )

    def __repr__(self) -> str:
        return f"<BankTransactionModel {self.transaction_type} {self.amount}>"
