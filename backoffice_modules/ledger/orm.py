"""
SQLAlchemy ORM persistence for the transaction ledger.

``TransactionRecordModel`` rows are append-only: the kernel immutability
listeners (registered by ``_orm_registry.create_all_tables``) refuse UPDATE
and DELETE.  References to purchase orders, invoices, cards and expenses
are polymorphic (``reference_type`` + ``reference_id``) and therefore carry
no foreign key.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase


class TransactionRecordModel(TrackedBase):
    """One ledger line.  Maps to ``TransactionRecord``."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_reference", "reference_type", "reference_id"),
        Index("idx_transactions_type", "transaction_type"),
        Index("idx_transactions_date", "transaction_date"),
    )

    transaction_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[UUID]
    material_id: Mapped[UUID | None]
    quantity: Mapped[Decimal | None]
    unit_price: Mapped[Decimal | None]
    amount: Mapped[Decimal]
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.ledger.models import (
            ReferenceType,
            TransactionRecord,
            TransactionType,
        )

        return TransactionRecord(
            id=self.id,
            transaction_number=self.transaction_number,
            transaction_type=TransactionType(self.transaction_type),
            reference_type=ReferenceType(self.reference_type),
            reference_id=self.reference_id,
            amount=self.amount,
            transaction_date=self.transaction_date,
            description=self.description,
            material_id=self.material_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<TransactionRecordModel {self.transaction_number} "
            f"{self.transaction_type} {self.amount}>"
        )
