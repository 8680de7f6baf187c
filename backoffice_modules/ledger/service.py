"""
Transaction ledger writer (``backoffice_modules.ledger.service``).

``TransactionLedger`` is a collaborator, not a facade: it never commits.
Callers invoke it inside their own ``unit_of_work`` so the ledger line is
part of the same all-or-nothing unit as the business change it records.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.ledger import quantize_money
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_modules.ledger.models import ReferenceType, TransactionRecord, TransactionType
from backoffice_modules.ledger.orm import TransactionRecordModel

logger = get_logger("modules.ledger.service")

TRANSACTION_PREFIX = "TXN"


class TransactionLedger:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        *,
        transaction_type: TransactionType,
        reference_type: ReferenceType,
        reference_id: UUID,
        amount: Decimal,
        description: str,
        actor_id: UUID,
        transaction_date: date | None = None,
        material_id: UUID | None = None,
        quantity: Decimal | None = None,
        unit_price: Decimal | None = None,
        notes: str | None = None,
    ) -> TransactionRecordModel:
        """Append one ledger line and flush it.  Does not commit."""
        txn_date = transaction_date or self._clock.today()
        number = self._sequences.next_document_number(TRANSACTION_PREFIX, txn_date.year)
        record = TransactionRecordModel(
            transaction_number=number,
            transaction_type=transaction_type.value,
            reference_type=reference_type.value,
            reference_id=reference_id,
            material_id=material_id,
            quantity=quantity,
            unit_price=quantize_money(unit_price) if unit_price is not None else None,
            amount=quantize_money(amount),
            transaction_date=txn_date,
            description=description,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()
        logger.info(
            "ledger_transaction_recorded",
            extra={
                "transaction_number": number,
                "transaction_type": transaction_type.value,
                "reference_type": reference_type.value,
                "reference_id": str(reference_id),
                "amount": str(record.amount),
            },
        )
        return record

    def for_reference(
        self, reference_type: ReferenceType, reference_id: UUID
    ) -> Sequence[TransactionRecord]:
        rows = self._session.execute(
            select(TransactionRecordModel)
            .where(
                TransactionRecordModel.reference_type == reference_type.value,
                TransactionRecordModel.reference_id == reference_id,
            )
            .order_by(TransactionRecordModel.transaction_number)
        ).scalars()
        return tuple(row.to_dto() for row in rows)
