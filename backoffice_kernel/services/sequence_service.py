"""
SequenceService -- document number allocation via locked counter rows.

Responsibility:
    Hands out per-year document numbers (``PO-2025-00001``,
    ``PC-2025-00003``, ``EXP-2025-00042``) and serializes any allocation that
    must be derived from existing rows, such as vendor bill numbers.  A
    dedicated counter table is locked with ``SELECT ... FOR UPDATE`` so two
    concurrent allocations for the same name can never return the same value.

Architecture position:
    Kernel > Services.  Called by the module services inside their own
    transaction; never commits.

Failure modes:
    - IntegrityError on a concurrent first-use insert of the same counter
      (handled via savepoint rollback and re-read under lock).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from backoffice_kernel.db.base import Base
from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

SEQUENCE_WIDTH = 5


class SequenceCounter(Base):
    """
    One row per named sequence (e.g. ``PO-2025``) with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"


def format_document_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:0{SEQUENCE_WIDTH}d}"


def parse_document_sequence(number: str, prefix: str, year: int) -> int | None:
    """Numeric sequence part of ``<prefix>-<year>-<n>``, or None if it does not match."""
    head = f"{prefix}-{year}-"
    if not number.startswith(head):
        return None
    tail = number[len(head):]
    if not tail.isdigit():
        return None
    return int(tail)


class SequenceService:
    """
    Transactional sequence numbers.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes allocations per name.
        - The increment is only visible when the caller's transaction
          commits; a rollback returns the value.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def _select_locked(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_counter(self, sequence_name: str) -> SequenceCounter:
        """Return the named counter row locked for this transaction, creating it at 0."""
        counter = self._select_locked(sequence_name)
        if counter is not None:
            return counter

        # First use: another transaction may be creating the same row
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            counter = self._select_locked(sequence_name)
            if counter is None:
                raise
            return counter

    def next_value(self, sequence_name: str) -> int:
        """Increment the named counter and return the new value (always > 0)."""
        counter = self.lock_counter(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(self, prefix: str, year: int) -> str:
        """``<prefix>-<year>-<5 digit value>`` from the ``<prefix>-<year>`` counter."""
        value = self.next_value(f"{prefix}-{year}")
        return format_document_number(prefix, year, value)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
