"""
Module: backoffice_kernel.db.locking
Responsibility: Row-level locking on aggregate roots.

Every read-then-write sequence in the back-office (check-no-pending-amendment
then insert, sum-approved-spend then insert, read-paid-amount then update)
first locks the aggregate root row with ``SELECT ... FOR UPDATE``.  Concurrent
requests on the same order, invoice or card then serialize on that row, so
at most one of them can pass a check before the other writes.

On SQLite the FOR UPDATE clause is not emitted; SQLite serializes writers at
the database level instead.
"""

from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.exceptions import NotFoundError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.locking")

ModelT = TypeVar("ModelT")


def lock_row(session: Session, model: type[ModelT], row_id: Any) -> ModelT | None:
    """Load one row by primary key holding a write lock until commit/rollback.

    ``populate_existing`` refreshes any stale identity-map copy with the
    values read under the lock.
    """
    row = session.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    logger.debug(
        "row_locked",
        extra={
            "table": model.__tablename__,
            "row_id": str(row_id),
            "found": row is not None,
        },
    )
    return row


def lock_row_or_raise(
    session: Session,
    model: type[ModelT],
    row_id: Any,
    entity_type: str,
) -> ModelT:
    """Like lock_row, raising NotFoundError when the row is absent."""
    row = lock_row(session, model, row_id)
    if row is None:
        raise NotFoundError(entity_type, row_id)
    return row
