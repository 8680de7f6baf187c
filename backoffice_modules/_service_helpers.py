"""
Shared helpers for module services (``backoffice_modules._service_helpers``).

Responsibility
--------------
The transaction boundary every public service method runs inside.  A
service method does all of its checks and writes in the body of
``unit_of_work``; the helper commits on normal exit and rolls back on any
exception, so partial writes are never observable.

* ``BackofficeError`` subclasses propagate unchanged (callers branch on kind).
* ``SQLAlchemyError`` is re-raised as ``InternalError`` (chained).
* Anything else propagates unchanged after rollback.

Audit records are emitted by the caller only after ``unit_of_work`` exits
cleanly, i.e. after commit.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.exceptions import BackofficeError, InternalError
from backoffice_kernel.logging_config import LogContext, get_logger

logger = get_logger("modules.unit_of_work")


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    actor: ActorContext,
    aggregate_id=None,
) -> Generator[Session, None, None]:
    with LogContext.bind(
        operation=operation,
        aggregate_id=aggregate_id,
        **actor.log_fields(),
    ):
        try:
            yield session
            session.commit()
            logger.debug("unit_of_work_committed", extra={"op": operation})
        except BackofficeError as exc:
            session.rollback()
            logger.info(
                "unit_of_work_rejected",
                extra={"op": operation, "error_code": exc.code},
            )
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("unit_of_work_failed", extra={"op": operation}, exc_info=True)
            raise InternalError(operation, str(exc)) from exc
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", extra={"op": operation}, exc_info=True)
            raise


def append_note(existing: str | None, label: str, text: str | None) -> str | None:
    """Append ``"\\n<label>: <text>"`` to an order's note trail.  No-op when text is empty."""
    if not text:
        return existing
    return f"{existing or ''}\n{label}: {text}"
