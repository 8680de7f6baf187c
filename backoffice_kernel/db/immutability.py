"""
ORM-level immutability enforcement for append-only records.

Ledger transaction records, bank transactions and petty-cash transaction
history rows are written once and never changed.  Corrections are new rows.
The listeners below turn any UPDATE or DELETE of those rows into an
ImmutabilityViolationError, which aborts the flush and so the whole
transaction.

Models opt in by being passed to ``register_append_only``; the registry is
idempotent so repeated table creation in tests does not stack listeners.
"""

from sqlalchemy import event

from backoffice_kernel.exceptions import ImmutabilityViolationError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_registered: set[type] = set()


def _block(operation: str):
    def _listener(mapper, connection, target):
        entity_type = type(target).__name__
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": entity_type,
                "entity_id": str(target.id),
                "operation": operation,
            },
        )
        raise ImmutabilityViolationError(
            entity_type=entity_type,
            entity_id=str(target.id),
            reason=f"{entity_type} rows are append-only ({operation} refused)",
        )

    return _listener


_block_update = _block("UPDATE")
_block_delete = _block("DELETE")


def register_append_only(*models: type) -> None:
    """Attach before_update/before_delete guards to each model (idempotent)."""
    for model in models:
        if model in _registered:
            continue
        event.listen(model, "before_update", _block_update)
        event.listen(model, "before_delete", _block_delete)
        _registered.add(model)
        logger.debug("append_only_registered", extra={"model": model.__name__})


def unregister_append_only() -> None:
    """Remove every registered guard. FOR TESTING ONLY."""
    for model in list(_registered):
        event.remove(model, "before_update", _block_update)
        event.remove(model, "before_delete", _block_delete)
        _registered.discard(model)


def is_append_only(model: type) -> bool:
    return model in _registered
