"""Database layer - tenant engines, base classes, locking."""

from backoffice_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from backoffice_kernel.db.engine import (
    get_session,
    init_tenant_engine,
    tenant_session_scope,
)
from backoffice_kernel.db.locking import lock_row, lock_row_or_raise
from backoffice_kernel.db.types import MONEY_PLACES

__all__ = [
    "init_tenant_engine",
    "get_session",
    "tenant_session_scope",
    "lock_row",
    "lock_row_or_raise",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY_PLACES",
]
