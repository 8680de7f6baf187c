"""
Module ORM Registry (``backoffice_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before tables are created, and register the append-only
tables with ``db.immutability``.

Usage
-----
``backoffice_kernel.db.engine.create_tables(company_id)`` and
``tests/conftest.py`` both call ``create_all_tables(engine)``.
"""

from sqlalchemy.engine import Engine


def import_all_orm_models() -> None:
    """Import kernel models and every ``backoffice_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    # Kernel tables first (sequence counters, system settings)
    import backoffice_kernel.services.sequence_service  # noqa: F401
    import backoffice_kernel.services.settings_service  # noqa: F401
    # fmt: off
    import backoffice_modules.amendments.orm  # noqa: F401
    import backoffice_modules.billing.orm  # noqa: F401
    import backoffice_modules.cash.orm  # noqa: F401
    import backoffice_modules.ledger.orm  # noqa: F401
    import backoffice_modules.petty_cash.orm  # noqa: F401
    import backoffice_modules.purchasing.orm  # noqa: F401
    # fmt: on


def register_append_only_models() -> None:
    from backoffice_kernel.db.immutability import register_append_only
    from backoffice_modules.cash.orm import BankTransactionModel
    from backoffice_modules.ledger.orm import TransactionRecordModel
    from backoffice_modules.petty_cash.orm import PettyCashTransactionModel

    register_append_only(
        TransactionRecordModel,
        BankTransactionModel,
        PettyCashTransactionModel,
    )


def create_all_tables(engine: Engine) -> None:
    """Create kernel + all module tables on ``engine`` and register append-only listeners."""
    from backoffice_kernel.db.base import Base

    import_all_orm_models()
    Base.metadata.create_all(engine)
    register_append_only_models()
