"""
Module: backoffice_kernel.db.engine
Responsibility: Per-tenant SQLAlchemy engine registry, session factories and
    the transactional scope used by every caller.  Each company is bound to
    its own database URL; there is no shared default engine, so a session for
    one tenant can never read or write another tenant's rows.
Architecture position: Kernel > DB.  May import from db/base.py.  The
    create_tables helper lazily imports the module ORM registry.

Invariants enforced:
    - Tenant isolation: get_session(company_id) only ever returns a session
      bound to that company's engine.
    - PostgreSQL engines use QueuePool with pre-ping and READ COMMITTED;
      stronger guarantees come from explicit row locks (db/locking.py).
    - SQLite engines (tests, local tooling) skip pool tuning; in-memory
      URLs share one connection via StaticPool.  The driver's implicit
      transaction handling is disabled so SQLAlchemy emits BEGIN itself and
      SAVEPOINTs nest correctly.

Failure modes:
    - TenantNotConfiguredError if a company has no registered engine.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import atexit
import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from backoffice_kernel.exceptions import TenantNotConfiguredError
from backoffice_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engines: dict[str, Engine] = {}
_session_factories: dict[str, sessionmaker[Session]] = {}
_registry_lock = threading.Lock()


def _use_explicit_sqlite_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _build_engine(
    database_url: str,
    echo: bool,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        _use_explicit_sqlite_transactions(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_tenant_engine(
    company_id: str,
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Register (or replace) the engine for one company.

    Args:
        company_id: Tenant identifier from the identity context.
        database_url: SQLAlchemy URL of the tenant's database.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections beyond pool_size (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        The tenant's Engine.
    """
    engine = _build_engine(
        database_url, echo, pool_size, max_overflow, pool_timeout, pool_recycle
    )
    with _registry_lock:
        previous = _engines.pop(company_id, None)
        _engines[company_id] = engine
        _session_factories[company_id] = sessionmaker(
            bind=engine, expire_on_commit=False
        )
    if previous is not None:
        previous.dispose()

    configure_logging()
    logger.info(
        "tenant_engine_initialized",
        extra={
            "company_id": company_id,
            "dialect": engine.dialect.name,
            "echo": echo,
        },
    )
    return engine


def init_tenants_from_directory(directory) -> list[str]:
    """Register an engine for every tenant listed in a TenantDirectory."""
    company_ids = []
    for company_id in directory.company_ids():
        init_tenant_engine(company_id, directory.database_url(company_id))
        company_ids.append(company_id)
    return company_ids


def get_engine(company_id: str) -> Engine:
    """
    Get the engine registered for a company.

    Raises:
        TenantNotConfiguredError: If no engine is registered.
    """
    engine = _engines.get(company_id)
    if engine is None:
        raise TenantNotConfiguredError(company_id)
    return engine


def get_session_factory(company_id: str) -> sessionmaker[Session]:
    """
    Get the session factory for a company.

    Useful for multi-threaded callers where each thread needs its own session.
    """
    factory = _session_factories.get(company_id)
    if factory is None:
        raise TenantNotConfiguredError(company_id)
    return factory


def get_session(company_id: str) -> Session:
    """Get a new session bound to the company's database."""
    return get_session_factory(company_id)()


def registered_tenants() -> tuple[str, ...]:
    return tuple(sorted(_engines))


@contextmanager
def tenant_session_scope(company_id: str) -> Generator[Session, None, None]:
    """
    Transactional scope for one tenant.

    Commits on normal exit; rolls back and re-raises on exception.

    Usage:
        with tenant_session_scope(ctx.company_id) as session:
            PurchasingService(session).approve(...)
    """
    session = get_session(company_id)
    logger.debug("transaction_started", extra={"company_id": company_id})
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed", extra={"company_id": company_id})
    except Exception:
        session.rollback()
        logger.warning(
            "transaction_rolled_back",
            extra={"company_id": company_id},
            exc_info=True,
        )
        raise
    finally:
        session.close()


def create_tables(company_id: str) -> None:
    """
    Create every back-office table in the tenant's database and register
    the append-only listeners.
    """
    from backoffice_modules._orm_registry import create_all_tables

    create_all_tables(get_engine(company_id))


def drop_tables(company_id: str) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from backoffice_kernel.db.base import Base

    Base.metadata.drop_all(get_engine(company_id))


def reset_engines() -> None:
    """Dispose and forget every tenant engine. Useful for test cleanup."""
    with _registry_lock:
        engines = list(_engines.values())
        _engines.clear()
        _session_factories.clear()
    for engine in engines:
        engine.dispose()


def is_postgres(company_id: str) -> bool:
    engine = _engines.get(company_id)
    return engine is not None and engine.dialect.name == "postgresql"


atexit.register(reset_engines)
