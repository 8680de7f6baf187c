"""
Pytest fixtures for the back-office core test suite.

Provides:
- Structured logging configured once per run, plus a ``captured_logs`` helper
- A fresh in-memory SQLite tenant database per test (tables + append-only guards)
- Deterministic clock, actors and an in-memory audit sink

PostgreSQL-only tests (row-lock contention) live in ``tests/concurrency`` and
read ``BACKOFFICE_TEST_DATABASE_URL``.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import UUID

import pytest

from backoffice_kernel.config import TenantSettings
from backoffice_kernel.db.engine import get_session, init_tenant_engine, reset_engines
from backoffice_kernel.domain.clock import DeterministicClock
from backoffice_kernel.domain.context import MANAGE_EXPENSES, ActorContext
from backoffice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from backoffice_kernel.services.audit_sink import RecordingAuditSink
from backoffice_modules._orm_registry import create_all_tables

TEST_COMPANY_ID = "test-co"

TEST_USER_ID = UUID("00000000-0000-4000-b000-000000000001")
TEST_MANAGER_ID = UUID("00000000-0000-4000-b000-000000000002")
TEST_OTHER_USER_ID = UUID("00000000-0000-4000-b000-000000000003")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture backoffice logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, purchasing):
            purchasing.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "purchasing_order_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("backoffice")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """A fresh in-memory tenant database with every table created."""
    eng = init_tenant_engine(TEST_COMPANY_ID, "sqlite://")
    create_all_tables(eng)
    yield eng
    reset_engines()


@pytest.fixture
def session(engine):
    sess = get_session(TEST_COMPANY_ID)
    yield sess
    sess.close()


# =============================================================================
# Time, actors, settings, audit
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2025, 3, 15, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return TenantSettings.with_defaults()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def actor():
    return ActorContext(user_id=TEST_USER_ID, company_id=TEST_COMPANY_ID)


@pytest.fixture
def manager():
    return ActorContext(
        user_id=TEST_MANAGER_ID,
        company_id=TEST_COMPANY_ID,
        role="manager",
        permissions={MANAGE_EXPENSES},
    )


@pytest.fixture
def other_actor():
    return ActorContext(user_id=TEST_OTHER_USER_ID, company_id=TEST_COMPANY_ID)
