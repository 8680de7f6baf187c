"""
Kernel service tests: sequence numbers, system settings, append-only
guards, the audit sink and the unit-of-work boundary.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import select

from backoffice_kernel.db.immutability import is_append_only
from backoffice_kernel.exceptions import (
    ImmutabilityViolationError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from backoffice_kernel.services.audit_sink import (
    LoggingAuditSink,
    RecordingAuditSink,
    emit_audit,
)
from backoffice_kernel.services.sequence_service import (
    SequenceService,
    format_document_number,
    parse_document_sequence,
)
from backoffice_kernel.services.settings_service import SettingsService
from backoffice_modules._service_helpers import append_note, unit_of_work
from backoffice_modules.cash.orm import BankTransactionModel
from backoffice_modules.ledger.models import ReferenceType, TransactionType
from backoffice_modules.ledger.orm import TransactionRecordModel
from backoffice_modules.ledger.service import TransactionLedger
from backoffice_modules.petty_cash.orm import PettyCashTransactionModel

REFERENCE_ID = UUID("00000000-0000-4000-c000-000000000001")


# =============================================================================
# Sequences
# =============================================================================


class TestSequenceService:
    def test_format_and_parse(self):
        assert format_document_number("PO", 2025, 7) == "PO-2025-00007"
        assert parse_document_sequence("PO-2025-00007", "PO", 2025) == 7
        assert parse_document_sequence("PO-2025-123456", "PO", 2025) == 123456
        assert parse_document_sequence("PO-2024-00007", "PO", 2025) is None
        assert parse_document_sequence("PO-2025-abc", "PO", 2025) is None

    def test_numbers_increase_per_name(self, session):
        sequences = SequenceService(session)
        assert sequences.next_document_number("PO", 2025) == "PO-2025-00001"
        assert sequences.next_document_number("PO", 2025) == "PO-2025-00002"
        assert sequences.next_document_number("PO", 2026) == "PO-2026-00001"
        assert sequences.next_document_number("EXP", 2025) == "EXP-2025-00001"
        session.commit()
        assert sequences.current_value("PO-2025") == 2
        assert sequences.current_value("never-used") is None

    def test_rollback_returns_the_value(self, session):
        sequences = SequenceService(session)
        sequences.next_value("PC-2025")
        session.commit()
        sequences.next_value("PC-2025")
        session.rollback()
        assert sequences.next_value("PC-2025") == 2


# =============================================================================
# System settings
# =============================================================================


class TestSettingsService:
    def test_database_value_wins(self, session, actor, settings):
        service = SettingsService(session, settings)
        assert service.vat_rate() == Decimal("5")
        service.set("vat_rate_percentage", " 12.5 ", actor.user_id)
        assert service.vat_rate() == Decimal("12.5")

    def test_overwrite(self, session, actor):
        service = SettingsService(session)
        service.set("vat_rate_percentage", "3", actor.user_id)
        service.set("vat_rate_percentage", "4", actor.user_id)
        assert service.get("vat_rate_percentage") == "4"

    def test_malformed_value(self, session, actor):
        service = SettingsService(session)
        service.set("vat_rate_percentage", "five", actor.user_id)
        with pytest.raises(ValidationError):
            service.vat_rate()

    def test_out_of_range_value(self, session, actor):
        service = SettingsService(session)
        service.set("vat_rate_percentage", "150", actor.user_id)
        with pytest.raises(ValidationError):
            service.vat_rate()


# =============================================================================
# Append-only tables
# =============================================================================


class TestAppendOnly:
    def test_history_tables_are_registered(self, engine):
        assert is_append_only(TransactionRecordModel)
        assert is_append_only(BankTransactionModel)
        assert is_append_only(PettyCashTransactionModel)

    def _record(self, session, actor, deterministic_clock):
        ledger = TransactionLedger(session, deterministic_clock)
        record = ledger.record(
            transaction_type=TransactionType.PAYMENT,
            reference_type=ReferenceType.PURCHASE_INVOICE,
            reference_id=REFERENCE_ID,
            amount=Decimal("10"),
            description="Payment for invoice VB-2025-00001",
            actor_id=actor.user_id,
        )
        session.commit()
        return record

    def test_ledger_record_numbering(self, session, actor, deterministic_clock):
        record = self._record(session, actor, deterministic_clock)
        assert record.transaction_number == "TXN-2025-00001"
        ledger = TransactionLedger(session, deterministic_clock)
        lines = ledger.for_reference(ReferenceType.PURCHASE_INVOICE, REFERENCE_ID)
        assert [line.amount for line in lines] == [Decimal("10.000")]
        assert lines[0].transaction_date.isoformat() == "2025-03-15"

    def test_update_is_refused(self, session, actor, deterministic_clock):
        record = self._record(session, actor, deterministic_clock)
        record.amount = Decimal("99")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        stored = session.execute(
            select(TransactionRecordModel.amount).where(TransactionRecordModel.id == record.id)
        ).scalar_one()
        assert stored == Decimal("10.000")

    def test_delete_is_refused(self, session, actor, deterministic_clock):
        record = self._record(session, actor, deterministic_clock)
        session.delete(record)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        session.rollback()


# =============================================================================
# Audit sink
# =============================================================================


class _ExplodingSink:
    def record(self, event_name, actor_id, details):
        raise RuntimeError("sink offline")


class TestAuditSink:
    def test_recording_sink(self):
        sink = RecordingAuditSink()
        emit_audit(sink, "PURCHASE_ORDER_APPROVED", REFERENCE_ID, {"order_id": "x"})
        assert sink.names() == ["PURCHASE_ORDER_APPROVED"]
        assert sink.events[0][2] == {"order_id": "x"}

    def test_no_sink_is_a_noop(self):
        emit_audit(None, "ANYTHING", REFERENCE_ID, {})

    def test_failing_sink_is_logged_not_raised(self, captured_logs):
        emit_audit(_ExplodingSink(), "PURCHASE_ORDER_APPROVED", REFERENCE_ID, {})
        failures = [r for r in captured_logs() if r["message"] == "audit_sink_failed"]
        assert len(failures) == 1
        assert failures[0]["audit_event"] == "PURCHASE_ORDER_APPROVED"
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_logging_sink(self, captured_logs):
        LoggingAuditSink().record("VENDOR_BILL_CREATED", REFERENCE_ID, {"invoice_number": "VB-2025-00001"})
        events = [r for r in captured_logs() if r["message"] == "audit_event"]
        assert events[0]["audit_event"] == "VENDOR_BILL_CREATED"
        assert events[0]["details"] == {"invoice_number": "VB-2025-00001"}


# =============================================================================
# Unit of work
# =============================================================================


class TestUnitOfWork:
    def test_commits_on_success(self, session, actor):
        with unit_of_work(session, "test.commit", actor):
            SequenceService(session).next_value("UOW-2025")
        session.close()
        assert SequenceService(session).current_value("UOW-2025") == 1

    def test_business_error_rolls_back_and_propagates(self, session, actor, captured_logs):
        with pytest.raises(NotFoundError):
            with unit_of_work(session, "test.reject", actor):
                SequenceService(session).next_value("UOW-2025")
                raise NotFoundError("PurchaseOrder", REFERENCE_ID)
        assert SequenceService(session).current_value("UOW-2025") is None
        rejected = [r for r in captured_logs() if r["message"] == "unit_of_work_rejected"]
        assert rejected[0]["error_code"] == "NOT_FOUND"
        assert rejected[0]["operation"] == "test.reject"
        assert rejected[0]["actor_id"] == str(actor.user_id)

    def test_database_error_becomes_internal(self, session, actor):
        record = TransactionRecordModel(
            transaction_number="TXN-2025-00001",
            transaction_type="payment",
            reference_type="purchase_invoice",
            reference_id=REFERENCE_ID,
            amount=Decimal("1"),
            transaction_date=date(2025, 3, 15),
            description=None,
            created_by_id=actor.user_id,
        )
        with pytest.raises(InternalError) as exc_info:
            with unit_of_work(session, "test.internal", actor):
                session.add(record)
                session.flush()
        assert exc_info.value.operation == "test.internal"

    def test_append_note(self):
        assert append_note(None, "Payment", "") is None
        assert append_note(None, "Payment", "first") == "\nPayment: first"
        assert append_note("prior", "Approval", "ok") == "prior\nApproval: ok"
