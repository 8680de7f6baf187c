"""
Structured logging: JSON formatting, context propagation, exception fields.
"""

import json
import logging
import sys
from decimal import Decimal
from uuid import UUID

from backoffice_kernel.exceptions import CardNotActiveError
from backoffice_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _record(msg="event", exc_info=None, **extra):
    record = logging.LogRecord(
        name="backoffice.test", level=logging.INFO, pathname=__file__,
        lineno=1, msg=msg, args=(), exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_emits_one_json_object(self):
        line = StructuredFormatter().format(_record(amount=Decimal("1.500"), order_id=UUID(int=1)))
        payload = json.loads(line)
        assert payload["message"] == "event"
        assert payload["level"] == "INFO"
        assert payload["amount"] == "1.500"
        assert payload["order_id"] == str(UUID(int=1))

    def test_context_fields_are_stamped(self):
        with LogContext.bind(company_id="acme", operation="purchasing.approve"):
            payload = json.loads(StructuredFormatter().format(_record()))
        assert payload["company_id"] == "acme"
        assert payload["operation"] == "purchasing.approve"
        assert "company_id" not in LogContext.get_all()

    def test_exception_fields(self):
        try:
            raise CardNotActiveError("card-1", "suspended")
        except CardNotActiveError:
            payload = json.loads(StructuredFormatter().format(_record(exc_info=sys.exc_info())))
        assert payload["exc_type"] == "CardNotActiveError"
        assert payload["exc_code"] == "CARD_NOT_ACTIVE"
        assert payload["exc_status"] == "suspended"
        assert "traceback" in payload


class TestLoggerNamespace:
    def test_loggers_live_under_backoffice(self, captured_logs):
        get_logger("tests.namespace").info("namespace_check", extra={"n": 1})
        records = [r for r in captured_logs() if r["message"] == "namespace_check"]
        assert records[0]["logger"] == "backoffice.tests.namespace"
        assert records[0]["n"] == 1
