"""
Audit sink -- fire-and-forget recording of state-changing successes.

Services call ``emit_audit`` only AFTER their transaction has committed.
The sink is outside the business transaction's correctness contract: a
failing sink is logged and otherwise ignored, and can never roll back
work that has already been committed.
"""

from typing import Any, Protocol
from uuid import UUID

from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.audit")


class AuditSink(Protocol):
    def record(self, event_name: str, actor_id: UUID, details: dict[str, Any]) -> None:
        ...


class LoggingAuditSink:
    """Default sink: one structured ``audit_event`` log line per record."""

    def record(self, event_name: str, actor_id: UUID, details: dict[str, Any]) -> None:
        logger.info(
            "audit_event",
            extra={
                "audit_event": event_name,
                "audit_actor_id": str(actor_id),
                "details": details,
            },
        )


class RecordingAuditSink:
    """In-memory sink for tests and local tooling."""

    def __init__(self):
        self.events: list[tuple[str, UUID, dict[str, Any]]] = []

    def record(self, event_name: str, actor_id: UUID, details: dict[str, Any]) -> None:
        self.events.append((event_name, actor_id, dict(details)))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.events]


def emit_audit(
    sink: AuditSink | None,
    event_name: str,
    actor_id: UUID,
    details: dict[str, Any],
) -> None:
    if sink is None:
        return
    try:
        sink.record(event_name, actor_id, details)
    except Exception:
        logger.warning(
            "audit_sink_failed",
            extra={"audit_event": event_name},
            exc_info=True,
        )
