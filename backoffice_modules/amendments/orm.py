"""
SQLAlchemy ORM persistence for purchase order amendments.

Invariants enforced
-------------------
* (original_order_id, amendment_number) is unique.
* At most one ``pending`` amendment per order: a partial unique index backs
  the service-level check made under the order row lock.
* ``changes_summary`` holds the JSON form of ``OrderSnapshot``; it is only
  ever read back through ``OrderSnapshot.from_json``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase


class PurchaseOrderAmendmentModel(TrackedBase):
    __tablename__ = "purchase_order_amendments"

    __table_args__ = (
        UniqueConstraint(
            "original_order_id", "amendment_number",
            name="uq_amendment_number",
        ),
        Index(
            "uq_amendment_one_pending",
            "original_order_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    original_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    amendment_number: Mapped[int]
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    changes_summary: Mapped[dict] = mapped_column(JSON, nullable=False)
    previous_total: Mapped[Decimal]
    new_total: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approved_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from backoffice_modules.amendments.models import (
            Amendment,
            AmendmentStatus,
            OrderSnapshot,
        )

        return Amendment(
            id=self.id,
            original_order_id=self.original_order_id,
            amendment_number=self.amendment_number,
            reason=self.reason,
            snapshot=OrderSnapshot.from_json(self.changes_summary),
            previous_total=self.previous_total,
            new_total=self.new_total,
            status=AmendmentStatus(self.status),
            requested_by=self.created_by_id,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            resolution_notes=self.resolution_notes,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderAmendmentModel #{self.amendment_number} [{self.status}]>"
