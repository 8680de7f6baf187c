"""
Purchasing Workflows.

The purchase order transition table.  ``PurchasingService`` consults it via
``can_transition`` for every generic status change.

Two compound operations carry their own, narrower source rule:

* ``approve`` is only legal from ``draft`` (``pending -> approved`` goes
  through the generic transition).
* ``receive`` is only legal from ``approved``; it books inventory and moves
  the order straight to ``received``.  The generic ``sent -> received``
  edge is for orders whose goods are booked elsewhere.
"""

from backoffice_kernel.domain.workflow import Transition, Workflow
from backoffice_kernel.logging_config import get_logger

logger = get_logger("modules.purchasing.workflows")


PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "pending",
        "approved",
        "sent",
        "received",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "pending", action="submit"),
        Transition("draft", "approved", action="approve"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("pending", "approved", action="approve"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "sent", action="send"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("sent", "received", action="receive"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("received", "completed", action="complete"),
    ),
    terminal_states=("completed", "cancelled"),
)

APPROVE_FROM = "draft"
RECEIVE_FROM = "approved"

logger.info(
    "purchasing_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)
