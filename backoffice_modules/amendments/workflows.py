"""
Amendment Workflows.

``pending`` resolves exactly once, to ``approved`` or ``rejected``.  Orders
in ``AMENDABLE_ORDER_EXCLUSIONS`` do not accept proposals: drafts are edited
directly, cancelled orders are closed.
"""

from backoffice_kernel.domain.workflow import Transition, Workflow

AMENDMENT_WORKFLOW = Workflow(
    name="purchase_order_amendment",
    description="Amendment request lifecycle",
    initial_state="pending",
    states=("pending", "approved", "rejected"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
    ),
    terminal_states=("approved", "rejected"),
)

AMENDABLE_ORDER_EXCLUSIONS = {
    "draft": "draft orders are edited directly",
    "cancelled": "cancelled orders cannot be amended",
}
