"""
Petty Cash Workflows.

Cards move between ``active`` and ``suspended``, can lapse to ``expired``
(and be renewed), and end in ``closed``.  Expenses resolve once.
"""

from backoffice_kernel.domain.workflow import Guard, Transition, Workflow

ONE_ACTIVE_CARD = Guard(
    name="one_active_card",
    description="The assignee holds no other active card",
)

CARD_WORKFLOW = Workflow(
    name="petty_cash_card",
    description="Petty cash card status",
    initial_state="active",
    states=("active", "suspended", "expired", "closed"),
    transitions=(
        Transition("active", "suspended", action="suspend"),
        Transition("active", "expired", action="expire"),
        Transition("active", "closed", action="close"),
        Transition("suspended", "active", action="reactivate", guard=ONE_ACTIVE_CARD),
        Transition("suspended", "expired", action="expire"),
        Transition("suspended", "closed", action="close"),
        Transition("expired", "active", action="renew", guard=ONE_ACTIVE_CARD),
        Transition("expired", "closed", action="close"),
    ),
    terminal_states=("closed",),
)

EXPENSE_WORKFLOW = Workflow(
    name="petty_cash_expense",
    description="Petty cash expense approval",
    initial_state="pending",
    states=("pending", "approved", "rejected"),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
    ),
    terminal_states=("approved", "rejected"),
)
