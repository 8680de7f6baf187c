"""
Billing Workflows.

Only company bills have a document status; vendor bills track payment
through ``payment_status`` and refuse ``update_status`` outright.
"""

from backoffice_kernel.domain.workflow import Transition, Workflow

COMPANY_BILL_WORKFLOW = Workflow(
    name="company_bill",
    description="Company bill document status",
    initial_state="draft",
    states=("draft", "sent"),
    transitions=(
        Transition("draft", "sent", action="send"),
        Transition("sent", "draft", action="recall"),
    ),
)
