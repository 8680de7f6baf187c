"""
Workflow value-object tests and the declared transition tables.
"""

import pytest

from backoffice_kernel.domain.workflow import (
    Transition,
    Workflow,
    allowed_targets,
    can_transition,
    find_transition,
    reachable_states,
)
from backoffice_modules.amendments.workflows import AMENDMENT_WORKFLOW
from backoffice_modules.billing.workflows import COMPANY_BILL_WORKFLOW
from backoffice_modules.petty_cash.workflows import CARD_WORKFLOW, EXPENSE_WORKFLOW
from backoffice_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW


class TestWorkflowValidation:
    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="bad",
                description="",
                initial_state="missing",
                states=("a",),
                transitions=(),
            )

    def test_transition_to_undeclared_state_rejected(self):
        with pytest.raises(ValueError, match="undeclared"):
            Workflow(
                name="bad",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_terminal_state_cannot_have_outgoing_edge(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                name="bad",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="back"),),
                terminal_states=("b",),
            )


class TestPurchaseOrderWorkflow:
    @pytest.mark.parametrize(
        "source,target",
        [
            ("draft", "pending"),
            ("draft", "approved"),
            ("draft", "cancelled"),
            ("pending", "approved"),
            ("pending", "cancelled"),
            ("approved", "sent"),
            ("approved", "cancelled"),
            ("sent", "received"),
            ("sent", "cancelled"),
            ("received", "completed"),
        ],
    )
    def test_allowed(self, source, target):
        assert can_transition(PURCHASE_ORDER_WORKFLOW, source, target)

    @pytest.mark.parametrize(
        "source,target",
        [
            ("draft", "sent"),
            ("draft", "received"),
            ("approved", "draft"),
            ("received", "cancelled"),
            ("completed", "draft"),
            ("cancelled", "draft"),
        ],
    )
    def test_refused(self, source, target):
        assert not can_transition(PURCHASE_ORDER_WORKFLOW, source, target)

    def test_terminal_states_have_no_targets(self):
        assert allowed_targets(PURCHASE_ORDER_WORKFLOW, "completed") == frozenset()
        assert allowed_targets(PURCHASE_ORDER_WORKFLOW, "cancelled") == frozenset()

    def test_everything_reaches_a_terminal_state(self):
        for state in PURCHASE_ORDER_WORKFLOW.states:
            if state in PURCHASE_ORDER_WORKFLOW.terminal_states:
                continue
            reachable = reachable_states(PURCHASE_ORDER_WORKFLOW, state)
            assert reachable & set(PURCHASE_ORDER_WORKFLOW.terminal_states)

    def test_find_transition_names_the_action(self):
        transition = find_transition(PURCHASE_ORDER_WORKFLOW, "approved", "sent")
        assert transition is not None
        assert transition.action == "send"
        assert find_transition(PURCHASE_ORDER_WORKFLOW, "draft", "sent") is None


class TestOtherWorkflows:
    def test_amendment_resolves_once(self):
        assert can_transition(AMENDMENT_WORKFLOW, "pending", "approved")
        assert can_transition(AMENDMENT_WORKFLOW, "pending", "rejected")
        assert not can_transition(AMENDMENT_WORKFLOW, "approved", "rejected")
        assert not can_transition(AMENDMENT_WORKFLOW, "rejected", "approved")

    def test_company_bill_toggles(self):
        assert can_transition(COMPANY_BILL_WORKFLOW, "draft", "sent")
        assert can_transition(COMPANY_BILL_WORKFLOW, "sent", "draft")
        assert not can_transition(COMPANY_BILL_WORKFLOW, "draft", "draft")

    def test_closed_card_is_terminal(self):
        assert allowed_targets(CARD_WORKFLOW, "closed") == frozenset()
        assert can_transition(CARD_WORKFLOW, "suspended", "active")
        assert can_transition(CARD_WORKFLOW, "expired", "active")

    def test_guarded_reactivation(self):
        transition = find_transition(CARD_WORKFLOW, "suspended", "active")
        assert transition.guard is not None

    def test_expense_resolves_once(self):
        assert can_transition(EXPENSE_WORKFLOW, "pending", "approved")
        assert not can_transition(EXPENSE_WORKFLOW, "approved", "approved")
        assert not can_transition(EXPENSE_WORKFLOW, "rejected", "approved")
