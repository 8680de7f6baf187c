"""
Canonical workflow types (``backoffice_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines, plus the single legality
check every service consults before changing a status.  Each module declares
its transition table once in its ``workflows.py``; no service compares
status strings to decide legality on its own.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                f"is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    f"references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state '{t.from_state}' "
                    f"has an outgoing transition"
                )


def allowed_targets(workflow: Workflow, from_state: str) -> frozenset[str]:
    """States reachable in one step from ``from_state``."""
    return frozenset(
        t.to_state for t in workflow.transitions if t.from_state == from_state
    )


def can_transition(workflow: Workflow, from_state: str, to_state: str) -> bool:
    """True when ``to_state`` is in the allowed set of ``from_state``."""
    return to_state in allowed_targets(workflow, from_state)


def find_transition(
    workflow: Workflow, from_state: str, to_state: str
) -> Transition | None:
    for t in workflow.transitions:
        if t.from_state == from_state and t.to_state == to_state:
            return t
    return None


def reachable_states(workflow: Workflow, from_state: str) -> frozenset[str]:
    """Every state reachable from ``from_state`` through any number of steps."""
    seen: set[str] = set()
    frontier = [from_state]
    while frontier:
        state = frontier.pop()
        for target in allowed_targets(workflow, state):
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)
