"""
Canonical workflow types (``fulfillment_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the status state machines of every workflow
entity.  Transition tables are static data; the transition engine looks
edges up here and never encodes an edge in an inline conditional.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntityType(str, Enum):
    """Workflow entity types that own a status."""

    ORDER = "order"
    PURCHASE_ORDER = "purchase_order"
    PRODUCTION_ORDER = "production_order"
    RETURN_REQUEST = "return_request"


@dataclass(frozen=True)
class Transition:
    """A declared (from_state, to_state) edge of a workflow.

    ``action`` is the verb shown to users and written to logs.
    """
    from_state: str
    to_state: str
    action: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states`` and no
    terminal state has an outgoing transition.
    """
    entity_type: EntityType
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.entity_type.value}: initial state '{self.initial_state}' "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.entity_type.value}: transition {t.from_state}->{t.to_state} "
                    "references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.entity_type.value}: terminal state '{t.from_state}' "
                    "cannot have outgoing transitions"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the declared edge from_state -> to_state, or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def next_states(self, from_state: str) -> tuple[str, ...]:
        """States reachable in one step from ``from_state``."""
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)
